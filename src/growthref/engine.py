"""
Growth calculation engine.

Dispatches a measurement to the calculation method of its standard:
validate -> look up the reference point -> score. Also provides
measurement histories, batch scoring of pandas DataFrames, reference curve
data and reference ranges.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional
import functools
import logging

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import (
    CURVE_DECIMALS,
    PERCENTILE_ANCHORS,
    UNIT_WARNING_HEIGHT_MEAN_CM,
    UNIT_WARNING_HEIGHT_P95_CM,
    UNIT_WARNING_WEIGHT_P99_KG,
)
from .errors import GrowthReferenceError
from .interpolation import (
    AgeRounding,
    GestationalLookup,
    InterpolatedPoint,
    LmsInterpolation,
)
from .methods import BaseMethod, registry
from .reference import ReferenceStore, get_reference_store
from .standards import STANDARDS, MeasurementType, Sex, Standard
from .validation import (
    GrowthRequest,
    ValueBounds,
    age_in_months,
    default_bounds,
    parse_request,
    resolve_age,
    validate_measurement_type,
    validate_request,
)

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """
    Configuration of a GrowthEngine.

    Attributes:
        lms_interpolation (LmsInterpolation): CDC/WHO interpolation mode. 'full' by default.
        gestational_lookup (GestationalLookup): Intergrowth lookup mode. 'nearest' by default.
        age_rounding (AgeRounding): Rounding of ages in months before lookup. 'none' by default.
        estimate_table_zscore (bool): Report an estimated z-score for Intergrowth. False by default.
        bounds (Dict[Standard, ValueBounds]): Per-standard value caps. Standards left
            out keep their default caps.
    """

    lms_interpolation: LmsInterpolation = LmsInterpolation.FULL
    gestational_lookup: GestationalLookup = GestationalLookup.NEAREST
    age_rounding: AgeRounding = AgeRounding.NONE
    estimate_table_zscore: bool = False
    bounds: Dict[Standard, ValueBounds] = Field(default_factory=default_bounds)

    @field_validator("bounds", mode="before")
    @classmethod
    def merge_default_bounds(cls, v: Any) -> Any:
        """Fill in default caps for standards without explicit bounds."""
        if v is None:
            return default_bounds()
        merged: Dict[Standard, Any] = dict(default_bounds())
        for key, bounds in dict(v).items():
            merged[Standard.parse(key)] = bounds
        return merged


@dataclass(frozen=True)
class PercentileResult:
    """Outcome of one calculation, echoing the request it answers."""

    standard: Standard
    measurement_type: MeasurementType
    sex: Sex
    value: float
    percentiles: Dict[str, float]
    calculated_percentile: float
    z_score: Optional[float] = None
    age_months: Optional[float] = None
    gestational_weeks: Optional[int] = None
    gestational_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: value, percentiles, calculatedPercentile and zScore when present."""
        result: Dict[str, Any] = {
            "value": self.value,
            "percentiles": {
                anchor: self.percentiles[anchor]
                for anchor in PERCENTILE_ANCHORS
                if anchor in self.percentiles
            },
            "calculatedPercentile": self.calculated_percentile,
        }
        if self.z_score is not None:
            result["zScore"] = self.z_score
        return result


class ReferenceRange(NamedTuple):
    """3rd, 50th and 97th percentile values at one age."""

    min: float
    normal: float
    max: float


class FrameColumns(BaseModel):
    """
    Column names read by GrowthEngine.calculate_frame.

    Attributes:
        value_col (str): Measurement values ('value' by default).
        sex_col (str): Sex, 'M'/'F', 'male'/'female' or 1/2 ('sex' by default).
        age_col (str): Age in months ('age_months' by default).
        weeks_col (str): Gestational weeks, Intergrowth only.
        days_col (str): Gestational days, Intergrowth only.
    """

    value_col: str = "value"
    sex_col: str = "sex"
    age_col: str = "age_months"
    weeks_col: str = "gestational_weeks"
    days_col: str = "gestational_days"

    @field_validator("value_col", "sex_col", "age_col", "weeks_col", "days_col")
    @classmethod
    def validate_column_names(cls, v: str) -> str:
        """Ensure column names are valid string identifiers."""
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Column name must be a non-empty string")
        return v


def _log_unit_warnings(measurement_type: MeasurementType, values: np.ndarray) -> None:
    """Log warnings for potential unit mismatches."""
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return
    if measurement_type is MeasurementType.HEIGHT:
        if np.mean(finite) < UNIT_WARNING_HEIGHT_MEAN_CM:
            logger.warning(
                "Height values have mean <20 - heights suggest cm but units suspect"
            )
        elif np.percentile(finite, 95) > UNIT_WARNING_HEIGHT_P95_CM:
            logger.warning(
                "Height values >200 cm detected - may be inches instead of cm"
            )
    elif measurement_type is MeasurementType.WEIGHT:
        if np.percentile(finite, 99) > UNIT_WARNING_WEIGHT_P99_KG:
            logger.warning("Weight values >300 kg detected - may be lbs instead of kg")


def _as_date(value: Any) -> date:
    return pd.Timestamp(value).date()


class GrowthEngine:
    """
    Computes growth percentiles and z-scores against the supported standards.

    Usage:
        engine = GrowthEngine()
        result = engine.calculate(
            standard="who", measurementType="weight", sex="male", ageMonths=12, value=9.6
        )
        result.to_dict()

    Attributes:
        config (EngineConfig): Interpolation modes, rounding and value caps.
    """

    def __init__(
        self,
        config: Optional[Any] = None,
        store: Optional[ReferenceStore] = None,
    ):
        """
        Initialize GrowthEngine.

        Args:
            config: EngineConfig, a mapping of its fields, or None for defaults.
            store: Reference store; the bundled store is loaded on first use when None.

        Raises:
            ValueError: If configuration is invalid per EngineConfig validation
        """
        if isinstance(config, EngineConfig):
            self.config = config
        else:
            try:
                self.config = EngineConfig(**dict(config or {}))
            except (ValidationError, GrowthReferenceError) as e:
                raise ValueError(f"Invalid configuration: {e}") from e
        self._store = store
        self._methods: Dict[str, BaseMethod] = {
            "lms": registry["lms"](
                interpolation=self.config.lms_interpolation,
                age_rounding=self.config.age_rounding,
            ),
            "percentiletable": registry["percentiletable"](
                lookup=self.config.gestational_lookup,
                estimate_zscore=self.config.estimate_table_zscore,
            ),
        }

    @property
    def store(self) -> ReferenceStore:
        if self._store is None:
            self._store = get_reference_store()
        return self._store

    def method_for(self, standard: Any) -> BaseMethod:
        """Calculation method used by a standard."""
        return self._methods[STANDARDS[Standard.parse(standard)].method]

    def _result(
        self, request: GrowthRequest, point: InterpolatedPoint, value: float
    ) -> PercentileResult:
        score = self.method_for(request.standard).score(value, point)
        return PercentileResult(
            standard=request.standard,
            measurement_type=request.measurement_type,
            sex=request.sex,
            value=value,
            percentiles=dict(point.percentiles),
            calculated_percentile=score.percentile,
            z_score=score.z_score,
            age_months=request.age_months,
            gestational_weeks=request.gestational_weeks,
            gestational_days=request.gestational_days,
        )

    def calculate(self, request: Any = None, **kwargs: Any) -> PercentileResult:
        """
        Calculate the percentile of one measurement.

        Args:
            request: GrowthRequest or a dict in the wire shape
                ({standard, measurementType, sex, value, ageMonths | gestationalWeeks/Days
                | birthDate/measurementDate}).
            **kwargs: Request fields, camelCase or snake_case; override `request`.

        Returns:
            PercentileResult for the measurement.

        Raises:
            ValidationError: Invalid input; raised before any lookup.
            ReferenceDataError: Reference series missing or too sparse.
            ComputationError: Reference parameters produce no finite result.
        """
        parsed = validate_request(parse_request(request, **kwargs), self.config.bounds)
        series = self.store.get_series(parsed.standard, parsed.measurement_type)
        point = self.method_for(parsed.standard).lookup(series, parsed)
        return self._result(parsed, point, parsed.value)

    def calculate_history(
        self,
        standard: Any,
        measurement_type: Any,
        sex: Any,
        birth_date: Any,
        measurements: Iterable[Mapping[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Percentiles for a series of dated measurements of one child.

        Each measurement is a mapping with a 'date' and either a 'value' or a
        key named after the measurement type (e.g. 'weight'). Entries are
        returned in date order as {date, ageInMonths, <type>: result dict};
        entries without a value carry only date and age.
        """
        measurement_type = MeasurementType.parse(measurement_type)
        born = _as_date(birth_date)
        history = []
        entries = sorted(measurements, key=lambda m: _as_date(m["date"]))
        for entry in entries:
            measured = _as_date(entry["date"])
            age = age_in_months(born, measured)
            value = entry.get("value", entry.get(measurement_type.value))
            record: Dict[str, Any] = {"date": measured.isoformat(), "ageInMonths": age}
            if value is not None and not pd.isna(value):
                result = self.calculate(
                    standard=standard,
                    measurement_type=measurement_type,
                    sex=sex,
                    value=value,
                    age_months=age,
                )
                record[measurement_type.value] = result.to_dict()
            history.append(record)
        return history

    def calculate_frame(
        self,
        df: pd.DataFrame,
        standard: Any,
        measurement_type: Any,
        value_col: str = "value",
        sex_col: str = "sex",
        age_col: str = "age_months",
        weeks_col: str = "gestational_weeks",
        days_col: str = "gestational_days",
    ) -> pd.DataFrame:
        """
        Score every row of a DataFrame against one standard and measurement type.

        Rows failing validation or lookup get NaN scores instead of aborting
        the batch; the number of such rows is logged.

        Args:
            df: Input DataFrame with value, sex and age columns
            standard: Reference standard
            measurement_type: Measurement type of `value_col`
            value_col, sex_col, age_col, weeks_col, days_col: Column names

        Returns:
            Copy of `df` with 'z_score' and 'percentile' columns added.

        Raises:
            ValueError: If a required column is missing or column names are invalid
        """
        try:
            columns = FrameColumns(
                value_col=value_col,
                sex_col=sex_col,
                age_col=age_col,
                weeks_col=weeks_col,
                days_col=days_col,
            )
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

        standard = Standard.parse(standard)
        measurement_type = MeasurementType.parse(measurement_type)
        definition = STANDARDS[standard]
        required = [columns.value_col, columns.sex_col]
        required.append(columns.weeks_col if definition.gestational else columns.age_col)
        for col in required:
            if col not in df.columns:
                raise ValueError(f"Column '{col}' does not exist in DataFrame")

        out = df.copy()
        if len(df) == 0:
            out["z_score"] = pd.Series(dtype=np.float64)
            out["percentile"] = pd.Series(dtype=np.float64)
            return out

        values = pd.to_numeric(df[columns.value_col], errors="coerce").to_numpy(dtype=np.float64)
        _log_unit_warnings(measurement_type, values)

        series = self.store.get_series(standard, measurement_type)
        method = self.method_for(standard)
        points: List[Optional[InterpolatedPoint]] = []
        failures = 0
        for row in df.to_dict(orient="records"):
            payload: Dict[str, Any] = {
                "standard": standard,
                "measurement_type": measurement_type,
                "sex": row[columns.sex_col],
                "value": row[columns.value_col],
            }
            if definition.gestational:
                payload["gestational_weeks"] = row[columns.weeks_col]
                if columns.days_col in df.columns:
                    payload["gestational_days"] = row[columns.days_col]
            else:
                payload["age_months"] = row[columns.age_col]
            try:
                request = validate_request(parse_request(payload), self.config.bounds)
                points.append(method.lookup(series, request))
            except GrowthReferenceError as e:
                logger.debug(f"Row skipped: {e}")
                points.append(None)
                failures += 1

        if failures:
            logger.warning(
                f"{failures} of {len(df)} rows failed validation or lookup; "
                "their scores are set to NaN"
            )

        z, pct = method.score_many(values, points)
        out["z_score"] = pd.Series(z, index=df.index)
        out["percentile"] = pd.Series(pct, index=df.index)
        return out

    def _point_at(self, request: GrowthRequest) -> InterpolatedPoint:
        validate_measurement_type(request)
        request = resolve_age(request)
        series = self.store.get_series(request.standard, request.measurement_type)
        return self.method_for(request.standard).lookup(series, request)

    def reference_curves(
        self,
        standard: Any,
        measurement_type: Any,
        sex: Any,
        start: Optional[float] = None,
        stop: Optional[float] = None,
        step: float = 1.0,
    ) -> pd.DataFrame:
        """
        Percentile curve data over an age range.

        Ages are in months for CDC/WHO and in completed gestational weeks for
        Intergrowth; the range defaults to the standard's whole domain. The
        grid runs from `start` in multiples of `step` and never passes `stop`.

        Returns:
            DataFrame with an 'age' (or 'gestational_weeks') column followed by
            one column per percentile anchor, rounded to 2 decimals.
        """
        standard = Standard.parse(standard)
        definition = STANDARDS[standard]
        if step <= 0:
            raise ValueError("step must be positive")
        start = definition.min_age if start is None else start
        stop = definition.max_age if stop is None else stop
        age_key = "gestational_weeks" if definition.gestational else "age"

        count = max(int(np.floor((stop - start) / step + 1e-9)) + 1, 0)
        records = []
        for age in start + step * np.arange(count):
            age = min(round(float(age), 6), stop)
            if definition.gestational:
                payload = {"gestational_weeks": int(age), "gestational_days": 0}
            else:
                payload = {"age_months": age}
            request = parse_request(
                standard=standard, measurement_type=measurement_type, sex=sex, **payload
            )
            point = self._point_at(request)
            record: Dict[str, Any] = {age_key: age}
            for anchor in PERCENTILE_ANCHORS:
                if anchor in point.percentiles:
                    record[anchor] = round(point.percentiles[anchor], CURVE_DECIMALS)
            records.append(record)
        return pd.DataFrame.from_records(records)

    def reference_range(
        self,
        standard: Any,
        measurement_type: Any,
        sex: Any,
        age_months: Optional[float] = None,
        gestational_weeks: Optional[int] = None,
        gestational_days: int = 0,
        birth_date: Any = None,
        measurement_date: Any = None,
    ) -> ReferenceRange:
        """Expected range at an age: min=P3, normal=P50, max=P97."""
        request = parse_request(
            standard=standard,
            measurement_type=measurement_type,
            sex=sex,
            age_months=age_months,
            gestational_weeks=gestational_weeks,
            gestational_days=gestational_days,
            birth_date=birth_date,
            measurement_date=measurement_date,
        )
        point = self._point_at(request)
        return ReferenceRange(
            min=point.percentiles["P3"],
            normal=point.percentiles["P50"],
            max=point.percentiles["P97"],
        )


@functools.lru_cache(maxsize=None)
def default_engine() -> GrowthEngine:
    """Process-wide engine with the default configuration."""
    return GrowthEngine()


def calculate_percentile(request: Any = None, **kwargs: Any) -> Dict[str, Any]:
    """
    Calculate a percentile with the default engine and return the wire shape.

    Example:
        calculate_percentile(standard="cdc_child", measurementType="height",
                             sex=1, ageMonths=60, value=110)
    """
    return default_engine().calculate(request, **kwargs).to_dict()
