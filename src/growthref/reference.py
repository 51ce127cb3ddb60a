"""
Reference Data Store for growth standards.

Loads the published reference tables once per process and exposes them as
immutable, sex-partitioned series sorted by age. Tables can come from the
bundled CSV files, from any CSV/JSON file, or from an in-memory DataFrame
or list of records; two column dialects are understood:

- CDC/WHO: Sex, Agemos, L, M, S, P3..P97 (WHO 'Month' accepted as age)
- Intergrowth-21st: sex, age ("weeks+days"), 3rd, 5th, 10th, 50th, 90th, 95th, 97th

LMS tables without percentile columns get their anchors derived from the
inverse LMS transform.
"""

from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
import functools
import logging
import re

import numpy as np
import pandas as pd

from .config import (
    DATA_PACKAGE,
    DAYS_PER_WEEK,
    INTERGROWTH_COLUMNS,
    PERCENTILE_ANCHORS,
)
from .errors import ReferenceDataError, ValidationError
from .standards import STANDARDS, MeasurementType, Sex, Standard
from .zscores import value_at_percentile

logger = logging.getLogger(__name__)

SeriesKey = Tuple[Standard, MeasurementType]
TableSource = Union[str, Path, pd.DataFrame, List[Dict[str, Any]]]

_AGE_COLUMNS = ("agemos", "month", "age")
_GESTATIONAL_AGE = re.compile(r"^\s*(\d+)\s*\+\s*(\d+)\s*$")


@dataclass(frozen=True)
class ReferenceRow:
    """
    One row of a reference table.

    `age` is in months for CDC/WHO tables and in total gestational days for
    Intergrowth tables, where `label` keeps the original "weeks+days" key.
    """

    sex: Sex
    age: float
    L: Optional[float] = None
    M: Optional[float] = None
    S: Optional[float] = None
    percentiles: Dict[str, float] = field(default_factory=dict)
    label: Optional[str] = None

    @property
    def has_lms(self) -> bool:
        return self.L is not None and self.M is not None and self.S is not None

    @property
    def gestational_weeks(self) -> int:
        return int(self.age) // DAYS_PER_WEEK

    @property
    def gestational_days(self) -> int:
        return int(self.age) % DAYS_PER_WEEK


def parse_gestational_age(label: str) -> Tuple[int, int]:
    """Split a "weeks+days" key into integers, e.g. "32+4" -> (32, 4)."""
    match = _GESTATIONAL_AGE.match(str(label))
    if not match:
        raise ReferenceDataError(f"Malformed gestational age {label!r}, expected 'weeks+days'")
    return int(match.group(1)), int(match.group(2))


def gestational_label(weeks: int, days: int) -> str:
    return f"{weeks}+{days}"


class ReferenceSeries:
    """
    Rows of one (standard, measurement type) pair, partitioned by sex.

    Each partition is sorted by age ascending and ages are unique within it.
    The series is never mutated after construction.
    """

    def __init__(
        self,
        standard: Standard,
        measurement_type: MeasurementType,
        rows: Iterable[ReferenceRow],
    ) -> None:
        self.standard = standard
        self.measurement_type = measurement_type

        grouped: Dict[Sex, List[ReferenceRow]] = {Sex.MALE: [], Sex.FEMALE: []}
        for row in rows:
            grouped[row.sex].append(row)

        self._partitions: Dict[Sex, Tuple[ReferenceRow, ...]] = {}
        for sex, sex_rows in grouped.items():
            sex_rows.sort(key=lambda r: r.age)
            ages = [r.age for r in sex_rows]
            duplicates = sorted({a for a in ages if ages.count(a) > 1})
            if duplicates:
                raise ReferenceDataError(
                    f"{self.name}: duplicate ages {duplicates} for sex {sex.label}"
                )
            self._partitions[sex] = tuple(sex_rows)

    @property
    def name(self) -> str:
        return f"{self.standard.value}_{self.measurement_type.value}"

    def rows(self, sex: Sex) -> Tuple[ReferenceRow, ...]:
        """Rows for one sex, sorted by age."""
        return self._partitions.get(Sex.parse(sex), ())

    @property
    def anchors(self) -> List[str]:
        """Percentile anchors present in every row of the series."""
        present = [set(r.percentiles) for rows in self._partitions.values() for r in rows]
        if not present:
            return []
        common = set.intersection(*present)
        return [a for a in PERCENTILE_ANCHORS if a in common]

    def __iter__(self) -> Iterator[ReferenceRow]:
        for sex in (Sex.MALE, Sex.FEMALE):
            yield from self._partitions[sex]

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._partitions.values())

    def __repr__(self) -> str:
        return f"ReferenceSeries({self.name}, rows={len(self)})"


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Map source column names onto sex/age/L/M/S/P* names."""
    renamed = {}
    for col in df.columns:
        key = str(col).replace("﻿", "").strip()
        lower = key.lower()
        if lower == "sex":
            renamed[col] = "sex"
        elif lower in _AGE_COLUMNS:
            renamed[col] = "age"
        elif lower in ("l", "m", "s"):
            renamed[col] = lower.upper()
        elif lower in INTERGROWTH_COLUMNS:
            renamed[col] = INTERGROWTH_COLUMNS[lower]
        elif key.upper() in PERCENTILE_ANCHORS:
            renamed[col] = key.upper()
    df = df.rename(columns=renamed)
    # A source may carry both Agemos and a derived age column; keep the first
    return df.loc[:, ~df.columns.duplicated()]


def _parse_sex(value: Any, name: str) -> Sex:
    try:
        return Sex.parse(value)
    except ValidationError:
        raise ReferenceDataError(f"{name}: unknown sex code {value!r}") from None


def _derive_percentiles(L: float, M: float, S: float) -> Dict[str, float]:
    """Percentile anchors implied by LMS parameters."""
    return {
        anchor: value_at_percentile(float(anchor[1:]), L, M, S)
        for anchor in PERCENTILE_ANCHORS
    }


def rows_from_frame(df: pd.DataFrame, gestational: bool, name: str = "table") -> List[ReferenceRow]:
    """
    Convert a raw reference table into ReferenceRows.

    Args:
        df: Raw table in either the CDC/WHO or the Intergrowth dialect.
        gestational: True when ages are "weeks+days" keys.
        name: Label used in error messages.

    Returns:
        One ReferenceRow per table row, in source order.

    Raises:
        ReferenceDataError: If required columns are missing or a value cannot be parsed.
    """
    df = _normalize_columns(df)

    missing = [col for col in ("sex", "age") if col not in df.columns]
    if missing:
        raise ReferenceDataError(f"{name}: missing required columns {missing}")

    has_lms = all(col in df.columns for col in ("L", "M", "S"))
    anchors = [a for a in PERCENTILE_ANCHORS if a in df.columns]
    if not has_lms and not anchors:
        raise ReferenceDataError(
            f"{name}: table needs L/M/S columns or percentile columns"
        )

    rows = []
    for record in df.to_dict(orient="records"):
        sex = _parse_sex(record["sex"], name)
        label = None
        if gestational:
            weeks, days = parse_gestational_age(record["age"])
            label = gestational_label(weeks, days)
            age = float(weeks * DAYS_PER_WEEK + days)
        else:
            try:
                age = float(record["age"])
            except (TypeError, ValueError):
                raise ReferenceDataError(f"{name}: non-numeric age {record['age']!r}") from None
            if not np.isfinite(age):
                raise ReferenceDataError(f"{name}: non-finite age value")

        L = M = S = None
        if has_lms:
            L, M, S = float(record["L"]), float(record["M"]), float(record["S"])

        percentiles = {}
        for anchor in anchors:
            value = record[anchor]
            if value is None or pd.isna(value):
                continue
            percentiles[anchor] = float(value)

        if has_lms and not percentiles and M > 0 and S > 0:
            percentiles = _derive_percentiles(L, M, S)

        rows.append(
            ReferenceRow(sex=sex, age=age, L=L, M=M, S=S, percentiles=percentiles, label=label)
        )
    return rows


def read_table(source: TableSource) -> pd.DataFrame:
    """Read a reference table from a DataFrame, a list of records, or a CSV/JSON path."""
    if isinstance(source, pd.DataFrame):
        return source.copy()
    if isinstance(source, (list, tuple)):
        return pd.DataFrame(list(source))
    path = Path(source)
    if not path.exists():
        raise ReferenceDataError(f"Reference table not found: {path}")
    if path.suffix.lower() == ".json":
        return pd.read_json(path, orient="records", dtype=False)
    return pd.read_csv(path, float_precision="round_trip")


def load_series(
    source: TableSource,
    standard: Any,
    measurement_type: Any,
) -> ReferenceSeries:
    """
    Load one reference series from any tabular or JSON source.

    Args:
        source: DataFrame, list of records, or path to a .csv/.json file.
        standard: Standard the table belongs to.
        measurement_type: Measurement type the table describes.

    Returns:
        The parsed, sorted ReferenceSeries.
    """
    standard = Standard.parse(standard)
    measurement_type = MeasurementType.parse(measurement_type)
    name = f"{standard.value}_{measurement_type.value}"
    df = read_table(source)
    rows = rows_from_frame(df, STANDARDS[standard].gestational, name)
    series = ReferenceSeries(standard, measurement_type, rows)
    logger.debug(f"Loaded {name} with {len(series)} rows")
    return series


def _read_bundled(filename: str) -> pd.DataFrame:
    try:
        with resources.files(DATA_PACKAGE).joinpath(filename).open("rb") as f:
            return pd.read_csv(f, float_precision="round_trip")
    except FileNotFoundError:
        raise ReferenceDataError(
            f"Bundled reference table {filename} not found. "
            "Ensure growthref is properly installed or run 'scripts/download_data.py' "
            "to regenerate reference data."
        ) from None


class ReferenceStore:
    """Read-only map of (standard, measurement type) -> ReferenceSeries."""

    def __init__(self, series: Mapping[SeriesKey, ReferenceSeries]) -> None:
        self._series = dict(series)

    def get_series(self, standard: Any, measurement_type: Any) -> ReferenceSeries:
        """
        Return the series for a standard/measurement type pair.

        Raises:
            ReferenceDataError: If no series is loaded for the pair.
        """
        key = (Standard.parse(standard), MeasurementType.parse(measurement_type))
        try:
            return self._series[key]
        except KeyError:
            raise ReferenceDataError(
                f"No reference data loaded for {key[0].value} {key[1].value}"
            ) from None

    def keys(self) -> List[SeriesKey]:
        return list(self._series)

    def __contains__(self, key: SeriesKey) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    @classmethod
    def from_sources(cls, sources: Mapping[Tuple[Any, Any], TableSource]) -> "ReferenceStore":
        """Build a store from explicit sources keyed by (standard, measurement type)."""
        series = {}
        for (standard, measurement_type), source in sources.items():
            loaded = load_series(source, standard, measurement_type)
            series[(loaded.standard, loaded.measurement_type)] = loaded
        return cls(series)

    @classmethod
    def bundled(cls) -> "ReferenceStore":
        """Load every table shipped with the package."""
        series = {}
        for standard, definition in STANDARDS.items():
            for measurement_type, filename in definition.files.items():
                df = _read_bundled(filename)
                series[(standard, measurement_type)] = load_series(df, standard, measurement_type)
        logger.debug(f"Loaded {len(series)} bundled reference series")
        return cls(series)


@functools.lru_cache(maxsize=None)
def get_reference_store() -> ReferenceStore:
    """Process-wide store of the bundled tables, loaded on first use."""
    store = ReferenceStore.bundled()
    validate_store_integrity(store)
    return store


def get_series(standard: Any, measurement_type: Any) -> ReferenceSeries:
    """Series for a standard/measurement type from the bundled store."""
    return get_reference_store().get_series(standard, measurement_type)


def validate_store_integrity(store: ReferenceStore) -> bool:
    """
    Validate integrity of loaded reference data.

    Checks that every standard has its series for both sexes, that ages fall
    inside the standard's domain, that M and S are positive and that
    percentile anchors increase within each row. Logs warnings for any issue
    found but doesn't raise exceptions.

    Args:
        store: Store to validate.

    Returns:
        True if data passes all validation checks, False otherwise.
    """
    ok = True
    for standard, definition in STANDARDS.items():
        for measurement_type in definition.files:
            if (standard, measurement_type) not in store:
                logger.warning(f"Missing reference series {standard.value} {measurement_type.value}")
                ok = False
                continue
            series = store.get_series(standard, measurement_type)
            for sex in (Sex.MALE, Sex.FEMALE):
                if len(series.rows(sex)) < 2:
                    logger.warning(f"{series.name}: fewer than two rows for sex {sex.label}")
                    ok = False

            lo, hi = definition.min_age, definition.max_age
            if definition.gestational:
                lo, hi = lo * DAYS_PER_WEEK, (hi + 1) * DAYS_PER_WEEK - 1
            for row in series:
                if row.age < lo or row.age > hi:
                    logger.warning(f"{series.name}: age {row.age} outside domain [{lo}, {hi}]")
                    ok = False
                if row.has_lms and (row.M <= 0 or row.S <= 0):
                    logger.warning(f"{series.name}: non-positive M or S at age {row.age}")
                    ok = False
                values = [row.percentiles[a] for a in PERCENTILE_ANCHORS if a in row.percentiles]
                if any(b <= a for a, b in zip(values, values[1:])):
                    logger.warning(f"{series.name}: percentiles not increasing at age {row.age}")
                    ok = False
    return ok
