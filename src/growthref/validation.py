"""
Input validation for growth calculations.

Every request passes through `validate_request` before any reference lookup
or computation happens. Pydantic models parse and coerce the raw input;
domain checks (age windows, value caps) run afterwards against the
standard's definition.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional
import calendar
import math

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .config import (
    GESTATIONAL_DAYS_MAX,
    GESTATIONAL_WEEKS_MAX,
    GESTATIONAL_WEEKS_MIN,
)
from .errors import ValidationError
from .standards import STANDARDS, MeasurementType, Sex, Standard, measurement_unit


class ValueBounds(BaseModel):
    """
    Upper plausibility caps per measurement type for one standard.

    Attributes:
        weight (Optional[float]): Maximum weight in kg. None disables the cap.
        height (Optional[float]): Maximum height/length in cm.
        head_circumference (Optional[float]): Maximum head circumference in cm.
        bmi (Optional[float]): Maximum BMI in kg/m2.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    weight: Optional[float] = None
    height: Optional[float] = None
    head_circumference: Optional[float] = None
    bmi: Optional[float] = None

    @field_validator("weight", "height", "head_circumference", "bmi")
    @classmethod
    def validate_cap(cls, v: Optional[float]) -> Optional[float]:
        """Caps must be positive and finite when set."""
        if v is not None and (not math.isfinite(v) or v <= 0):
            raise ValueError("Value caps must be positive finite numbers")
        return v

    def cap(self, measurement_type: MeasurementType) -> Optional[float]:
        return {
            MeasurementType.WEIGHT: self.weight,
            MeasurementType.HEIGHT: self.height,
            MeasurementType.HEAD_CIRCUMFERENCE: self.head_circumference,
            MeasurementType.BMI: self.bmi,
        }[measurement_type]


def default_bounds() -> Dict[Standard, ValueBounds]:
    """Caps taken from each standard's definition (CDC: 300 kg, 250 cm)."""
    bounds = {}
    for standard, definition in STANDARDS.items():
        caps = definition.max_values
        bounds[standard] = ValueBounds(
            weight=caps.get(MeasurementType.WEIGHT),
            height=caps.get(MeasurementType.HEIGHT),
            head_circumference=caps.get(MeasurementType.HEAD_CIRCUMFERENCE),
            bmi=caps.get(MeasurementType.BMI),
        )
    return bounds


class GrowthRequest(BaseModel):
    """
    One measurement to place on a reference curve.

    Accepts both camelCase (wire) and snake_case keys. Age is given either
    in months (`age_months`), as gestational weeks/days (Intergrowth), or as
    a pair of birth and measurement dates.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    standard: Standard
    measurement_type: MeasurementType
    sex: Sex
    value: Optional[float] = None
    age_months: Optional[float] = None
    gestational_weeks: Optional[int] = None
    gestational_days: Optional[int] = None
    birth_date: Optional[date] = None
    measurement_date: Optional[date] = None

    @field_validator("standard", mode="before")
    @classmethod
    def parse_standard(cls, v: Any) -> Standard:
        return Standard.parse(v)

    @field_validator("measurement_type", mode="before")
    @classmethod
    def parse_measurement_type(cls, v: Any) -> MeasurementType:
        return MeasurementType.parse(v)

    @field_validator("sex", mode="before")
    @classmethod
    def parse_sex(cls, v: Any) -> Sex:
        return Sex.parse(v)

    @field_validator("value", mode="before")
    @classmethod
    def reject_booleans(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("Measurement value must be numeric")
        return v

    @field_validator("birth_date", "measurement_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        """Datetimes are truncated to their calendar date."""
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


def _describe(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "request"
        msg = err.get("msg", "invalid")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        parts.append(f"{loc}: {msg}")
    return "; ".join(parts)


def parse_request(data: Any = None, **kwargs: Any) -> GrowthRequest:
    """
    Build a GrowthRequest from a request, a wire-shaped dict and/or keywords.

    Raises:
        ValidationError: If the input cannot be parsed.
    """
    if isinstance(data, GrowthRequest) and not kwargs:
        return data
    if isinstance(data, GrowthRequest):
        payload = data.model_dump()
    else:
        payload = dict(data or {})
    payload.update(kwargs)
    try:
        return GrowthRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid growth request: {_describe(e)}") from e


def age_in_months(birth_date: date, measurement_date: date) -> int:
    """
    Whole calendar months between two dates.

    Raises:
        ValidationError: If the measurement date precedes the birth date.
    """
    if measurement_date < birth_date:
        raise ValidationError(
            f"Measurement date {measurement_date.isoformat()} is before "
            f"birth date {birth_date.isoformat()}"
        )
    months = (measurement_date.year - birth_date.year) * 12 + (
        measurement_date.month - birth_date.month
    )
    if months < 1:
        return 0

    shifted = measurement_date
    # Late February compares as the 30th so it can complete a month begun on the 29th-31st
    if shifted.month == 2 and shifted.day > 27:
        shifted = _add_months(shifted, 0, day=30)
    shifted = _add_months(shifted, -months)

    not_full = shifted < birth_date
    month_end = calendar.monthrange(measurement_date.year, measurement_date.month)[1]
    if months == 1 and measurement_date.day == month_end:
        not_full = False
    return months - int(not_full)


def _add_months(value: date, months: int, day: Optional[int] = None) -> date:
    """Move `value` by whole months; a day past the month's end rolls into the next month."""
    index = value.year * 12 + value.month - 1 + months
    first = date(index // 12, index % 12 + 1, 1)
    return first + timedelta(days=(value.day if day is None else day) - 1)


def _validate_value(request: GrowthRequest, bounds: Optional[ValueBounds]) -> None:
    value = request.value
    if value is None:
        raise ValidationError("Measurement value is required")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(f"Measurement value must be a positive number, got {value}")
    cap = bounds.cap(request.measurement_type) if bounds is not None else None
    if cap is not None and value > cap:
        unit = measurement_unit(request.measurement_type)
        raise ValidationError(
            f"Implausible {request.measurement_type.value} {value} {unit} "
            f"for {request.standard.value} (maximum {cap:g} {unit})"
        )


def _validate_gestational_age(request: GrowthRequest) -> GrowthRequest:
    weeks = request.gestational_weeks
    if weeks is None:
        raise ValidationError(
            f"{request.standard.value} requires gestational weeks and days"
        )
    days = 0 if request.gestational_days is None else request.gestational_days
    if not GESTATIONAL_WEEKS_MIN <= weeks <= GESTATIONAL_WEEKS_MAX:
        raise ValidationError(
            f"Gestational age must be between {GESTATIONAL_WEEKS_MIN} and "
            f"{GESTATIONAL_WEEKS_MAX} weeks, got {weeks}"
        )
    if not 0 <= days <= GESTATIONAL_DAYS_MAX:
        raise ValidationError(
            f"Gestational days must be between 0 and {GESTATIONAL_DAYS_MAX}, got {days}"
        )
    return request.model_copy(update={"gestational_days": days})


def _validate_age_months(request: GrowthRequest) -> GrowthRequest:
    age = request.age_months
    if age is None:
        if request.birth_date is None or request.measurement_date is None:
            raise ValidationError(
                f"{request.standard.value} requires ageMonths or birthDate and measurementDate"
            )
        age = float(age_in_months(request.birth_date, request.measurement_date))

    definition = STANDARDS[request.standard]
    if not math.isfinite(age) or not definition.min_age <= age <= definition.max_age:
        raise ValidationError(
            f"Age must be between {definition.min_age:g} and {definition.max_age:g} "
            f"months for {request.standard.value}, got {age:g}"
        )
    return request.model_copy(update={"age_months": float(age)})


def validate_measurement_type(request: GrowthRequest) -> None:
    """Raise ValidationError if the standard has no table for the measurement type."""
    definition = STANDARDS[request.standard]
    if not definition.supports(request.measurement_type):
        supported = [m.value for m in definition.measurement_types]
        raise ValidationError(
            f"{request.measurement_type.value} is not available for "
            f"{request.standard.value}. Supported types: {supported}"
        )


def resolve_age(request: GrowthRequest) -> GrowthRequest:
    """
    Check the request's age against its standard's domain.

    Returns:
        The request with months derived from dates, or gestational days
        defaulted to 0.
    """
    if STANDARDS[request.standard].gestational:
        return _validate_gestational_age(request)
    return _validate_age_months(request)


def validate_request(
    request: GrowthRequest,
    bounds: Optional[Mapping[Standard, ValueBounds]] = None,
) -> GrowthRequest:
    """
    Check a request against its standard's domain.

    Args:
        request: Parsed request.
        bounds: Per-standard value caps; defaults to `default_bounds()`.

    Returns:
        The request with its age resolved.

    Raises:
        ValidationError: If any check fails. Nothing is looked up or computed.
    """
    if bounds is None:
        bounds = default_bounds()
    _validate_value(request, bounds.get(request.standard))
    validate_measurement_type(request)
    return resolve_age(request)
