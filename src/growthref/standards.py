"""
Growth reference standards and their valid domains.

Four standards are supported. CDC and WHO tables are indexed by age in
months and carry LMS parameters; Intergrowth-21st tables are indexed by
gestational age ("weeks+days") and only carry tabulated percentiles.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional
import numbers

from .config import CDC_MAX_HEIGHT_CM, CDC_MAX_WEIGHT_KG
from .errors import ValidationError


class Sex(IntEnum):
    """Sex as encoded in the reference tables (1=male, 2=female)."""

    MALE = 1
    FEMALE = 2

    @classmethod
    def parse(cls, value: Any) -> "Sex":
        """Accept 'male'/'female', 'M'/'F' or the numeric codes 1/2."""
        if isinstance(value, Sex):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key in ("male", "m", "1"):
                return cls.MALE
            if key in ("female", "f", "2"):
                return cls.FEMALE
        elif isinstance(value, numbers.Real) and not isinstance(value, bool):
            if value == 1:
                return cls.MALE
            if value == 2:
                return cls.FEMALE
        raise ValidationError(f"Invalid sex specified: {value!r}")

    @property
    def label(self) -> str:
        return "male" if self is Sex.MALE else "female"


class Standard(str, Enum):
    CDC_CHILD = "cdc_child"
    CDC_INFANT = "cdc_infant"
    WHO = "who"
    INTERGROWTH = "intergrowth"

    @classmethod
    def parse(cls, value: Any) -> "Standard":
        if isinstance(value, Standard):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = [s.value for s in cls]
            raise ValidationError(
                f"Unsupported standard {value!r}. Supported standards: {supported}"
            ) from None


_MEASUREMENT_ALIASES = {
    "weight": "weight",
    "height": "height",
    "length": "height",
    "headcircumference": "headCircumference",
    "head_circumference": "headCircumference",
    "head": "headCircumference",
    "bmi": "bmi",
}


class MeasurementType(str, Enum):
    WEIGHT = "weight"
    HEIGHT = "height"
    HEAD_CIRCUMFERENCE = "headCircumference"
    BMI = "bmi"

    @classmethod
    def parse(cls, value: Any) -> "MeasurementType":
        """Parse a measurement type, accepting 'length' and 'head' aliases."""
        if isinstance(value, MeasurementType):
            return value
        canonical = _MEASUREMENT_ALIASES.get(str(value).strip().lower())
        if canonical is None:
            supported = [m.value for m in cls]
            raise ValidationError(
                f"Unsupported measurement type {value!r}. Supported types: {supported}"
            )
        return cls(canonical)


@dataclass(frozen=True)
class StandardDefinition:
    """
    Static description of one growth standard.

    Attributes:
        standard: Standard identifier.
        method: Registry name of the calculation method ('lms' or 'percentiletable').
        files: Bundled reference file per measurement type.
        min_age: Lower bound of the age domain (months, or gestational weeks).
        max_age: Upper bound of the age domain (months, or gestational weeks).
        gestational: True when the standard is indexed by gestational age.
        max_values: Default plausibility caps per measurement type.
        source: Human readable name of the published reference.
    """

    standard: Standard
    method: str
    files: Dict[MeasurementType, str]
    min_age: float
    max_age: float
    gestational: bool = False
    max_values: Dict[MeasurementType, float] = field(default_factory=dict)
    source: str = ""

    @property
    def measurement_types(self) -> list:
        return list(self.files)

    def supports(self, measurement_type: MeasurementType) -> bool:
        return measurement_type in self.files


_CDC_CAPS = {
    MeasurementType.WEIGHT: CDC_MAX_WEIGHT_KG,
    MeasurementType.HEIGHT: CDC_MAX_HEIGHT_CM,
}

STANDARDS: Dict[Standard, StandardDefinition] = {
    Standard.CDC_CHILD: StandardDefinition(
        standard=Standard.CDC_CHILD,
        method="lms",
        files={
            MeasurementType.WEIGHT: "cdc_child_weight.csv",
            MeasurementType.HEIGHT: "cdc_child_height.csv",
            MeasurementType.BMI: "cdc_child_bmi.csv",
        },
        min_age=24.0,
        max_age=240.0,
        max_values=_CDC_CAPS,
        source="CDC 2000 growth charts, 2 to 20 years",
    ),
    Standard.CDC_INFANT: StandardDefinition(
        standard=Standard.CDC_INFANT,
        method="lms",
        files={
            MeasurementType.WEIGHT: "cdc_infant_weight.csv",
            MeasurementType.HEIGHT: "cdc_infant_height.csv",
            MeasurementType.HEAD_CIRCUMFERENCE: "cdc_infant_head.csv",
        },
        min_age=0.0,
        max_age=36.0,
        max_values=_CDC_CAPS,
        source="CDC 2000 growth charts, birth to 36 months",
    ),
    Standard.WHO: StandardDefinition(
        standard=Standard.WHO,
        method="lms",
        files={
            MeasurementType.WEIGHT: "who_weight.csv",
            MeasurementType.HEIGHT: "who_height.csv",
            MeasurementType.HEAD_CIRCUMFERENCE: "who_head.csv",
            MeasurementType.BMI: "who_bmi.csv",
        },
        min_age=0.0,
        max_age=24.0,
        source="WHO Child Growth Standards, birth to 24 months",
    ),
    Standard.INTERGROWTH: StandardDefinition(
        standard=Standard.INTERGROWTH,
        method="percentiletable",
        files={
            MeasurementType.WEIGHT: "intergrowth_weight.csv",
            MeasurementType.HEIGHT: "intergrowth_length.csv",
            MeasurementType.HEAD_CIRCUMFERENCE: "intergrowth_head.csv",
        },
        min_age=24.0,
        max_age=42.0,
        gestational=True,
        source="INTERGROWTH-21st newborn size standards",
    ),
}


def get_standard(standard: Any) -> StandardDefinition:
    """Return the definition of a standard given its enum or string id."""
    return STANDARDS[Standard.parse(standard)]


def measurement_unit(measurement_type: MeasurementType) -> Optional[str]:
    return {
        MeasurementType.WEIGHT: "kg",
        MeasurementType.HEIGHT: "cm",
        MeasurementType.HEAD_CIRCUMFERENCE: "cm",
        MeasurementType.BMI: "kg/m2",
    }.get(measurement_type)
