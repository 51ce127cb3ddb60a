"""
growthref: pediatric growth percentiles and z-scores against the CDC, WHO
and Intergrowth-21st reference standards.
"""

from .engine import (
    EngineConfig,
    GrowthEngine,
    PercentileResult,
    ReferenceRange,
    calculate_percentile,
    default_engine,
)
from .errors import (
    ComputationError,
    GrowthReferenceError,
    ReferenceDataError,
    ValidationError,
)
from .interpolation import AgeRounding, GestationalLookup, LmsInterpolation
from .reference import ReferenceStore, get_reference_store, get_series, load_series
from .standards import MeasurementType, Sex, Standard
from .validation import GrowthRequest, ValueBounds
from .visit import assess_visit, progression_table

__version__ = "0.1.0"

__all__ = [
    "AgeRounding",
    "ComputationError",
    "EngineConfig",
    "GestationalLookup",
    "GrowthEngine",
    "GrowthReferenceError",
    "GrowthRequest",
    "LmsInterpolation",
    "MeasurementType",
    "PercentileResult",
    "ReferenceDataError",
    "ReferenceRange",
    "ReferenceStore",
    "Sex",
    "Standard",
    "ValidationError",
    "ValueBounds",
    "assess_visit",
    "calculate_percentile",
    "default_engine",
    "get_reference_store",
    "get_series",
    "load_series",
    "progression_table",
]
