"""
Multi-measurement visit assessment and progression tables.

A clinic visit records several measurements at once; these helpers score
each one that the chosen standard supports, derive BMI from weight and
height, and tabulate a child's visits over time.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from .engine import GrowthEngine, PercentileResult, default_engine
from .standards import STANDARDS, MeasurementType, Standard
from .validation import age_in_months


def compute_bmi(weight: Optional[float], height: Optional[float]) -> Optional[float]:
    """Compute BMI from weight in kg and height in cm."""
    if weight is not None and height is not None:
        return weight / (height / 100.0) ** 2
    return None


@dataclass(frozen=True)
class VisitAssessment:
    """Scored measurements of one visit; None where not measured or not supported."""

    weight: Optional[PercentileResult] = None
    height: Optional[PercentileResult] = None
    bmi: Optional[PercentileResult] = None
    head_circumference: Optional[PercentileResult] = None
    bmi_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, item in (
            ("weight", self.weight),
            ("height", self.height),
            ("bmi", self.bmi),
            ("headCircumference", self.head_circumference),
        ):
            if item is not None:
                result[key] = item.to_dict()
        if self.bmi_value is not None:
            result["bmiValue"] = self.bmi_value
        return result


def assess_visit(
    standard: Any,
    sex: Any,
    weight: Optional[float] = None,
    height: Optional[float] = None,
    head_circumference: Optional[float] = None,
    engine: Optional[GrowthEngine] = None,
    **age: Any,
) -> VisitAssessment:
    """
    Score all measurements of one visit against a standard.

    BMI is derived from weight and height when both are given and the
    standard has a BMI table. Measurements the standard has no table for
    are skipped.

    Args:
        standard: Reference standard.
        sex: Sex of the child.
        weight: Weight in kg.
        height: Height or length in cm.
        head_circumference: Head circumference in cm.
        engine: Engine to use; the default engine when None.
        **age: ageMonths/age_months, gestational weeks and days, or
            birth and measurement dates, as accepted by GrowthEngine.calculate.

    Returns:
        VisitAssessment with one PercentileResult per scored measurement.
    """
    engine = engine or default_engine()
    definition = STANDARDS[Standard.parse(standard)]
    bmi_value = compute_bmi(weight, height)

    measured = {
        MeasurementType.WEIGHT: weight,
        MeasurementType.HEIGHT: height,
        MeasurementType.BMI: bmi_value,
        MeasurementType.HEAD_CIRCUMFERENCE: head_circumference,
    }
    results: Dict[MeasurementType, PercentileResult] = {}
    for measurement_type, value in measured.items():
        if value is None or not definition.supports(measurement_type):
            continue
        results[measurement_type] = engine.calculate(
            standard=definition.standard,
            measurement_type=measurement_type,
            sex=sex,
            value=value,
            **age,
        )

    return VisitAssessment(
        weight=results.get(MeasurementType.WEIGHT),
        height=results.get(MeasurementType.HEIGHT),
        bmi=results.get(MeasurementType.BMI),
        head_circumference=results.get(MeasurementType.HEAD_CIRCUMFERENCE),
        bmi_value=bmi_value,
    )


def _optional(entry: Mapping[str, Any], key: str) -> Optional[float]:
    value = entry.get(key)
    if value is None or pd.isna(value):
        return None
    return float(value)


def progression_table(
    visits: Iterable[Mapping[str, Any]],
    standard: Any,
    sex: Any,
    birth_date: Any,
    until: Any = None,
    engine: Optional[GrowthEngine] = None,
) -> pd.DataFrame:
    """
    Tabulate a child's visits with weight and height percentiles.

    Args:
        visits: Mappings with 'date' and optional 'weight' (kg) and 'height' (cm).
        standard: Reference standard (age-indexed).
        sex: Sex of the child.
        birth_date: Date of birth.
        until: When given, visits after this date are left out.
        engine: Engine to use; the default engine when None.

    Returns:
        DataFrame sorted by date with columns date, age_years, weight,
        weight_percentile, height, height_percentile and bmi.
    """
    engine = engine or default_engine()
    born = pd.Timestamp(birth_date).date()
    cutoff = pd.Timestamp(until).date() if until is not None else None

    records = []
    for visit in visits:
        measured = pd.Timestamp(visit["date"]).date()
        if cutoff is not None and measured > cutoff:
            continue
        months = age_in_months(born, measured)
        weight = _optional(visit, "weight")
        height = _optional(visit, "height")
        assessment = assess_visit(
            standard,
            sex,
            weight=weight,
            height=height,
            engine=engine,
            age_months=months,
        )
        records.append(
            {
                "date": measured,
                "age_years": round(months / 12.0, 1),
                "weight": weight,
                "weight_percentile": (
                    assessment.weight.calculated_percentile if assessment.weight else np.nan
                ),
                "height": height,
                "height_percentile": (
                    assessment.height.calculated_percentile if assessment.height else np.nan
                ),
                "bmi": (
                    round(assessment.bmi_value, 1)
                    if assessment.bmi_value is not None
                    else np.nan
                ),
            }
        )

    columns = [
        "date",
        "age_years",
        "weight",
        "weight_percentile",
        "height",
        "height_percentile",
        "bmi",
    ]
    table = pd.DataFrame.from_records(records, columns=columns)
    return table.sort_values("date").reset_index(drop=True)
