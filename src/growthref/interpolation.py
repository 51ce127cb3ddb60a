"""
Lookup and interpolation of reference rows at an exact query age.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple
import logging
import math

from .config import DAYS_PER_WEEK
from .errors import ReferenceDataError
from .reference import ReferenceRow, ReferenceSeries, gestational_label
from .standards import Sex

logger = logging.getLogger(__name__)


class LmsInterpolation(str, Enum):
    """Which fields are interpolated between CDC/WHO rows."""

    FULL = "full"
    LMS_ONLY = "lms_only"


class GestationalLookup(str, Enum):
    """How an Intergrowth query without an exact row is resolved."""

    NEAREST = "nearest"
    INTERPOLATED = "interpolated"


class AgeRounding(str, Enum):
    NONE = "none"
    HALF_MONTH = "half_month"


@dataclass(frozen=True)
class InterpolatedPoint:
    """Reference values at the exact query age."""

    sex: Sex
    age: float
    L: Optional[float] = None
    M: Optional[float] = None
    S: Optional[float] = None
    percentiles: Dict[str, float] = field(default_factory=dict)
    label: Optional[str] = None
    interpolated: bool = False

    @property
    def has_lms(self) -> bool:
        return self.L is not None and self.M is not None and self.S is not None

    @classmethod
    def from_row(cls, row: ReferenceRow) -> "InterpolatedPoint":
        return cls(
            sex=row.sex,
            age=row.age,
            L=row.L,
            M=row.M,
            S=row.S,
            percentiles=dict(row.percentiles),
            label=row.label,
        )


def round_age(age: float, policy: AgeRounding = AgeRounding.NONE) -> float:
    """Apply the age rounding policy; half months round half up."""
    if AgeRounding(policy) is AgeRounding.HALF_MONTH:
        return math.floor(age * 2 + 0.5) / 2
    return age


def _lerp(lo: Optional[float], hi: Optional[float], factor: float) -> Optional[float]:
    if lo is None or hi is None:
        return None
    return lo + (hi - lo) * factor


def _between(
    lower: ReferenceRow,
    upper: ReferenceRow,
    age: float,
    interpolate_percentiles: bool = True,
) -> InterpolatedPoint:
    factor = (age - lower.age) / (upper.age - lower.age)
    if interpolate_percentiles:
        percentiles = {
            anchor: _lerp(value, upper.percentiles[anchor], factor)
            for anchor, value in lower.percentiles.items()
            if anchor in upper.percentiles
        }
    else:
        percentiles = dict(lower.percentiles)
    return InterpolatedPoint(
        sex=lower.sex,
        age=age,
        L=_lerp(lower.L, upper.L, factor),
        M=_lerp(lower.M, upper.M, factor),
        S=_lerp(lower.S, upper.S, factor),
        percentiles=percentiles,
        interpolated=True,
    )


def _two_closest(rows: Sequence[ReferenceRow], age: float) -> Tuple[ReferenceRow, ReferenceRow]:
    # sorted() is stable, so equally distant rows keep ascending age order
    ranked = sorted(rows, key=lambda r: abs(r.age - age))
    return ranked[0], ranked[1]


def interpolate_point(
    series: ReferenceSeries,
    sex: Sex,
    age: float,
    window: Optional[Tuple[float, float]] = None,
    mode: LmsInterpolation = LmsInterpolation.FULL,
) -> InterpolatedPoint:
    """
    Reference values of a CDC/WHO series at an age in months.

    The two rows closest to the query age are combined. An exact age match
    is returned unmodified; otherwise the row below the query is the lower
    point and every field is interpolated linearly towards the other row.

    Args:
        series: Reference series to read.
        sex: Requested sex.
        age: Query age in months.
        window: Inclusive (min, max) age range the candidate rows must fall in.
        mode: FULL interpolates L, M, S and every percentile anchor;
            LMS_ONLY interpolates L, M, S and copies the lower row's anchors.

    Returns:
        The InterpolatedPoint at `age`.

    Raises:
        ReferenceDataError: If fewer than two candidate rows exist.
    """
    rows = series.rows(sex)
    if window is not None:
        lo, hi = window
        rows = [r for r in rows if lo <= r.age <= hi]
    if len(rows) < 2:
        raise ReferenceDataError(
            f"{series.name}: not enough reference rows for sex {Sex(sex).label} "
            f"to interpolate at age {age}"
        )

    point1, point2 = _two_closest(rows, age)
    if point1.age == age or point1.age == point2.age:
        return InterpolatedPoint.from_row(point1)

    if point1.age < age:
        lower, upper = point1, point2
    else:
        lower, upper = point2, point1

    point = _between(
        lower, upper, age, interpolate_percentiles=LmsInterpolation(mode) is LmsInterpolation.FULL
    )
    logger.debug(
        f"{series.name}: interpolated age {age} between {lower.age} and {upper.age}"
    )
    return point


def _nearest(rows: Sequence[ReferenceRow], total_days: float) -> ReferenceRow:
    best = rows[0]
    for row in rows[1:]:
        if not abs(best.age - total_days) < abs(row.age - total_days):
            best = row
    return best


def interpolate_gestational_point(
    series: ReferenceSeries,
    sex: Sex,
    weeks: int,
    days: int = 0,
    mode: GestationalLookup = GestationalLookup.NEAREST,
) -> InterpolatedPoint:
    """
    Reference values of an Intergrowth series at a gestational age.

    Args:
        series: Intergrowth reference series.
        sex: Requested sex.
        weeks: Completed gestational weeks.
        days: Additional days (0-6).
        mode: NEAREST returns the closest tabulated row (ties go to the
            later row); INTERPOLATED interpolates anchors between the two
            nearest rows by total days.

    Raises:
        ReferenceDataError: If the series has no rows for the sex.
    """
    rows = series.rows(sex)
    if not rows:
        raise ReferenceDataError(
            f"{series.name}: no reference rows for sex {Sex(sex).label}"
        )

    label = gestational_label(weeks, days)
    for row in rows:
        if row.label == label:
            return InterpolatedPoint.from_row(row)

    total_days = weeks * DAYS_PER_WEEK + days
    first, last = rows[0], rows[-1]
    outside = total_days < first.age or total_days > last.age

    if GestationalLookup(mode) is GestationalLookup.NEAREST:
        row = _nearest(rows, total_days)
        logger.debug(f"{series.name}: no row for {label}, using nearest row {row.label}")
        return InterpolatedPoint.from_row(row)
    if len(rows) < 2 or outside:
        row = _nearest(rows, total_days)
        logger.warning(
            f"{series.name}: cannot interpolate at {label}, falling back to nearest row {row.label}"
        )
        return InterpolatedPoint.from_row(row)

    point1, point2 = _two_closest(rows, total_days)
    if point1.age < total_days:
        lower, upper = point1, point2
    else:
        lower, upper = point2, point1
    point = _between(lower, upper, float(total_days))
    return InterpolatedPoint(
        sex=point.sex,
        age=point.age,
        percentiles=point.percentiles,
        label=label,
        interpolated=True,
    )
