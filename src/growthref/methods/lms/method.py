"""
LMS calculation method for the CDC and WHO growth standards.

Reference points carry Box-Cox power (L), median (M) and coefficient of
variation (S) at each tabulated age; a value's z-score follows from the LMS
transform and its percentile from the normal CDF.
"""

from typing import Optional, Sequence, Tuple
import logging

import numpy as np
from pydantic import BaseModel, ValidationError

from ..base import BaseMethod, Score
from ...errors import ReferenceDataError
from ...interpolation import (
    AgeRounding,
    InterpolatedPoint,
    LmsInterpolation,
    interpolate_point,
    round_age,
)
from ...reference import ReferenceSeries
from ...standards import get_standard
from ...validation import GrowthRequest
from ...zscores import (
    lms_zscore,
    lms_zscore_array,
    zscore_to_percentile,
    zscore_to_percentile_array,
)

logger = logging.getLogger(__name__)


class LMSConfig(BaseModel):
    """
    Configuration for the LMS method.

    Attributes:
        interpolation (LmsInterpolation): 'full' interpolates L, M, S and every
            percentile anchor between rows; 'lms_only' copies the anchors of the
            lower row. 'full' by default.
        age_rounding (AgeRounding): Rounding applied to the query age before
            lookup. 'none' by default.
    """

    interpolation: LmsInterpolation = LmsInterpolation.FULL
    age_rounding: AgeRounding = AgeRounding.NONE


class LMSMethod(BaseMethod):
    """
    LMS method (Cole 1990) for age-indexed standards.

    Usage:
        method = LMSMethod(interpolation='lms_only')
        point = method.lookup(series, request)
        score = method.score(request.value, point)
    """

    def __init__(
        self,
        interpolation: LmsInterpolation = LmsInterpolation.FULL,
        age_rounding: AgeRounding = AgeRounding.NONE,
    ):
        """
        Initialize LMSMethod.

        Raises:
            ValueError: If configuration is invalid per LMSConfig validation
        """
        try:
            self.config = LMSConfig(interpolation=interpolation, age_rounding=age_rounding)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

        self.validate_config()

    def validate_config(self) -> None:
        if not isinstance(self.config.interpolation, LmsInterpolation):
            raise ValueError("interpolation must be a LmsInterpolation mode")

    def lookup(self, series: ReferenceSeries, request: GrowthRequest) -> InterpolatedPoint:
        if request.age_months is None:
            raise ReferenceDataError(f"{series.name}: LMS lookup requires an age in months")
        definition = get_standard(series.standard)
        age = round_age(request.age_months, self.config.age_rounding)
        return interpolate_point(
            series,
            request.sex,
            age,
            window=(definition.min_age, definition.max_age),
            mode=self.config.interpolation,
        )

    def score(self, value: float, point: InterpolatedPoint) -> Score:
        if not point.has_lms:
            raise ReferenceDataError(
                f"Reference point at age {point.age} has no LMS parameters"
            )
        z = lms_zscore(value, point.L, point.M, point.S)
        return Score(percentile=zscore_to_percentile(z), z_score=z)

    def score_many(
        self, values: np.ndarray, points: Sequence[Optional[InterpolatedPoint]]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized scoring; rows without a point or with M/S <= 0 yield NaN."""
        n = len(values)
        L = np.full(n, np.nan, dtype=np.float64)
        M = np.full(n, np.nan, dtype=np.float64)
        S = np.full(n, np.nan, dtype=np.float64)
        for i, point in enumerate(points):
            if point is not None and point.has_lms:
                L[i], M[i], S[i] = point.L, point.M, point.S

        bad = np.isfinite(M) & ((M <= 0) | (S <= 0))
        if np.any(bad):
            logger.warning(
                f"{int(bad.sum())} rows have non-positive M or S reference values; "
                "their z-scores are set to NaN"
            )

        z = lms_zscore_array(np.asarray(values, dtype=np.float64), L, M, S)
        return z, zscore_to_percentile_array(z)
