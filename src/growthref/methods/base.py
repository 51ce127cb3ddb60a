"""
Base class for all percentile calculation methods.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..errors import GrowthReferenceError
from ..interpolation import InterpolatedPoint
from ..reference import ReferenceSeries
from ..validation import GrowthRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Score:
    """Percentile (0-100) and, when the method provides one, the z-score."""

    percentile: float
    z_score: Optional[float] = None


class BaseMethod(ABC):
    """
    Abstract base class for all calculation methods.

    A method knows how to find the reference point for a validated request
    and how to turn a value at that point into a Score. Subclasses are
    discovered into `growthref.methods.registry` under their class name
    minus the 'Method' suffix, lowercased.

    Example subclass implementation:
        class LMSMethod(BaseMethod):
            def lookup(self, series, request):
                return interpolate_point(series, request.sex, request.age_months)

            def score(self, value, point):
                z = lms_zscore(value, point.L, point.M, point.S)
                return Score(zscore_to_percentile(z), z)

            def validate_config(self) -> None:
                pass
    """

    @abstractmethod
    def lookup(self, series: ReferenceSeries, request: GrowthRequest) -> InterpolatedPoint:
        """
        Reference point at the request's age.

        Args:
            series: Reference series for the request's standard and measurement type.
            request: Validated request.

        Returns:
            The interpolated (or exact) reference point.
        """
        pass

    @abstractmethod
    def score(self, value: float, point: InterpolatedPoint) -> Score:
        """
        Place a value on the reference distribution at a point.

        Raises:
            ComputationError: If the point cannot produce a finite result.
        """
        pass

    @abstractmethod
    def validate_config(self) -> None:
        """
        Validate method-specific configurations.

        Raises:
            ValueError: If configuration is invalid.
        """
        pass

    def score_many(
        self, values: np.ndarray, points: Sequence[Optional[InterpolatedPoint]]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Score a batch of values; rows that fail yield NaN.

        Args:
            values: Measurement values.
            points: Reference point per value, None where the lookup failed.

        Returns:
            Tuple of (z_scores, percentiles) arrays.
        """
        z = np.full(len(values), np.nan, dtype=np.float64)
        pct = np.full(len(values), np.nan, dtype=np.float64)
        failures: List[int] = []
        for i, (value, point) in enumerate(zip(values, points)):
            if point is None or not np.isfinite(value):
                continue
            try:
                result = self.score(float(value), point)
            except GrowthReferenceError:
                failures.append(i)
                continue
            pct[i] = result.percentile
            if result.z_score is not None:
                z[i] = result.z_score
        if failures:
            logger.warning(f"{len(failures)} rows could not be scored and were set to NaN")
        return z, pct

