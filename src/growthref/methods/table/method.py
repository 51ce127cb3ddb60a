"""
Direct percentile table method for the Intergrowth-21st newborn standards.

Intergrowth tables tabulate the 3rd, 5th, 10th, 50th, 90th, 95th and 97th
percentiles per gestational age; a value's percentile is read off the row
by linear interpolation between the anchors that bracket it.
"""

from pydantic import BaseModel, ValidationError

from ..base import BaseMethod, Score
from ...errors import ReferenceDataError
from ...interpolation import (
    GestationalLookup,
    InterpolatedPoint,
    interpolate_gestational_point,
)
from ...reference import ReferenceSeries
from ...validation import GrowthRequest
from ...zscores import table_percentile, table_zscore


class PercentileTableConfig(BaseModel):
    """
    Configuration for the percentile table method.

    Attributes:
        lookup (GestationalLookup): 'nearest' uses the closest tabulated
            gestational age; 'interpolated' interpolates between the two
            nearest rows. 'nearest' by default.
        estimate_zscore (bool): Report a z-score estimated from the anchor
            quantiles. False by default.
    """

    lookup: GestationalLookup = GestationalLookup.NEAREST
    estimate_zscore: bool = False


class PercentileTableMethod(BaseMethod):
    """
    Percentile table method for gestational-age-indexed standards.

    Usage:
        method = PercentileTableMethod(lookup='interpolated', estimate_zscore=True)
        score = method.score(3.1, method.lookup(series, request))
    """

    def __init__(
        self,
        lookup: GestationalLookup = GestationalLookup.NEAREST,
        estimate_zscore: bool = False,
    ):
        try:
            self.config = PercentileTableConfig(lookup=lookup, estimate_zscore=estimate_zscore)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

        self.validate_config()

    def validate_config(self) -> None:
        if not isinstance(self.config.lookup, GestationalLookup):
            raise ValueError("lookup must be a GestationalLookup mode")

    def lookup(self, series: ReferenceSeries, request: GrowthRequest) -> InterpolatedPoint:
        if request.gestational_weeks is None:
            raise ReferenceDataError(
                f"{series.name}: table lookup requires a gestational age"
            )
        return interpolate_gestational_point(
            series,
            request.sex,
            request.gestational_weeks,
            request.gestational_days or 0,
            mode=self.config.lookup,
        )

    def score(self, value: float, point: InterpolatedPoint) -> Score:
        percentile = table_percentile(value, point.percentiles)
        z = table_zscore(value, point.percentiles) if self.config.estimate_zscore else None
        return Score(percentile=percentile, z_score=z)
