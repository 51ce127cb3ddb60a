"""Percentile table calculation method."""

from .method import PercentileTableConfig, PercentileTableMethod

__all__ = ["PercentileTableConfig", "PercentileTableMethod"]
