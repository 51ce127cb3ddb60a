"""
Z-Score and Percentile Calculation Utilities for Growth Measurements

This module provides scalar and vectorized functions converting an
anthropometric value to a z-score and percentile, either through the LMS
transformation (CDC, WHO) or by direct interpolation in a percentile table
(Intergrowth-21st).
"""

from typing import Dict, Mapping, Optional
import math

import numpy as np
from numba import jit
from scipy import stats

from .config import (
    ANCHOR_ZSCORES,
    ERF_A1,
    ERF_A2,
    ERF_A3,
    ERF_A4,
    ERF_A5,
    ERF_P,
    TABLE_ANCHORS,
)
from .errors import ComputationError

SQRT2 = math.sqrt(2.0)


def erf(x: float) -> float:
    """
    Error function, Abramowitz & Stegun formula 7.1.26.

    The approximation is kept as published (max abs error ~1.5e-7) so that
    percentiles match the values clinicians see on existing charts; note it
    gives erf(0) ~ 1e-9 rather than exactly 0.
    """
    sign = 1.0 if x >= 0 else -1.0
    x = abs(x)
    t = 1.0 / (1.0 + ERF_P * x)
    y = 1.0 - (
        ((((ERF_A5 * t + ERF_A4) * t) + ERF_A3) * t + ERF_A2) * t + ERF_A1
    ) * t * math.exp(-x * x)
    return sign * y


def zscore_to_percentile(z: float) -> float:
    """Percentile (0-100) of a standard normal z-score."""
    return 100.0 * 0.5 * (1.0 + erf(z / SQRT2))


def lms_zscore(value: float, L: float, M: float, S: float) -> float:
    """
    Calculate the LMS z-score of a single measurement.

    Implements the LMS method from Cole (1990): three curves, median (M),
    coefficient of variation (S) and Box-Cox power (L), normalize a skewed
    measurement so it can be read in standard deviation units.

    For L != 0: z = ((X/M)^L - 1) / (L * S)
    For L == 0: z = ln(X/M) / S

    Args:
        value: Observed measurement (kg, cm or kg/m2), > 0
        L: Box-Cox power
        M: Median at age/sex
        S: Coefficient of variation at age/sex

    Returns:
        The z-score.

    Raises:
        ComputationError: If M or S is zero or the result is not finite.
    """
    if M == 0 or S == 0:
        raise ComputationError(f"Invalid LMS parameters: M={M}, S={S}")
    try:
        if L == 0:
            z = math.log(value / M) / S
        else:
            z = (math.pow(value / M, L) - 1.0) / (L * S)
    except (ValueError, OverflowError, ZeroDivisionError) as e:
        raise ComputationError(
            f"LMS transform failed for value={value}, L={L}, M={M}, S={S}: {e}"
        ) from e
    if not math.isfinite(z):
        raise ComputationError(f"Non-finite z-score for value={value}, L={L}, M={M}, S={S}")
    return z


def lms_value(z: float, L: float, M: float, S: float) -> float:
    """Inverse LMS transform: the measurement lying at z-score `z`."""
    if L == 0:
        return M * math.exp(S * z)
    return M * math.pow(1.0 + L * S * z, 1.0 / L)


def value_at_percentile(percentile: float, L: float, M: float, S: float) -> float:
    """
    Measurement lying at a given percentile of the LMS distribution.

    Args:
        percentile: Percentile in the open interval (0, 100)
        L, M, S: LMS parameters at the age of interest

    Returns:
        The measurement value.
    """
    if not 0 < percentile < 100:
        raise ComputationError(f"Percentile must be in (0, 100), got {percentile}")
    z = float(stats.norm.ppf(percentile / 100.0))
    return lms_value(z, L, M, S)


@jit(nopython=True, cache=True)
def lms_zscore_array(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Vectorized LMS z-scores.

    Same transform as `lms_zscore`. Entries with a non-finite value, a
    non-positive M or S, or a missing parameter yield NaN instead of raising,
    so a batch is never aborted by one bad row.

    Args:
        X: Observed values
        L: Box-Cox power per entry
        M: Median per entry
        S: Coefficient of variation per entry

    Returns:
        Z-scores with the shape of X
    """
    if X.size == 0:
        return np.full_like(X, np.nan)
    original_shape = X.shape
    X_flat = X.ravel()
    L_flat = L.ravel()
    M_flat = M.ravel()
    S_flat = S.ravel()

    z_flat = np.full_like(X_flat, np.nan, dtype=np.float64)

    valid = (
        np.isfinite(X_flat)
        & (X_flat > 0)
        & np.isfinite(L_flat)
        & (M_flat > 0)
        & (S_flat > 0)
    )

    mask_l_zero = valid & (L_flat == 0)
    if np.any(mask_l_zero):
        z_flat[mask_l_zero] = (
            np.log(X_flat[mask_l_zero] / M_flat[mask_l_zero]) / S_flat[mask_l_zero]
        )

    mask_l_nonzero = valid & (L_flat != 0)
    if np.any(mask_l_nonzero):
        numerator = (X_flat[mask_l_nonzero] / M_flat[mask_l_nonzero]) ** L_flat[
            mask_l_nonzero
        ] - 1
        denominator = L_flat[mask_l_nonzero] * S_flat[mask_l_nonzero]
        z_flat[mask_l_nonzero] = numerator / denominator

    return z_flat.reshape(original_shape)


def zscore_to_percentile_array(z: np.ndarray) -> np.ndarray:
    """Vectorized `zscore_to_percentile`; NaN in, NaN out."""
    z = np.asarray(z, dtype=np.float64)
    x = z / SQRT2
    sign = np.where(x >= 0, 1.0, -1.0)
    ax = np.abs(x)
    t = 1.0 / (1.0 + ERF_P * ax)
    y = 1.0 - (
        ((((ERF_A5 * t + ERF_A4) * t) + ERF_A3) * t + ERF_A2) * t + ERF_A1
    ) * t * np.exp(-ax * ax)
    return 100.0 * 0.5 * (1.0 + sign * y)


def _table_anchors(percentiles: Mapping[str, float]) -> Dict[float, float]:
    """Present table anchors as {percentile: value}, ascending."""
    return {
        float(anchor[1:]): float(percentiles[anchor])
        for anchor in TABLE_ANCHORS
        if anchor in percentiles
    }


def table_percentile(value: float, percentiles: Mapping[str, float]) -> float:
    """
    Percentile of a value read off a tabulated percentile row.

    Values below P3 clamp to 0 and above P97 to 100. Between anchors the
    percentile is interpolated linearly inside the first bracket
    [v_i, v_i+1] of non-zero width containing the value. A value that falls
    in no bracket (only possible for non-monotone rows) reports the median.

    Args:
        value: Observed measurement
        percentiles: Anchor values keyed 'P3'..'P97'

    Returns:
        Percentile in [0, 100]

    Raises:
        ComputationError: If only zero-width brackets contain the value, or
            P3/P97 are missing.
    """
    anchors = _table_anchors(percentiles)
    if 3.0 not in anchors or 97.0 not in anchors:
        raise ComputationError("Percentile table row must carry P3 and P97")

    if value < anchors[3.0]:
        return 0.0
    if value > anchors[97.0]:
        return 100.0

    points = list(anchors.items())
    degenerate = None
    for (p_lo, v_lo), (p_hi, v_hi) in zip(points, points[1:]):
        if v_lo <= value <= v_hi:
            if v_hi == v_lo:
                degenerate = degenerate or f"P{p_lo:g}-P{p_hi:g}"
                continue
            return p_lo + (value - v_lo) / (v_hi - v_lo) * (p_hi - p_lo)
    if degenerate is not None:
        raise ComputationError(
            f"Degenerate percentile bracket {degenerate} at value {value}"
        )
    return 50.0


def table_zscore(value: float, percentiles: Mapping[str, float]) -> Optional[float]:
    """
    Estimate a z-score from a tabulated percentile row.

    Interpolates linearly between the normal quantiles of the bracketing
    anchors; outside the table the first or last anchor pair is
    extrapolated. Zero-width pairs are never used. Returns None when fewer
    than two anchors are present.

    Raises:
        ComputationError: If every anchor pair has zero width.
    """
    table = [
        (ANCHOR_ZSCORES[anchor], float(percentiles[anchor]))
        for anchor in TABLE_ANCHORS
        if anchor in percentiles
    ]
    if len(table) < 2:
        return None

    lower = None
    for i in range(len(table) - 1):
        if table[i + 1][1] == table[i][1]:
            continue
        if lower is None or value >= table[i][1]:
            lower = i
    if lower is None:
        raise ComputationError(f"Degenerate percentile row at value {value}")
    z_lo, v_lo = table[lower]
    z_hi, v_hi = table[lower + 1]
    return z_lo + (value - v_lo) / (v_hi - v_lo) * (z_hi - z_lo)
