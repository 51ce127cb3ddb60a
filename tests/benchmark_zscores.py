"""
Performance benchmarks for batch z-score calculations.
Targets: <1μs/row for the vectorized LMS transform, <5s for 10K DataFrame rows.
"""

import time
import numpy as np
import pandas as pd

from growthref.engine import GrowthEngine
from growthref.zscores import lms_zscore_array


def benchmark_lms_zscore_array():
    """Benchmark the vectorized LMS transform."""
    n = 100000

    np.random.seed(42)
    X = np.random.normal(50, 10, n)
    L = np.random.normal(0.1, 0.05, n)
    M = np.full(n, 50.0)
    S = np.full(n, 0.1)

    # Warm-up JIT
    _ = lms_zscore_array(X[:100], L[:100], M[:100], S[:100])

    start_time = time.perf_counter()
    z_scores = lms_zscore_array(X, L, M, S)
    elapsed_seconds = time.perf_counter() - start_time
    microseconds_per_row = (elapsed_seconds * 1e6) / n

    print(f"lms_zscore_array: {microseconds_per_row:.4f} μs/row over {n} rows")

    assert microseconds_per_row < 1.0, f"{microseconds_per_row:.4f} μs/row"
    assert len(z_scores) == n
    assert not np.all(np.isnan(z_scores))


def benchmark_calculate_frame():
    """Benchmark DataFrame scoring against the bundled CDC tables."""
    n = 10000

    np.random.seed(42)
    df = pd.DataFrame(
        {
            "sex": np.random.choice(["M", "F"], n),
            "age_months": np.random.uniform(24, 240, n),
            "value": np.random.normal(120, 15, n),
        }
    )
    engine = GrowthEngine()

    start_time = time.perf_counter()
    out = engine.calculate_frame(df, "cdc_child", "height")
    elapsed_seconds = time.perf_counter() - start_time

    print(f"calculate_frame: {elapsed_seconds:.2f}s for {n} rows")

    assert elapsed_seconds < 5.0, f"{elapsed_seconds:.2f}s"
    assert out["z_score"].notna().all()


def test_performance_targets():
    """Run performance validations."""
    benchmark_lms_zscore_array()
    benchmark_calculate_frame()
