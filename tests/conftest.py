import pandas as pd
import pytest

from growthref.engine import GrowthEngine
from growthref.reference import ReferenceStore, load_series


@pytest.fixture
def engine() -> GrowthEngine:
    """Engine over the bundled reference tables with default configuration."""
    return GrowthEngine()


@pytest.fixture
def lms_frame() -> pd.DataFrame:
    """Small WHO-style LMS table: two ages per sex, no percentile columns."""
    return pd.DataFrame(
        {
            "Sex": [1, 1, 2, 2],
            "Agemos": [0, 12, 0, 12],
            "L": [0.2, 0.1, 0.2, 0.1],
            "M": [4.0, 10.0, 3.8, 9.5],
            "S": [0.12, 0.1, 0.12, 0.1],
        }
    )


@pytest.fixture
def table_records() -> list:
    """Intergrowth-style percentile rows for boys at 30+0 and 31+0 weeks."""
    return [
        {"sex": 1, "age": "30+0", "3rd": 1.0, "5th": 1.1, "10th": 1.2, "50th": 1.5, "90th": 1.8, "95th": 1.9, "97th": 2.0},
        {"sex": 1, "age": "31+0", "3rd": 1.4, "5th": 1.5, "10th": 1.6, "50th": 1.9, "90th": 2.2, "95th": 2.3, "97th": 2.4},
    ]


@pytest.fixture
def small_store(lms_frame, table_records) -> ReferenceStore:
    """Store with a synthetic WHO weight table and Intergrowth weight table."""
    return ReferenceStore(
        {
            ("who", "weight"): load_series(lms_frame, "who", "weight"),
            ("intergrowth", "weight"): load_series(table_records, "intergrowth", "weight"),
        }
    )
