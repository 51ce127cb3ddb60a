"""
Configuration constants for the growth reference engine.
"""

# Package holding the bundled reference tables
DATA_PACKAGE = "growthref.data"

# Percentile anchors carried by CDC/WHO tables, in ascending order
PERCENTILE_ANCHORS = ["P3", "P5", "P10", "P25", "P50", "P75", "P90", "P95", "P97"]

# Intergrowth-21st tables only tabulate these anchors
TABLE_ANCHORS = ["P3", "P5", "P10", "P50", "P90", "P95", "P97"]

# Intergrowth column names -> canonical anchor names
INTERGROWTH_COLUMNS = {
    "3rd": "P3",
    "5th": "P5",
    "10th": "P10",
    "50th": "P50",
    "90th": "P90",
    "95th": "P95",
    "97th": "P97",
}

# Standard normal quantiles of each anchor, used by the Intergrowth z-score estimate
ANCHOR_ZSCORES = {
    "P3": -1.88,
    "P5": -1.645,
    "P10": -1.28,
    "P50": 0.0,
    "P90": 1.28,
    "P95": 1.645,
    "P97": 1.88,
}

# Abramowitz & Stegun 7.1.26 coefficients (max abs error ~1.5e-7)
ERF_A1 = 0.254829592
ERF_A2 = -0.284496736
ERF_A3 = 1.421413741
ERF_A4 = -1.453152027
ERF_A5 = 1.061405429
ERF_P = 0.3275911

# Gestational age domain for Intergrowth-21st
GESTATIONAL_WEEKS_MIN = 24
GESTATIONAL_WEEKS_MAX = 42
GESTATIONAL_DAYS_MAX = 6
DAYS_PER_WEEK = 7

# Plausibility caps used by the CDC validators (kg / cm)
CDC_MAX_WEIGHT_KG = 300.0
CDC_MAX_HEIGHT_CM = 250.0

# Unit mismatch heuristics for batch frames
UNIT_WARNING_HEIGHT_MEAN_CM = 20.0
UNIT_WARNING_HEIGHT_P95_CM = 200.0
UNIT_WARNING_WEIGHT_P99_KG = 300.0

# Decimal places of reference curve values
CURVE_DECIMALS = 2
