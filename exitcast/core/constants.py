# exitcast/core/constants.py
"""
Define constants, default configuration values and formatting strings.
Logging setup lives in app.py.
"""

import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

# --- File Paths & Config ---
# SCENARIO_DIR: Directory to save/load scenario JSON files.
SCENARIO_DIR = Path("scenarios")
# Default locations of the two historical datasets (relative to app.py).
CAP_RATE_DATA_PATH = Path("data/cap_rates.csv")
RENT_INDEX_DATA_PATH = Path("data/rent_index.csv")

# --- Input Column Names ---
CAP_RATE_DATE_COL = "date"
CAP_RATE_VALUE_COL = "cap_rate"
RENT_PERIOD_COL = "period"
RENT_VALUE_COL = "rent_index"

# --- Series Frequencies ---
MONTHS_PER_YEAR: int = 12
QUARTERS_PER_YEAR: int = 4
# PERIODS_PER_YEAR: pandas period frequency alias -> periods in one year.
PERIODS_PER_YEAR: Dict[str, int] = {"M": MONTHS_PER_YEAR, "Q": QUARTERS_PER_YEAR}
CAP_RATE_FREQ = "M"
RENT_FREQ = "Q"

# --- Forecast Settings ---
# CONFIDENCE_LEVEL: Width of the interval produced by both forecast models.
CONFIDENCE_LEVEL = 0.95
# Z_95: Two-sided 95% normal quantile, used for naive forecast intervals.
Z_95 = 1.959963984540054
# INTERVAL_SD_MULTIPLE: The 95% interval is treated as +/- 2 standard deviations.
INTERVAL_SD_MULTIPLE = 2.0
# ADF_PVALUE_THRESHOLD: Above this ADF p-value the cap-rate series is differenced once.
ADF_PVALUE_THRESHOLD = 0.05
DEFAULT_SMOOTHING_WINDOW = 3
DEFAULT_MAX_ARIMA_ORDER = 2
DEFAULT_MAX_SEASONAL_ORDER = 1

# --- Sampling ---
# DEFAULT_RANDOM_SEED: Fixed seed for reproducible reporting. Never derived from system time.
DEFAULT_RANDOM_SEED = 20240101
# SAMPLE_CHUNK_SIZE: Draws per seeded chunk. Fixed so results do not depend on worker count.
SAMPLE_CHUNK_SIZE = 100_000
# Random offset applied once per forecast row when rebasing rent growth.
DEFAULT_REBASE_OFFSET_MEAN = 0.0
DEFAULT_REBASE_OFFSET_SD = 0.0005

# --- Numerical Constants ---
# FLOAT_ATOL: Absolute tolerance for floating-point comparisons.
FLOAT_ATOL = 1e-9
ROI_DECIMALS = 2

# --- Formatting Constants ---
FMT_CURRENCY_ZERO_DP = "%.0f"
FMT_DECIMAL_FOUR_DP = "%.4f"
FMT_INTEGER = "%d"

# --- Default Simulation Parameters ---
DEFAULT_PURCHASE_PRICE = 31_500_000.0
DEFAULT_CURRENT_NOI = 3_500_000.0
DEFAULT_HOLD_PERIOD = 10
DEFAULT_NUM_SIMULATIONS = 10_000
MAX_NUM_SIMULATIONS = 1_000_000
