# exitcast/core/inputs.py
"""
Define the SimulationInputs dataclass holding every parameter of a run.
Includes calculated properties for the forecast horizons.
"""

from dataclasses import dataclass, asdict, fields
from typing import Dict, Any, Optional
import logging

from .constants import (
    DEFAULT_PURCHASE_PRICE, DEFAULT_CURRENT_NOI, DEFAULT_HOLD_PERIOD,
    DEFAULT_NUM_SIMULATIONS, DEFAULT_RANDOM_SEED, DEFAULT_SMOOTHING_WINDOW,
    DEFAULT_MAX_ARIMA_ORDER, DEFAULT_MAX_SEASONAL_ORDER,
    DEFAULT_REBASE_OFFSET_MEAN, DEFAULT_REBASE_OFFSET_SD,
    MONTHS_PER_YEAR, QUARTERS_PER_YEAR, MAX_NUM_SIMULATIONS
)

logger = logging.getLogger(__name__)


@dataclass
class SimulationInputs:
    """Holds all input parameters for the forecast and simulation."""
    # --- Property & Setup ---
    purchase_price: float = DEFAULT_PURCHASE_PRICE # Acquisition price ($)
    current_noi: float = DEFAULT_CURRENT_NOI # Current annual Net Operating Income ($)
    hold_years: int = DEFAULT_HOLD_PERIOD # Years between purchase and sale
    num_simulations: int = DEFAULT_NUM_SIMULATIONS
    random_seed: int = DEFAULT_RANDOM_SEED
    n_jobs: int = 1 # Worker threads for sampling (results do not depend on this)

    # --- Historical Ranges (None = use the full dataset) ---
    cap_rate_start: Optional[str] = None # e.g. "2001-01"
    cap_rate_end: Optional[str] = None
    rent_start: Optional[str] = None # e.g. "2001 Q1"
    rent_end: Optional[str] = None

    # --- Cap Rate Model ---
    cap_rate_smoothing_window: int = DEFAULT_SMOOTHING_WINDOW # Months in the centered rolling mean
    max_arima_order: int = DEFAULT_MAX_ARIMA_ORDER # Upper bound for p and q in the order search
    max_seasonal_order: int = DEFAULT_MAX_SEASONAL_ORDER # Upper bound for P and Q

    # --- Rent Growth Rebasing (calibration heuristic) ---
    apply_rent_rebase: bool = True
    rebase_offset_mean: float = DEFAULT_REBASE_OFFSET_MEAN
    rebase_offset_sd: float = DEFAULT_REBASE_OFFSET_SD

    # --- Calculated Properties ---
    @property
    def cap_rate_horizon(self) -> int:
        """Number of monthly forecast periods covering the hold."""
        return self.hold_years * MONTHS_PER_YEAR

    @property
    def rent_horizon(self) -> int:
        """Number of quarterly forecast periods covering the hold."""
        return self.hold_years * QUARTERS_PER_YEAR

    def validate(self) -> None:
        """Raises ValueError describing the first invalid parameter found."""
        if self.purchase_price <= 0:
            raise ValueError(f"purchase_price must be positive, got {self.purchase_price}")
        if self.hold_years < 1:
            raise ValueError(f"hold_years must be at least 1, got {self.hold_years}")
        if not 1 <= self.num_simulations <= MAX_NUM_SIMULATIONS:
            raise ValueError(f"num_simulations must be between 1 and {MAX_NUM_SIMULATIONS:,}, got {self.num_simulations}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs cannot be 0")
        if self.cap_rate_smoothing_window < 1:
            raise ValueError(f"cap_rate_smoothing_window must be at least 1, got {self.cap_rate_smoothing_window}")
        if self.max_arima_order < 0 or self.max_seasonal_order < 0:
            raise ValueError("Model order bounds cannot be negative")
        if self.rebase_offset_sd < 0:
            raise ValueError(f"rebase_offset_sd cannot be negative, got {self.rebase_offset_sd}")

    def to_dict(self) -> Dict[str, Any]:
        """Converts the dataclass instance to a dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationInputs":
        """Builds an instance from a dictionary, ignoring keys the class does not define."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown input keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})
