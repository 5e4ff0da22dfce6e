# exitcast/core/pipeline.py
"""
End-to-end run: historical data -> preprocessed series -> forecasts ->
horizon bands -> Monte Carlo -> valuation vectors.
"""

import dataclasses
import logging
import time
from typing import Optional

import numpy as np
import pandas as pd

from .inputs import SimulationInputs
from .constants import PERIODS_PER_YEAR, CAP_RATE_FREQ, RENT_FREQ
from .forecast import ForecastModel, build_default_models
from .horizon import horizon_offset, select_horizon, horizon_band, rebase_rent_growth, band_from_row
from .simulation import SimulationResults, run_monte_carlo
from .utils import derive_seed_sequences
from ..data.market_data import aggregate_cap_rates, build_rent_growth_series

logger = logging.getLogger(__name__)


def run_pipeline(
    cap_rate_observations: pd.DataFrame,
    rent_observations: pd.DataFrame,
    inputs: Optional[SimulationInputs] = None,
    cap_rate_model: Optional[ForecastModel] = None,
    rent_model: Optional[ForecastModel] = None
) -> SimulationResults:
    """
    Runs the full forecast + simulation for one property.

    Args:
        cap_rate_observations: Transaction-level {date, cap_rate} rows.
        rent_observations: {period, rent_index} rows with "YYYY Qn" labels.
        inputs: Run configuration. Defaults to SimulationInputs().
        cap_rate_model: Overrides the automatic SARIMA model.
        rent_model: Overrides the STL + naive model.

    Returns:
        SimulationResults with exit_caps_sim, exit_year_rents_sim,
        exit_year_noi_sim, sale_price_sim and roi_sim.

    Any DataError, ModelFitError, UncertaintyError, HorizonIndexError or
    DivisionError aborts the run and is propagated to the caller.
    """
    start_time = time.time()
    inputs = inputs or SimulationInputs()
    inputs.validate()
    default_cap_model, default_rent_model = build_default_models(inputs)
    cap_rate_model = cap_rate_model or default_cap_model
    rent_model = rent_model or default_rent_model

    # One root seed; independent child streams for rebasing and the two samplers.
    rebase_seed, cap_seed, rent_seed = derive_seed_sequences(inputs.random_seed, 3)

    # --- Preprocess ---
    cap_stats = aggregate_cap_rates(cap_rate_observations, inputs.cap_rate_start, inputs.cap_rate_end)
    rent_frame = build_rent_growth_series(rent_observations, inputs.rent_start, inputs.rent_end)
    logger.info(f"Prepared {len(cap_stats)} monthly cap-rate points and {len(rent_frame)} quarterly rent points.")

    # --- Forecast ---
    cap_k = horizon_offset(inputs.hold_years, PERIODS_PER_YEAR[CAP_RATE_FREQ])
    rent_k = horizon_offset(inputs.hold_years, PERIODS_PER_YEAR[RENT_FREQ])
    cap_forecast = cap_rate_model.fit(cap_stats["mean"], cap_k)
    rent_forecast = rent_model.fit(rent_frame["cumulative_growth"], rent_k)

    # --- Horizon ---
    cap_band = horizon_band(select_horizon(cap_forecast, cap_k))
    if inputs.apply_rent_rebase:
        rebased = rebase_rent_growth(
            rent_forecast,
            np.random.default_rng(rebase_seed),
            offset_mean=inputs.rebase_offset_mean,
            offset_sd=inputs.rebase_offset_sd,
        )
        rent_band = band_from_row(rebased, rent_k)
    else:
        rent_band = horizon_band(select_horizon(rent_forecast, rent_k))
    logger.info(f"Exit cap band at {cap_band.period}: mean={cap_band.mean:.4f}, sd={cap_band.stddev:.4f}. "
                f"Rent growth band at {rent_band.period}: mean={rent_band.mean:.4f}, sd={rent_band.stddev:.4f}.")

    # --- Simulate ---
    results = run_monte_carlo(inputs, cap_band, rent_band, seeds=(cap_seed, rent_seed))
    results = dataclasses.replace(results, models={
        "cap_rate": cap_forecast.model_identifier,
        "rent_growth": rent_forecast.model_identifier,
    })
    logger.info(f"Pipeline finished in {time.time() - start_time:.2f}s.")
    return results
