import pytest
import numpy as np
import pandas as pd

from exitcast.core.errors import DataError, HorizonIndexError
from exitcast.core.forecast import ForecastPoint, ForecastResult
from exitcast.core.inputs import SimulationInputs
from exitcast.core.pipeline import run_pipeline
from exitcast.core.simulation import OUTPUT_VECTORS
from exitcast.core.constants import DEFAULT_RANDOM_SEED
from exitcast.data.market_data import build_rent_growth_series


class FlatForecaster:
    """Constant forecast with a fixed interval half-width; optionally truncated"""

    def __init__(self, level, half_width, periods_per_year, max_points=None):
        self.level = level
        self.half_width = half_width
        self.periods_per_year = periods_per_year
        self.max_points = max_points

    def fit(self, series, horizon):
        n = horizon if self.max_points is None else min(horizon, self.max_points)
        periods = pd.period_range(series.index[-1] + 1, periods=n, freq=series.index.freq)
        points = tuple(
            ForecastPoint(period=p, point_estimate=self.level,
                          lower_bound_at_95pct=self.level - self.half_width,
                          upper_bound_at_95pct=self.level + self.half_width)
            for p in periods
        )
        return ForecastResult(model_identifier="Flat", points=points,
                              periods_per_year=self.periods_per_year,
                              last_observed=float(series.iloc[-1]))


@pytest.fixture
def fast_inputs():
    """Five-year hold with a small SARIMA grid and a few thousand simulations"""
    return SimulationInputs(num_simulations=2000, hold_years=5, random_seed=11, max_arima_order=1)


def test_end_to_end_run(cap_rate_transactions, rent_index_observations, fast_inputs):
    results = run_pipeline(cap_rate_transactions, rent_index_observations, fast_inputs)

    for name in OUTPUT_VECTORS:
        assert len(getattr(results, name)) == fast_inputs.num_simulations, name
    assert results.cap_rate_band.period == pd.Period("2025-12", "M")
    assert results.rent_growth_band.period == pd.Period("2025Q4", "Q")
    assert results.models["cap_rate"].startswith("SARIMA")
    assert results.models["rent_growth"] == "STL+Naive"
    assert (results.exit_caps_sim >= 0).all()
    assert np.isfinite(np.mean(results.finite("roi_sim")))


def test_end_to_end_is_reproducible(cap_rate_transactions, rent_index_observations, fast_inputs):
    """Same data, inputs and seed give bit-identical vectors"""
    first = run_pipeline(cap_rate_transactions, rent_index_observations, fast_inputs)
    second = run_pipeline(cap_rate_transactions, rent_index_observations, fast_inputs)
    for name in OUTPUT_VECTORS:
        np.testing.assert_array_equal(getattr(first, name), getattr(second, name))


def test_custom_models_and_rebase(cap_rate_transactions, rent_index_observations):
    """With a zero offset sd the rent band is the forecast measured from today's cumulative growth"""
    inputs = SimulationInputs(num_simulations=500, hold_years=3, rebase_offset_sd=0.0)
    results = run_pipeline(
        cap_rate_transactions, rent_index_observations, inputs,
        cap_rate_model=FlatForecaster(0.06, 0.02, 12),
        rent_model=FlatForecaster(0.30, 0.10, 4),
    )

    current = build_rent_growth_series(rent_index_observations)["cumulative_growth"].iloc[-1]

    assert results.cap_rate_band.mean == pytest.approx(0.06)
    assert results.cap_rate_band.stddev == pytest.approx(0.01)
    assert results.rent_growth_band.mean == pytest.approx(0.30 - current)
    assert results.rent_growth_band.stddev == pytest.approx(0.05)
    assert results.models == {"cap_rate": "Flat", "rent_growth": "Flat"}


def test_rebase_can_be_switched_off(cap_rate_transactions, rent_index_observations):
    inputs = SimulationInputs(num_simulations=500, hold_years=3, apply_rent_rebase=False)
    results = run_pipeline(
        cap_rate_transactions, rent_index_observations, inputs,
        cap_rate_model=FlatForecaster(0.06, 0.02, 12),
        rent_model=FlatForecaster(0.30, 0.10, 4),
    )
    assert results.rent_growth_band.mean == pytest.approx(0.30)


def test_hold_beyond_forecast_raises(cap_rate_transactions, rent_index_observations):
    inputs = SimulationInputs(num_simulations=100, hold_years=10)
    with pytest.raises(HorizonIndexError):
        run_pipeline(
            cap_rate_transactions, rent_index_observations, inputs,
            cap_rate_model=FlatForecaster(0.06, 0.02, 12, max_points=60),
            rent_model=FlatForecaster(0.30, 0.10, 4),
        )


def test_bad_rent_labels_abort_the_run(cap_rate_transactions):
    rents = pd.DataFrame({"period": ["2020 Q1", "2020-06"], "rent_index": [100.0, 101.0]})
    with pytest.raises(DataError):
        run_pipeline(cap_rate_transactions, rents, SimulationInputs(num_simulations=100),
                     cap_rate_model=FlatForecaster(0.06, 0.02, 12),
                     rent_model=FlatForecaster(0.30, 0.10, 4))


def test_invalid_inputs_abort_before_any_work(cap_rate_transactions, rent_index_observations):
    with pytest.raises(ValueError):
        run_pipeline(cap_rate_transactions, rent_index_observations, SimulationInputs(purchase_price=0.0))


def _expected_inverse(mu, sigma):
    """E[1 / X] for X ~ N(mu, sigma) with sigma << mu (series expansion)"""
    r = (sigma / mu) ** 2
    return (1.0 + r + 3.0 * r ** 2 + 15.0 * r ** 3) / mu


def test_output_distribution_matches_reference(cap_rate_transactions, rent_index_observations):
    """
    Flat forecasts fix both bands exactly: exit cap N(0.06, 0.002) and
    cumulative rent growth N(0.30 - current, 0.05). The simulated ROI and
    rent-growth distributions must match the closed-form reference.
    """
    inputs = SimulationInputs(num_simulations=20_000, hold_years=3, random_seed=DEFAULT_RANDOM_SEED,
                              rebase_offset_sd=0.0)
    results = run_pipeline(
        cap_rate_transactions, rent_index_observations, inputs,
        cap_rate_model=FlatForecaster(0.06, 0.004, 12),
        rent_model=FlatForecaster(0.30, 0.10, 4),
    )

    current = build_rent_growth_series(rent_index_observations)["cumulative_growth"].iloc[-1]
    growth_mean = 0.30 - current
    noi_multiple = inputs.current_noi / inputs.purchase_price
    expected_roi = (1.0 + growth_mean) * noi_multiple * _expected_inverse(0.06, 0.002) - 1.0
    expected_median_roi = (1.0 + growth_mean) * noi_multiple / 0.06 - 1.0

    assert results.num_flagged == 0
    assert np.mean(results.roi_sim) == pytest.approx(expected_roi, abs=0.005)
    assert np.median(results.roi_sim) == pytest.approx(expected_median_roi, abs=0.015)
    rents = results.exit_year_rents_sim
    assert np.median(rents) == pytest.approx(growth_mean, abs=0.003)
    assert np.percentile(rents, 5) == pytest.approx(growth_mean - 1.644854 * 0.05, abs=0.004)
    assert np.percentile(rents, 95) == pytest.approx(growth_mean + 1.644854 * 0.05, abs=0.004)
    assert np.mean(results.exit_caps_sim) == pytest.approx(0.06, abs=1e-4)


def test_default_models_sample_their_bands(cap_rate_transactions, rent_index_observations, fast_inputs):
    """Draws from the fitted models agree with the bands they were sampled from"""
    results = run_pipeline(cap_rate_transactions, rent_index_observations, fast_inputs)
    band = results.rent_growth_band
    n = fast_inputs.num_simulations
    tolerance = 5.0 * band.stddev / np.sqrt(n) + 1e-12

    assert np.mean(results.exit_year_rents_sim) == pytest.approx(band.mean, abs=tolerance)
    assert np.std(results.exit_year_rents_sim) == pytest.approx(band.stddev, rel=0.1, abs=1e-12)
    expected_noi = fast_inputs.current_noi * (1.0 + band.mean)
    assert np.mean(results.exit_year_noi_sim) == pytest.approx(expected_noi, abs=fast_inputs.current_noi * tolerance)
