import pytest

from exitcast.core.inputs import SimulationInputs
from exitcast.core.constants import DEFAULT_RANDOM_SEED


def test_defaults_are_valid():
    inputs = SimulationInputs()
    inputs.validate()
    assert inputs.random_seed == DEFAULT_RANDOM_SEED


def test_horizons_follow_hold_period():
    inputs = SimulationInputs(hold_years=10)
    assert inputs.cap_rate_horizon == 120
    assert inputs.rent_horizon == 40


@pytest.mark.parametrize("overrides", [
    {"purchase_price": 0.0},
    {"hold_years": 0},
    {"num_simulations": 0},
    {"n_jobs": 0},
    {"cap_rate_smoothing_window": 0},
    {"max_arima_order": -1},
    {"rebase_offset_sd": -0.01},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        SimulationInputs(**overrides).validate()


def test_dict_round_trip():
    inputs = SimulationInputs(hold_years=3, cap_rate_start="2005-01", rent_start="2005 Q1")
    assert SimulationInputs.from_dict(inputs.to_dict()) == inputs
