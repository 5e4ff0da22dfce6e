# exitcast/ui/inputs.py
"""
Contains functions for rendering Streamlit input widgets in the sidebar
and collecting their values into a SimulationInputs object.
"""

import streamlit as st
import logging
from typing import Any, Optional

from ..core.inputs import SimulationInputs
from ..core.constants import (
    FMT_CURRENCY_ZERO_DP, FMT_INTEGER, FMT_DECIMAL_FOUR_DP, MAX_NUM_SIMULATIONS
)

logger = logging.getLogger(__name__)


# --- Helper to Get Input Value from Session State ---
def get_input_value(key: str, default_value_from_class: Any) -> Any:
    """
    Retrieves the current value for an input key from st.session_state['inputs'],
    falling back to the SimulationInputs default.
    """
    if "inputs" not in st.session_state:
        logger.warning("Initializing st.session_state['inputs'] within get_input_value. Should be done in app.py.")
        st.session_state["inputs"] = {}
    return st.session_state["inputs"].get(key, default_value_from_class)


# --- Individual Input Rendering Functions ---
def _render_property_inputs(default_inputs: SimulationInputs):
    """Renders purchase price and current NOI inputs."""
    with st.expander("🏢 Property Info", expanded=True):
        st.number_input(
            "Purchase Price ($)", min_value=1.0,
            value=float(get_input_value("purchase_price", default_inputs.purchase_price)),
            step=100000.0, format=FMT_CURRENCY_ZERO_DP, key="input_purchase_price",
            help="Total acquisition price of the property."
        )
        st.number_input(
            "Current NOI ($/Yr)", min_value=0.0,
            value=float(get_input_value("current_noi", default_inputs.current_noi)),
            step=10000.0, format=FMT_CURRENCY_ZERO_DP, key="input_current_noi",
            help="Net Operating Income today. Simulated rent growth is applied to this figure."
        )


def _render_simulation_setup_inputs(default_inputs: SimulationInputs):
    """Renders hold period, simulation count, seed and worker inputs."""
    with st.expander("⚙️ Simulation Control", expanded=False):
        st.number_input(
            "Hold Period (Years)", min_value=1, max_value=30, step=1,
            value=int(get_input_value("hold_years", default_inputs.hold_years)),
            key="input_hold_years",
            help="Years between purchase and sale. Both forecasts are read at this horizon."
        )
        st.number_input(
            "Number of Simulations", min_value=1, max_value=MAX_NUM_SIMULATIONS,
            value=int(get_input_value("num_simulations", default_inputs.num_simulations)),
            step=1000, key="input_num_simulations", format=FMT_INTEGER
        )
        st.number_input(
            "Random Seed", min_value=0, step=1,
            value=int(get_input_value("random_seed", default_inputs.random_seed)),
            key="input_random_seed", format=FMT_INTEGER,
            help="Same seed and inputs reproduce the same distribution."
        )
        st.number_input(
            "Worker Threads", min_value=1, max_value=32, step=1,
            value=int(get_input_value("n_jobs", default_inputs.n_jobs)),
            key="input_n_jobs", format=FMT_INTEGER,
            help="Results are identical for any number of workers."
        )


def _render_model_inputs(default_inputs: SimulationInputs):
    """Renders cap-rate model search settings."""
    with st.expander("📈 Cap Rate Model", expanded=False):
        st.number_input(
            "Smoothing Window (Months)", min_value=1, max_value=12, step=1,
            value=int(get_input_value("cap_rate_smoothing_window", default_inputs.cap_rate_smoothing_window)),
            key="input_cap_rate_smoothing_window", format=FMT_INTEGER
        )
        st.number_input(
            "Max ARIMA Order (p, q)", min_value=0, max_value=4, step=1,
            value=int(get_input_value("max_arima_order", default_inputs.max_arima_order)),
            key="input_max_arima_order", format=FMT_INTEGER
        )
        st.number_input(
            "Max Seasonal Order (P, Q)", min_value=0, max_value=2, step=1,
            value=int(get_input_value("max_seasonal_order", default_inputs.max_seasonal_order)),
            key="input_max_seasonal_order", format=FMT_INTEGER
        )


def _render_rebase_inputs(default_inputs: SimulationInputs):
    """Renders the rent-growth rebasing toggle and offset settings."""
    with st.expander("🔧 Rent Growth Rebasing", expanded=False):
        st.checkbox(
            "Rebase rent growth to today",
            value=bool(get_input_value("apply_rent_rebase", default_inputs.apply_rent_rebase)),
            key="input_apply_rent_rebase",
            help="Calibration heuristic: perturbs each forecast row once and measures growth from the current level."
        )
        st.number_input(
            "Offset Mean", step=0.0005,
            value=float(get_input_value("rebase_offset_mean", default_inputs.rebase_offset_mean)),
            key="input_rebase_offset_mean", format=FMT_DECIMAL_FOUR_DP
        )
        st.number_input(
            "Offset Std Dev", min_value=0.0, step=0.0005,
            value=float(get_input_value("rebase_offset_sd", default_inputs.rebase_offset_sd)),
            key="input_rebase_offset_sd", format=FMT_DECIMAL_FOUR_DP
        )


def render_sidebar_inputs(initial_inputs: Optional[SimulationInputs] = None) -> None:
    """Renders all input sections in the Streamlit sidebar."""
    st.header("📊 Simulation Inputs")
    defaults = initial_inputs if initial_inputs is not None else SimulationInputs()
    if "inputs" not in st.session_state or not st.session_state["inputs"]:
        logger.info("Initializing st.session_state['inputs'] for sidebar rendering.")
        st.session_state["inputs"] = defaults.to_dict()

    _render_property_inputs(defaults)
    _render_simulation_setup_inputs(defaults)
    st.markdown("---")
    st.subheader("Forecast Settings")
    _render_model_inputs(defaults)
    _render_rebase_inputs(defaults)


def collect_sidebar_inputs() -> SimulationInputs:
    """
    Builds SimulationInputs from the widget values in session state, falling
    back to the stored inputs (or class defaults) for keys without a widget.
    """
    merged = dict(st.session_state.get("inputs", {}))
    defaults = SimulationInputs().to_dict()
    for key, default_value in defaults.items():
        widget_key = f"input_{key}"
        if widget_key not in st.session_state:
            continue
        ui_value = st.session_state[widget_key]
        if isinstance(default_value, bool):
            merged[key] = bool(ui_value)
        elif isinstance(default_value, int):
            merged[key] = int(round(float(ui_value)))
        elif isinstance(default_value, float):
            merged[key] = float(ui_value)
        else:
            merged[key] = ui_value
    return SimulationInputs.from_dict(merged)
