"""
Main Streamlit application entry point for ExitCast.
Loads the historical cap-rate and rent datasets, runs the forecast and
Monte Carlo pipeline from the exitcast package, and displays the resulting
sale price and ROI distributions.
"""

import streamlit as st
import io
import time
import numpy as np
import logging
from typing import Optional

# --- Basic Configuration ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Project Module Imports ---
try:
    from exitcast.core.inputs import SimulationInputs
    from exitcast.core.constants import CAP_RATE_DATA_PATH, RENT_INDEX_DATA_PATH
    from exitcast.core.errors import ExitCastError
    from exitcast.core.pipeline import run_pipeline
    from exitcast.data.market_data import load_cap_rate_observations, load_rent_index_observations
    from exitcast.ui.inputs import render_sidebar_inputs, collect_sidebar_inputs
    from exitcast.ui.visualizations import plot_distribution, summary_table
    from exitcast.scenarios.scenario_manager import (
        save_scenario, load_scenario, list_saved_scenarios, delete_scenario
    )
except ImportError as e:
    st.error(f"Failed to import ExitCast modules. Ensure the 'exitcast' package is installed. Error: {e}")
    st.stop()

# --- Page Configuration ---
st.set_page_config(
    page_title="ExitCast",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_data(ttl=3600)
def _load_datasets(cap_rate_bytes: Optional[bytes], rent_bytes: Optional[bytes], cap_rates_in_percent: bool):
    """
    Cached wrapper around the two CSV loaders. Uploads are passed as raw bytes
    so the cache is keyed on file contents; None falls back to the bundled files.
    """
    cap_source = io.BytesIO(cap_rate_bytes) if cap_rate_bytes is not None else CAP_RATE_DATA_PATH
    rent_source = io.BytesIO(rent_bytes) if rent_bytes is not None else RENT_INDEX_DATA_PATH
    cap_rates = load_cap_rate_observations(cap_source, percent_values=cap_rates_in_percent)
    rents = load_rent_index_observations(rent_source)
    return cap_rates, rents


def _upload_bytes(upload) -> Optional[bytes]:
    return upload.getvalue() if upload is not None else None


def _render_scenario_files():
    st.subheader("💾 Scenario Files")
    save_name = st.text_input("New Scenario File Name", value="my_scenario", key="save_scenario_name_sidebar")
    if st.button("Save Inputs to File", key="save_button_sidebar"):
        if save_name:
            try:
                path = save_scenario(collect_sidebar_inputs(), filename=save_name)
                st.success(f"Scenario inputs saved to `{path}`")
            except (OSError, TypeError, ValueError) as e:
                st.error(f"Error saving scenario '{save_name}': {e}")
                logger.error(f"Save Scenario Error for '{save_name}': {e}", exc_info=True)
        else:
            st.warning("Please enter a file name.")

    try:
        scenario_files = list_saved_scenarios()
    except OSError as e:
        st.error(f"Error reading scenario directory: {e}")
        scenario_files = []
    if not scenario_files:
        st.info("No saved scenario files found.")
        return

    selected = st.selectbox("Load or Delete Scenario File", options=[""] + scenario_files, index=0, key="scenario_selector_sidebar")
    if not selected:
        return
    col_load, col_delete = st.columns(2)
    with col_load:
        if st.button("✅ Load Inputs", key=f"load_button_{selected}"):
            try:
                loaded = load_scenario(selected)
            except ValueError as e:
                st.error(str(e))
                loaded = None
            if loaded is not None:
                st.session_state["inputs"] = loaded.to_dict()
                for key in loaded.to_dict():
                    st.session_state.pop(f"input_{key}", None)
                st.session_state["results"] = None
                st.success(f"Loaded '{selected}'.")
                time.sleep(1.0)
                st.rerun()
    with col_delete:
        if st.button("🗑️ Delete File", key=f"delete_button_{selected}"):
            try:
                delete_scenario(selected)
                st.success(f"Deleted: {selected}")
                st.rerun()
            except OSError as e:
                st.error(f"Error deleting file: {e}")


def _fmt_money(value: float) -> str:
    return f"${value:,.0f}" if np.isfinite(value) else "N/A"


def _fmt_pct(value: float) -> str:
    return f"{value:.1%}" if np.isfinite(value) else "N/A"


# --- Main Application Logic ---
def main():
    st.title("🏢 ExitCast: Exit Value Risk Simulator")
    st.subheader("Forecast-driven Monte Carlo for a commercial real-estate hold")

    if "inputs" not in st.session_state:
        st.session_state["inputs"] = SimulationInputs().to_dict()
    if "results" not in st.session_state:
        st.session_state["results"] = None

    # --- Sidebar ---
    with st.sidebar:
        run_sim_button = st.button("🚀 Run Simulation", key="run_sim_button", type="primary", use_container_width=True)
        st.markdown("---")
        render_sidebar_inputs(SimulationInputs.from_dict(st.session_state["inputs"]))
        st.markdown("---")
        st.subheader("📁 Historical Data")
        cap_upload = st.file_uploader("Cap Rate Transactions (date, cap_rate)", type="csv")
        rent_upload = st.file_uploader("Rent Index (period, rent_index)", type="csv")
        cap_rates_in_percent = st.checkbox("Cap rates are in percent (5.5 = 5.5%)", value=False)
        st.markdown("---")
        _render_scenario_files()

    # --- Input Processing & Validation ---
    try:
        sim_inputs = collect_sidebar_inputs()
        sim_inputs.validate()
        st.session_state["inputs"] = sim_inputs.to_dict()
    except (TypeError, ValueError) as e:
        st.error(f"Input Configuration Error: {e}. Cannot proceed. Please check sidebar inputs.")
        logger.error(f"Failed to create SimulationInputs from session state: {e}", exc_info=True)
        sim_inputs = None

    # --- Simulation Execution ---
    if run_sim_button and sim_inputs is not None:
        logger.info("Run Simulation button clicked.")
        try:
            with st.spinner(f"Forecasting and running {sim_inputs.num_simulations:,} simulations..."):
                cap_rates, rents = _load_datasets(_upload_bytes(cap_upload), _upload_bytes(rent_upload), cap_rates_in_percent)
                st.session_state["results"] = run_pipeline(cap_rates, rents, sim_inputs)
            logger.info("Simulation finished successfully.")
        except ExitCastError as e:
            st.session_state["results"] = None
            st.error(f"Simulation Error ({type(e).__name__}): {e}")
            logger.error(f"Sim execution failed: {e}", exc_info=True)

    # --- Display Results ---
    st.markdown("---")
    results = st.session_state.get("results")
    if results is None:
        st.info("Adjust inputs in the sidebar and click 'Run Simulation' to see results.")
        return

    tab_keys = ["📊 Summary", "💰 Sale Price", "📈 ROI", "🚪 Drivers", "🔍 Audit"]
    tabs = st.tabs(tab_keys)
    summary = summary_table(results)

    with tabs[tab_keys.index("📊 Summary")]:
        col1, col2, col3 = st.columns(3)
        col1.metric("Mean Sale Price", _fmt_money(summary.loc["Sale Price", "mean"]))
        col1.metric("Median Sale Price", _fmt_money(summary.loc["Sale Price", "median"]))
        col2.metric("Mean ROI", _fmt_pct(summary.loc["ROI", "mean"]))
        col2.metric("Median ROI", _fmt_pct(summary.loc["ROI", "median"]))
        prob_loss = float(np.mean(results.finite("roi_sim") < 0.0)) if results.finite("roi_sim").size else np.nan
        col3.metric("Prob. Loss (ROI < 0%)", _fmt_pct(prob_loss))
        col3.metric("Flagged Simulations", f"{results.num_flagged:,}")
        st.markdown("---")
        st.dataframe(summary)
        st.caption(f"Models: cap rate {results.models.get('cap_rate', 'N/A')}, "
                   f"rent growth {results.models.get('rent_growth', 'N/A')}. Seed {results.random_seed}.")

    with tabs[tab_keys.index("💰 Sale Price")]:
        st.plotly_chart(plot_distribution(results.sale_price_sim, "Simulated Sale Price", "Sale Price", is_currency=True), use_container_width=True)

    with tabs[tab_keys.index("📈 ROI")]:
        st.plotly_chart(plot_distribution(results.roi_sim, "Simulated ROI at Sale", "ROI", color="royalblue", is_percent=True), use_container_width=True)

    with tabs[tab_keys.index("🚪 Drivers")]:
        col_cap, col_rent = st.columns(2)
        with col_cap:
            band = results.cap_rate_band
            st.metric(f"Exit Cap Rate ({band.period})", f"{band.mean:.2%}", help=f"Std dev {band.stddev:.2%}")
            st.plotly_chart(plot_distribution(results.exit_caps_sim, "Simulated Exit Cap Rate", "Cap Rate", color="darkorange", is_percent=True), use_container_width=True)
        with col_rent:
            band = results.rent_growth_band
            st.metric(f"Cumulative Rent Growth ({band.period})", f"{band.mean:.2%}", help=f"Std dev {band.stddev:.2%}")
            st.plotly_chart(plot_distribution(results.exit_year_rents_sim, "Simulated Cumulative Rent Growth", "Rent Growth", color="teal", is_percent=True), use_container_width=True)

    with tabs[tab_keys.index("🔍 Audit")]:
        frame = results.to_frame()
        st.dataframe(frame.head(1000))
        st.download_button("Download all simulations (CSV)", frame.to_csv(index_label="simulation"), file_name="exitcast_simulations.csv")


# --- Entry Point Check ---
if __name__ == "__main__":
    main()
