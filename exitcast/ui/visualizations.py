"""
Summary statistics and Plotly visualizations of simulated outcome distributions.
The core hands raw vectors to these functions; nothing here feeds back into it.
"""

import plotly.graph_objects as go
import numpy as np
import pandas as pd
import logging
from typing import Dict, Optional, Sequence, Tuple

from exitcast.core.utils import get_finite_values

logger = logging.getLogger(__name__)

SUMMARY_KEYS = ("min", "q1", "median", "mean", "q3", "max")


def summarize_distribution(values: Sequence[float]) -> Dict[str, float]:
    """
    Min, 1st quartile, median, mean, 3rd quartile and max of the finite values.

    Non-finite values are dropped (and counted in the log) before summarizing.
    Returns NaN for every statistic when no finite values remain.
    """
    finite_values, dropped = get_finite_values(values)
    if finite_values.size == 0:
        logger.warning("summarize_distribution: no finite values to summarize.")
        summary = {k: np.nan for k in SUMMARY_KEYS}
    else:
        q1, median, q3 = np.percentile(finite_values, [25, 50, 75])
        summary = {
            "min": float(finite_values.min()),
            "q1": float(q1),
            "median": float(median),
            "mean": float(finite_values.mean()),
            "q3": float(q3),
            "max": float(finite_values.max()),
        }
    summary["count"] = int(finite_values.size)
    summary["dropped"] = dropped
    return summary


def summary_table(results) -> pd.DataFrame:
    """Summary statistics of sale price and ROI as a DataFrame (one row per output)."""
    rows = {
        "Sale Price": summarize_distribution(results.sale_price_sim),
        "ROI": summarize_distribution(results.roi_sim),
    }
    return pd.DataFrame.from_dict(rows, orient="index")


# --- Distribution Plot ---
def plot_distribution(
    values: Sequence[float],
    title: str,
    x_title: str,
    color: str = 'mediumseagreen',
    bins: int = 30,
    x_range: Optional[Tuple[float, float]] = None,
    is_currency: bool = False,
    is_percent: bool = False
) -> go.Figure:
    """
    Generates a histogram Plotly figure with mean, median and 5th/95th percentile markers.

    Args:
        values: Simulated values; non-finite entries are ignored.
        title: Title for the chart.
        x_title: X-axis label.
        color: Color for the histogram bars.
        bins: Number of bins for the histogram.
        x_range: Optional tuple (min, max) to set the x-axis range.
        is_currency: Format axis and annotations as dollars.
        is_percent: Format axis and annotations as percentages.

    Returns:
        A Plotly Figure object. Returns an empty figure if no finite values remain.
    """
    finite_values, _ = get_finite_values(values)
    if finite_values.size == 0:
        logger.warning(f"plot_distribution: No finite values for {title}")
        fig = go.Figure()
        fig.update_layout(title=f"{title} (No Data)", xaxis_title=x_title, yaxis_title="% of Instances")
        return fig

    if is_currency:
        fmt = "${:,.0f}"
    elif is_percent:
        fmt = "{:.1%}"
    else:
        fmt = "{:.2f}"

    hist_data, bin_edges = np.histogram(finite_values, bins=bins, range=x_range)
    bin_centers = 0.5 * (bin_edges[1:] + bin_edges[:-1])
    total_count = hist_data.sum()
    percentages = (hist_data / total_count * 100.0) if total_count > 0 else np.zeros_like(hist_data, dtype=float)
    max_y = percentages.max() * 1.20 if (percentages > 0).any() else 1.0

    fig = go.Figure()
    fig.add_trace(go.Bar(x=bin_centers, y=percentages, marker_color=color, opacity=0.8, name="Frequency"))

    annotation_y_offset = max_y * 0.08
    markers = [
        (float(np.mean(finite_values)), "Mean", "red", "dash", annotation_y_offset * 2),
        (float(np.median(finite_values)), "Median", "purple", "dash", -annotation_y_offset * 12),
        (float(np.percentile(finite_values, 5)), "5th", "darkgrey", "dot", annotation_y_offset * 1.5),
        (float(np.percentile(finite_values, 95)), "95th", "darkgrey", "dot", annotation_y_offset * 3),
    ]
    for val, label, line_color, dash, y_shift in markers:
        fig.add_shape(
            type="line",
            x0=val, x1=val,
            y0=0, y1=max_y * 0.90,
            line=dict(color=line_color, dash=dash, width=1.5)
        )
        fig.add_annotation(
            x=val,
            y=max_y * 1.05,
            text=f"{label}: {fmt.format(val)}",
            showarrow=False,
            font=dict(color=line_color, size=10 if line_color == "darkgrey" else 12),
            yshift=y_shift,
            yanchor="bottom"
        )

    fig.update_layout(
        title=title,
        xaxis_title=x_title,
        yaxis_title="% of Instances",
        bargap=0.1,
        showlegend=False,
        template="plotly_white",
        yaxis_ticksuffix="%"
    )

    x_axis_config = {}
    if is_percent:
        x_axis_config['tickformat'] = ".0%"
    elif is_currency:
        x_axis_config['tickprefix'] = "$"
        x_axis_config['tickformat'] = ",.0f"
    if x_range and isinstance(x_range, (list, tuple)) and len(x_range) == 2:
        x_axis_config['range'] = x_range
    if x_axis_config:
        fig.update_xaxes(**x_axis_config)

    return fig
