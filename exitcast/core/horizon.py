# exitcast/core/horizon.py
"""
Turns a forecast into the single distribution the simulation samples from:

- stddev_from_interval: 95% interval -> one standard deviation
- select_horizon: the forecast period matching the sale date
- rebase_rent_growth: calibration step that expresses cumulative rent growth
  relative to today instead of the first quarter of the history
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .constants import INTERVAL_SD_MULTIPLE, DEFAULT_REBASE_OFFSET_MEAN, DEFAULT_REBASE_OFFSET_SD
from .errors import UncertaintyError, HorizonIndexError
from .forecast import ForecastPoint, ForecastResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HorizonBand:
    """Normal distribution (mean, stddev) of a driver at the sale date."""
    mean: float
    stddev: float
    period: Optional[pd.Period] = None
    lower_bound: float = np.nan
    upper_bound: float = np.nan


def stddev_from_interval(point_estimate: float, upper_bound: float) -> float:
    """
    Converts the upper bound of a 95% interval to one standard deviation,
    treating the interval as +/- 2 standard deviations.

    Raises:
        UncertaintyError: if upper_bound < point_estimate.
    """
    if upper_bound < point_estimate:
        raise UncertaintyError(
            f"Upper bound {upper_bound} is below point estimate {point_estimate}; "
            "the interval is inverted."
        )
    return (upper_bound - point_estimate) / INTERVAL_SD_MULTIPLE


def horizon_offset(hold_years: int, periods_per_year: int) -> int:
    """Forecast step (1-indexed) that falls exactly hold_years after the last observation."""
    return hold_years * periods_per_year


def select_horizon(forecast: ForecastResult, k: int) -> ForecastPoint:
    """
    Returns the k-th (1-indexed) point of a forecast.

    Raises:
        HorizonIndexError: if k < 1 or k exceeds the forecast length.
    """
    if k < 1 or k > len(forecast):
        raise HorizonIndexError(
            f"Horizon offset {k} is outside the {forecast.model_identifier} forecast "
            f"(valid range 1..{len(forecast)})."
        )
    return forecast.points[k - 1]


def horizon_band(point: ForecastPoint) -> HorizonBand:
    """HorizonBand for a single forecast point."""
    return HorizonBand(
        mean=point.point_estimate,
        stddev=stddev_from_interval(point.point_estimate, point.upper_bound_at_95pct),
        period=point.period,
        lower_bound=point.lower_bound_at_95pct,
        upper_bound=point.upper_bound_at_95pct,
    )


def forecast_bands(forecast: ForecastResult) -> pd.DataFrame:
    """All forecast periods as mean/stddev/lower/upper rows, indexed by period."""
    frame = forecast.to_frame()
    stddev = [stddev_from_interval(p, u) for p, u in zip(frame["point_estimate"], frame["upper_95"])]
    return pd.DataFrame(
        {
            "mean": frame["point_estimate"].to_numpy(),
            "stddev": stddev,
            "lower": frame["lower_95"].to_numpy(),
            "upper": frame["upper_95"].to_numpy(),
        },
        index=frame.index,
    )


def rebase_rent_growth(
    forecast: ForecastResult,
    rng: np.random.Generator,
    offset_mean: float = DEFAULT_REBASE_OFFSET_MEAN,
    offset_sd: float = DEFAULT_REBASE_OFFSET_SD
) -> pd.DataFrame:
    """
    Calibration heuristic applied to the cumulative rent-growth forecast.
    It is an ad hoc adjustment, not a statistical step, and can be switched
    off with SimulationInputs.apply_rent_rebase.

    1. For each forecast row, one normal offset N(offset_mean, offset_sd) is
       drawn and added to that row's mean, stddev, lower and upper values.
       Offsets are drawn once per run, not per simulation.
    2. mean, lower and upper are shifted down by the most recent historical
       cumulative growth, so growth is measured from today (today = 0).

    Args:
        forecast: Cumulative rent-growth forecast (e.g. from StlNaiveForecaster).
        rng: Generator for the offsets. Pass a generator seeded from the run seed.
        offset_mean: Mean of the per-row offset.
        offset_sd: Standard deviation of the per-row offset (0 disables the perturbation).

    Returns:
        New DataFrame with columns mean, stddev, lower, upper and an
        'offset' audit column, indexed by forecast period.

    Raises:
        UncertaintyError: if a perturbed stddev is negative.
    """
    bands = forecast_bands(forecast)
    offsets = rng.normal(offset_mean, offset_sd, size=len(bands))

    rebased = bands.add(offsets, axis=0)
    current = forecast.last_observed
    rebased[["mean", "lower", "upper"]] = rebased[["mean", "lower", "upper"]] - current
    rebased["offset"] = offsets

    negative = rebased["stddev"] < 0
    if negative.any():
        first_bad = rebased.index[negative.to_numpy()][0]
        raise UncertaintyError(f"Rebasing produced a negative rent-growth stddev at {first_bad}.")

    logger.info(f"Rebased rent growth to current cumulative growth {current:.4f} "
                f"(offset mean {offsets.mean():.5f}, sd {offset_sd}).")
    return rebased


def band_from_row(bands: pd.DataFrame, k: int) -> HorizonBand:
    """HorizonBand from the k-th (1-indexed) row of a bands DataFrame."""
    if k < 1 or k > len(bands):
        raise HorizonIndexError(f"Horizon offset {k} is outside the rebased forecast (valid range 1..{len(bands)}).")
    row = bands.iloc[k - 1]
    return HorizonBand(
        mean=float(row["mean"]),
        stddev=float(row["stddev"]),
        period=bands.index[k - 1],
        lower_bound=float(row["lower"]),
        upper_bound=float(row["upper"]),
    )
