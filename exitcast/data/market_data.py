# exitcast/data/market_data.py
"""
Functions for loading the historical cap-rate and rent-index datasets from CSV
and turning them into regularly spaced, gap-free series for model fitting.

- Cap rates arrive as individual transactions {date, cap_rate} and are
  aggregated to one row per calendar month (mean, stddev, sample_count).
- Rents arrive as an index per "YYYY Qn" label and are converted to cumulative
  rent growth relative to the first quarter in range.
"""

import re
import numpy as np
import pandas as pd
import logging
from typing import IO, Optional, Union
from pathlib import Path

from ..core.constants import (
    CAP_RATE_DATE_COL, CAP_RATE_VALUE_COL, RENT_PERIOD_COL, RENT_VALUE_COL,
    CAP_RATE_FREQ, RENT_FREQ
)
from ..core.errors import DataError
from ..core.utils import simulation_error_handler

logger = logging.getLogger(__name__)

_QUARTER_LABEL_RE = re.compile(r"^(\d{4})\s*[Qq]([1-4])$")

PeriodLike = Union[str, pd.Period, pd.Timestamp, None]
# A file path, or an open buffer such as the bytes of a Streamlit upload.
CsvSource = Union[str, Path, IO]


# --- Loading ---
def _source_name(source: CsvSource) -> str:
    if isinstance(source, (str, Path)):
        return Path(source).name
    return getattr(source, "name", "uploaded data")


def _read_csv_checked(source: CsvSource, required_columns: list) -> pd.DataFrame:
    """Reads a CSV (path or buffer) and verifies the required columns are present."""
    if isinstance(source, (str, Path)) and not Path(source).is_file():
        raise DataError(f"Data file not found: {source}")
    name = _source_name(source)
    try:
        df = pd.read_csv(source)
    except pd.errors.EmptyDataError:
        raise DataError(f"Data file '{name}' is empty.")

    missing_cols = [col for col in required_columns if col not in df.columns]
    if missing_cols:
        raise DataError(f"'{name}' must contain required columns. Missing: {', '.join(missing_cols)}")
    return df[required_columns].copy()


@simulation_error_handler
def load_cap_rate_observations(path: CsvSource, percent_values: bool = False) -> pd.DataFrame:
    """
    Loads transaction-level cap-rate observations.

    Args:
        path: CSV file with columns 'date' and 'cap_rate'.
        percent_values: True if the file stores cap rates as percentages (5.5)
                        rather than decimals (0.055).

    Returns:
        DataFrame with a datetime 'date' column and a float 'cap_rate' column,
        sorted by date. Rows that fail to parse are dropped with a warning.
    """
    df = _read_csv_checked(path, [CAP_RATE_DATE_COL, CAP_RATE_VALUE_COL])

    df[CAP_RATE_DATE_COL] = pd.to_datetime(df[CAP_RATE_DATE_COL], errors="coerce")
    df[CAP_RATE_VALUE_COL] = pd.to_numeric(df[CAP_RATE_VALUE_COL], errors="coerce")
    invalid = df[[CAP_RATE_DATE_COL, CAP_RATE_VALUE_COL]].isnull().any(axis=1)
    if invalid.any():
        logger.warning(f"Ignoring {int(invalid.sum())} rows with unparseable date or cap rate in {_source_name(path)}.")
        df = df[~invalid].copy()
    if df.empty:
        raise DataError(f"No valid cap-rate observations found in {_source_name(path)}.")

    if percent_values:
        df[CAP_RATE_VALUE_COL] = df[CAP_RATE_VALUE_COL] / 100.0

    df = df.sort_values(CAP_RATE_DATE_COL).reset_index(drop=True)
    logger.info(f"Loaded {len(df)} cap-rate observations from {_source_name(path)} "
                f"({df[CAP_RATE_DATE_COL].min():%Y-%m} to {df[CAP_RATE_DATE_COL].max():%Y-%m}).")
    return df


@simulation_error_handler
def load_rent_index_observations(path: CsvSource) -> pd.DataFrame:
    """
    Loads periodic rent-index observations.

    Args:
        path: CSV file with columns 'period' ("YYYY Qn" labels) and 'rent_index'.

    Returns:
        DataFrame with the label column kept as text and a float 'rent_index'.
    """
    df = _read_csv_checked(path, [RENT_PERIOD_COL, RENT_VALUE_COL])

    df[RENT_PERIOD_COL] = df[RENT_PERIOD_COL].astype(str).str.strip()
    df[RENT_VALUE_COL] = pd.to_numeric(df[RENT_VALUE_COL], errors="coerce")
    invalid = df[RENT_VALUE_COL].isnull()
    if invalid.any():
        logger.warning(f"Ignoring {int(invalid.sum())} rows with non-numeric rent index in {_source_name(path)}.")
        df = df[~invalid].copy()
    if df.empty:
        raise DataError(f"No valid rent-index observations found in {_source_name(path)}.")

    logger.info(f"Loaded {len(df)} rent-index observations from {_source_name(path)}.")
    return df.reset_index(drop=True)


# --- Period Helpers ---
def parse_quarter_label(label: str) -> pd.Period:
    """Converts a 'YYYY Qn' label (e.g. '2015 Q3') to a quarterly Period."""
    match = _QUARTER_LABEL_RE.match(str(label).strip())
    if match is None:
        raise DataError(f"Malformed quarter label '{label}'. Expected 'YYYY Qn'.")
    year, quarter = match.groups()
    return pd.Period(f"{year}Q{quarter}", freq=RENT_FREQ)


def _to_period(value: PeriodLike, freq: str) -> Optional[pd.Period]:
    if value is None:
        return None
    if isinstance(value, pd.Period):
        return value.asfreq(freq)
    if freq == RENT_FREQ and isinstance(value, str) and _QUARTER_LABEL_RE.match(value.strip()):
        return parse_quarter_label(value)
    try:
        return pd.Period(value, freq=freq)
    except (ValueError, TypeError) as e:
        raise DataError(f"Could not interpret '{value}' as a period of frequency {freq}: {e}")


def _period_range(observed: pd.PeriodIndex, start: PeriodLike, end: PeriodLike, freq: str) -> pd.PeriodIndex:
    start_p = _to_period(start, freq)
    end_p = _to_period(end, freq)
    if start_p is None:
        start_p = observed.min()
    if end_p is None:
        end_p = observed.max()
    if start_p > end_p:
        raise DataError(f"Start period {start_p} is after end period {end_p}.")
    return pd.period_range(start_p, end_p, freq=freq)


def _history_range(observed: pd.PeriodIndex, target: pd.PeriodIndex) -> pd.PeriodIndex:
    """From the earlier of the first observation and the range start, through the range end."""
    return pd.period_range(min(observed.min(), target[0]), target[-1], freq=target.freq)


# --- Preprocessing ---
@simulation_error_handler
def aggregate_cap_rates(
    observations: pd.DataFrame,
    start: PeriodLike = None,
    end: PeriodLike = None
) -> pd.DataFrame:
    """
    Groups transaction-level cap rates by calendar month.

    Args:
        observations: DataFrame with 'date' and 'cap_rate' columns.
        start: First month to publish (defaults to the first observed month).
        end: Last month to publish (defaults to the last observed month).

    Returns:
        DataFrame indexed by a monthly PeriodIndex named 'period' with columns
        'mean', 'stddev' and 'sample_count', one row per month in range.

        A month whose stddev is undefined (fewer than two transactions) takes
        the most recent defined stddev. This is an approximation, not a model
        of dispersion. Months with no transactions also carry the mean forward
        and report sample_count = 0.

    Raises:
        DataError: if there is no usable data, or neither the first month in
                   range nor any earlier month supplies a mean and stddev.
    """
    if observations is None or observations.empty:
        raise DataError("No cap-rate observations supplied.")

    df = pd.DataFrame({
        "date": pd.to_datetime(observations[CAP_RATE_DATE_COL], errors="coerce"),
        "value": pd.to_numeric(observations[CAP_RATE_VALUE_COL], errors="coerce"),
    }).dropna()
    if df.empty:
        raise DataError("Cap-rate observations contain no valid rows.")

    df["period"] = df["date"].dt.to_period(CAP_RATE_FREQ)
    grouped = df.groupby("period")["value"].agg(["mean", "std", "count"])
    grouped.columns = ["mean", "stddev", "sample_count"]

    observed = pd.PeriodIndex(grouped.index)
    full_index = _period_range(observed, start, end, CAP_RATE_FREQ)
    # Carry-forward runs over the whole history so months before `start` can seed the range.
    stats = grouped.reindex(_history_range(observed, full_index))
    stats.index.name = "period"
    stats["sample_count"] = stats["sample_count"].fillna(0).astype(int)

    in_range = stats.loc[full_index[0]:full_index[-1]]
    empty_months = int(in_range["mean"].isna().sum())
    filled_sd = int(in_range["stddev"].isna().sum())

    stats[["mean", "stddev"]] = stats[["mean", "stddev"]].ffill()
    stats = stats.loc[full_index[0]:full_index[-1]].copy()

    first = stats.iloc[0]
    if pd.isna(first["mean"]):
        raise DataError(f"No cap-rate observations in or before the first month of the range ({full_index[0]}).")
    if pd.isna(first["stddev"]):
        raise DataError(
            f"Cap-rate stddev undefined for the first month ({full_index[0]}, "
            f"{int(first['sample_count'])} observation(s)) and there is no earlier value to carry forward."
        )

    if empty_months:
        logger.warning(f"{empty_months} month(s) without cap-rate transactions; carrying the previous mean forward.")
    if filled_sd:
        logger.info(f"Carried forward cap-rate stddev for {filled_sd} month(s).")

    logger.debug(f"Aggregated cap rates: {len(stats)} months from {full_index[0]} to {full_index[-1]}.")
    return stats


@simulation_error_handler
def build_rent_growth_series(
    observations: pd.DataFrame,
    start: PeriodLike = None,
    end: PeriodLike = None
) -> pd.DataFrame:
    """
    Converts a quarterly rent index into cumulative rent growth.

    Args:
        observations: DataFrame with 'period' ("YYYY Qn") and 'rent_index' columns.
        start: First quarter in range (label, Period or date). Defaults to the first observed.
        end: Last quarter in range. Defaults to the last observed.

    Returns:
        DataFrame indexed by a quarterly PeriodIndex named 'period' with columns
        'rent_index', 'rent_growth' (fractional change, 0 for the first quarter)
        and 'cumulative_growth' (running sum of 'rent_growth').

    Raises:
        DataError: for malformed labels, no data, or no value in or before the
                   first quarter of the range.
    """
    if observations is None or observations.empty:
        raise DataError("No rent-index observations supplied.")

    values = pd.to_numeric(observations[RENT_VALUE_COL], errors="coerce")
    periods = [parse_quarter_label(label) for label in observations[RENT_PERIOD_COL]]
    df = pd.DataFrame({"period": pd.PeriodIndex(periods, freq=RENT_FREQ), "value": values}).dropna()
    if df.empty:
        raise DataError("Rent-index observations contain no valid rows.")

    by_quarter = df.groupby("period")["value"].mean()
    observed = pd.PeriodIndex(by_quarter.index)
    full_index = _period_range(observed, start, end, RENT_FREQ)
    rent_index = by_quarter.reindex(_history_range(observed, full_index))

    gaps = int(rent_index.loc[full_index[0]:full_index[-1]].isna().sum())
    rent_index = rent_index.ffill().loc[full_index[0]:full_index[-1]]
    if pd.isna(rent_index.iloc[0]):
        raise DataError(f"No rent-index value in or before the first quarter of the range ({full_index[0]}).")
    if gaps:
        logger.warning(f"{gaps} quarter(s) without a rent-index value; carrying the previous value forward.")
    if (rent_index.abs() < np.finfo(float).tiny).any():
        raise DataError("Rent index contains zero values; growth rates are undefined.")

    growth = (rent_index / rent_index.shift(1) - 1.0).fillna(0.0)
    frame = pd.DataFrame({
        "rent_index": rent_index,
        "rent_growth": growth,
        "cumulative_growth": growth.cumsum(),
    })
    frame.index.name = "period"
    logger.debug(f"Rent growth series: {len(frame)} quarters, latest cumulative growth {frame['cumulative_growth'].iloc[-1]:.4f}.")
    return frame
