import pytest
import numpy as np
import pandas as pd


@pytest.fixture
def cap_rate_transactions():
    """24 months of synthetic cap-rate transactions, three per month, with mild seasonality"""
    rng = np.random.default_rng(42)
    months = pd.period_range("2019-01", "2020-12", freq="M")
    rows = []
    for i, month in enumerate(months):
        level = 0.056 - 0.0002 * i + 0.002 * np.sin(2 * np.pi * month.month / 12)
        for day in (5, 15, 25):
            rows.append({
                "date": pd.Timestamp(year=month.year, month=month.month, day=day),
                "cap_rate": level + rng.normal(0, 0.001),
            })
    return pd.DataFrame(rows)


@pytest.fixture
def rent_index_observations():
    """24 quarters of a rent index growing ~0.6% per quarter with a seasonal wobble"""
    periods = pd.period_range("2015Q1", "2020Q4", freq="Q")
    values = [
        100.0 * (1.006 ** t) * (1.0 + 0.004 * np.sin(np.pi * p.quarter / 2))
        for t, p in enumerate(periods)
    ]
    labels = [f"{p.year} Q{p.quarter}" for p in periods]
    return pd.DataFrame({"period": labels, "rent_index": values})


@pytest.fixture
def quarterly_growth_series(rent_index_observations):
    """Cumulative rent growth indexed by quarter"""
    from exitcast.data.market_data import build_rent_growth_series
    return build_rent_growth_series(rent_index_observations)["cumulative_growth"]


@pytest.fixture
def monthly_cap_series():
    """36 months of a noisy, slowly declining cap-rate series"""
    rng = np.random.default_rng(7)
    index = pd.period_range("2018-01", periods=36, freq="M")
    values = 0.06 - 0.0001 * np.arange(36) + 0.001 * np.sin(2 * np.pi * np.arange(36) / 12) + rng.normal(0, 0.0005, 36)
    return pd.Series(values, index=index)
