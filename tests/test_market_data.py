import io

import pytest
import numpy as np
import pandas as pd

from exitcast.core.errors import DataError
from exitcast.data.market_data import (
    aggregate_cap_rates, build_rent_growth_series, parse_quarter_label,
    load_cap_rate_observations, load_rent_index_observations
)


def _transactions(rows):
    return pd.DataFrame(rows, columns=["date", "cap_rate"])


def test_monthly_mean_stddev_and_count():
    """Transactions are grouped by calendar month"""
    obs = _transactions([
        ("2020-01-03", 0.05), ("2020-01-20", 0.06),
        ("2020-02-11", 0.07), ("2020-02-12", 0.05), ("2020-02-28", 0.06),
    ])
    stats = aggregate_cap_rates(obs)

    assert list(stats.index.astype(str)) == ["2020-01", "2020-02"]
    assert stats.loc[pd.Period("2020-01", "M"), "mean"] == pytest.approx(0.055)
    assert stats.loc[pd.Period("2020-01", "M"), "stddev"] == pytest.approx(np.std([0.05, 0.06], ddof=1))
    assert stats.loc[pd.Period("2020-02", "M"), "sample_count"] == 3


def test_missing_stddev_carried_forward():
    """A single-transaction month takes the previous month's stddev"""
    obs = _transactions([
        ("2020-01-03", 0.05), ("2020-01-20", 0.06),
        ("2020-02-11", 0.07),
    ])
    stats = aggregate_cap_rates(obs)

    jan_sd = stats["stddev"].iloc[0]
    assert stats["stddev"].iloc[1] == pytest.approx(jan_sd)
    assert stats["mean"].iloc[1] == pytest.approx(0.07)
    assert stats["sample_count"].iloc[1] == 1


def test_empty_month_carries_mean_and_reports_zero_count():
    obs = _transactions([
        ("2020-01-03", 0.05), ("2020-01-20", 0.06),
        ("2020-03-11", 0.07), ("2020-03-12", 0.07),
    ])
    stats = aggregate_cap_rates(obs)

    assert len(stats) == 3
    feb = stats.loc[pd.Period("2020-02", "M")]
    assert feb["mean"] == pytest.approx(0.055)
    assert feb["sample_count"] == 0
    assert not stats[["mean", "stddev"]].isna().any().any()


def test_first_month_without_stddev_raises():
    """Nothing to carry forward into the first month"""
    obs = _transactions([
        ("2020-01-03", 0.05),
        ("2020-02-11", 0.07), ("2020-02-12", 0.06),
    ])
    with pytest.raises(DataError):
        aggregate_cap_rates(obs)


def test_range_bounds_are_respected(cap_rate_transactions):
    stats = aggregate_cap_rates(cap_rate_transactions, start="2019-06", end="2020-05")
    assert stats.index[0] == pd.Period("2019-06", "M")
    assert stats.index[-1] == pd.Period("2020-05", "M")
    assert len(stats) == 12
    assert stats.index.is_monotonic_increasing
    assert stats.index.is_unique


def test_range_before_data_raises(cap_rate_transactions):
    with pytest.raises(DataError):
        aggregate_cap_rates(cap_rate_transactions, start="2018-01")


def test_inverted_range_raises(cap_rate_transactions):
    with pytest.raises(DataError):
        aggregate_cap_rates(cap_rate_transactions, start="2020-05", end="2019-06")


def test_parse_quarter_label():
    assert parse_quarter_label("2015 Q3") == pd.Period("2015Q3", freq="Q")
    assert parse_quarter_label("2015Q1") == pd.Period("2015Q1", freq="Q")
    with pytest.raises(DataError):
        parse_quarter_label("Q3 2015")
    with pytest.raises(DataError):
        parse_quarter_label("2015 Q5")


def test_rent_growth_first_change_is_zero():
    obs = pd.DataFrame({"period": ["2020 Q1", "2020 Q2", "2020 Q3"], "rent_index": [100.0, 110.0, 99.0]})
    frame = build_rent_growth_series(obs)

    assert frame["rent_growth"].tolist() == pytest.approx([0.0, 0.10, -0.10])
    assert frame["cumulative_growth"].tolist() == pytest.approx([0.0, 0.10, 0.0])
    assert frame.index[0] == pd.Period("2020Q1", freq="Q")


def test_rent_growth_sorts_and_averages_duplicates():
    obs = pd.DataFrame({
        "period": ["2020 Q2", "2020 Q1", "2020 Q2"],
        "rent_index": [104.0, 100.0, 106.0],
    })
    frame = build_rent_growth_series(obs)

    assert list(frame.index.astype(str)) == ["2020Q1", "2020Q2"]
    assert frame["rent_index"].iloc[1] == pytest.approx(105.0)
    assert frame["cumulative_growth"].iloc[1] == pytest.approx(0.05)


def test_rent_growth_with_quarter_range(rent_index_observations):
    frame = build_rent_growth_series(rent_index_observations, start="2016 Q1", end="2019 Q4")
    assert len(frame) == 16
    assert frame["cumulative_growth"].iloc[0] == 0.0


def test_rent_growth_malformed_label_raises():
    obs = pd.DataFrame({"period": ["2020 Q1", "March 2020"], "rent_index": [100.0, 101.0]})
    with pytest.raises(DataError):
        build_rent_growth_series(obs)


def test_load_cap_rate_csv(tmp_path):
    path = tmp_path / "caps.csv"
    path.write_text("date,cap_rate,notes\n2020-02-01,5.5,x\n2020-01-01,6.0,y\nbad,5.0,z\n")
    df = load_cap_rate_observations(path, percent_values=True)

    assert list(df.columns) == ["date", "cap_rate"]
    assert len(df) == 2
    assert df["cap_rate"].tolist() == pytest.approx([0.06, 0.055])


def test_load_cap_rate_csv_missing_column(tmp_path):
    path = tmp_path / "caps.csv"
    path.write_text("date,rate\n2020-01-01,0.05\n")
    with pytest.raises(DataError, match="cap_rate"):
        load_cap_rate_observations(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(DataError):
        load_rent_index_observations(tmp_path / "nope.csv")


def test_load_rent_csv(tmp_path):
    path = tmp_path / "rents.csv"
    path.write_text("period,rent_index\n2020 Q1,100\n2020 Q2,n/a\n2020 Q3,103\n")
    df = load_rent_index_observations(path)
    assert df["period"].tolist() == ["2020 Q1", "2020 Q3"]
    assert df["rent_index"].tolist() == [100.0, 103.0]


def test_earlier_month_seeds_stddev_for_range_start():
    """A single-transaction first month borrows the stddev of a month before the range"""
    obs = _transactions([
        ("2020-01-03", 0.05), ("2020-01-20", 0.06),
        ("2020-02-11", 0.07),
        ("2020-03-02", 0.06), ("2020-03-09", 0.065),
    ])
    stats = aggregate_cap_rates(obs, start="2020-02", end="2020-03")

    assert list(stats.index.astype(str)) == ["2020-02", "2020-03"]
    assert stats["stddev"].iloc[0] == pytest.approx(np.std([0.05, 0.06], ddof=1))
    assert stats["mean"].iloc[0] == pytest.approx(0.07)
    assert stats["sample_count"].iloc[0] == 1


def test_empty_range_start_carries_earlier_month():
    obs = _transactions([
        ("2020-01-03", 0.05), ("2020-01-20", 0.06),
        ("2020-03-02", 0.06), ("2020-03-09", 0.065),
    ])
    stats = aggregate_cap_rates(obs, start="2020-02")

    assert stats.index[0] == pd.Period("2020-02", "M")
    assert stats["mean"].iloc[0] == pytest.approx(0.055)
    assert stats["sample_count"].iloc[0] == 0


def test_rent_range_start_carries_earlier_quarter():
    """Growth is still measured from the first quarter of the range"""
    obs = pd.DataFrame({"period": ["2020 Q1", "2020 Q3"], "rent_index": [100.0, 104.0]})
    frame = build_rent_growth_series(obs, start="2020 Q2")

    assert list(frame.index.astype(str)) == ["2020Q2", "2020Q3"]
    assert frame["rent_index"].tolist() == [100.0, 104.0]
    assert frame["cumulative_growth"].tolist() == pytest.approx([0.0, 0.04])


def test_load_cap_rates_from_buffer():
    """Uploaded bytes are read without touching the filesystem"""
    buffer = io.BytesIO(b"date,cap_rate\n2020-01-01,0.06\n2020-02-01,0.055\n")
    df = load_cap_rate_observations(buffer)
    assert df["cap_rate"].tolist() == pytest.approx([0.06, 0.055])


def test_load_rent_from_buffer_missing_column():
    buffer = io.BytesIO(b"quarter,rent_index\n2020 Q1,100\n")
    with pytest.raises(DataError, match="period"):
        load_rent_index_observations(buffer)
