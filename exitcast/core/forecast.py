# exitcast/core/forecast.py
"""
Forecasting models for the two uncertain drivers of exit value.

Both models implement the same capability, `fit(series, horizon)`, and return a
ForecastResult with a point estimate and a 95% interval for each of the next
`horizon` periods:

- AutoSarimaForecaster: smoothed series, differencing chosen by an ADF test,
  seasonal ARIMA order chosen by AICc over a small grid (cap rates).
- StlNaiveForecaster: STL decomposition with a periodic seasonal window and a
  naive forecast of the seasonally adjusted series (cumulative rent growth).
"""

import warnings
import logging
import itertools
from dataclasses import dataclass
from typing import Protocol, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.statespace.sarimax import SARIMAX
from statsmodels.tsa.stattools import adfuller

from .constants import (
    PERIODS_PER_YEAR, CONFIDENCE_LEVEL, Z_95, ADF_PVALUE_THRESHOLD,
    DEFAULT_SMOOTHING_WINDOW, DEFAULT_MAX_ARIMA_ORDER, DEFAULT_MAX_SEASONAL_ORDER
)
from .errors import DataError, ModelFitError, UncertaintyError
from .utils import simulation_error_handler

logger = logging.getLogger(__name__)

MIN_OBSERVATIONS = 4


@dataclass(frozen=True)
class ForecastPoint:
    """One future period of a forecast."""
    period: pd.Period
    point_estimate: float
    lower_bound_at_95pct: float
    upper_bound_at_95pct: float


@dataclass(frozen=True)
class ForecastResult:
    """Container for a multi-step forecast of one series."""
    model_identifier: str
    points: Tuple[ForecastPoint, ...]
    periods_per_year: int
    last_observed: float  # Most recent historical (unsmoothed) value

    def __post_init__(self):
        for i, p in enumerate(self.points, start=1):
            values = (p.point_estimate, p.lower_bound_at_95pct, p.upper_bound_at_95pct)
            if not all(np.isfinite(v) for v in values):
                raise ModelFitError(f"{self.model_identifier}: non-finite forecast at step {i} ({p.period}).")
            if p.upper_bound_at_95pct < p.point_estimate:
                raise UncertaintyError(
                    f"{self.model_identifier}: upper bound {p.upper_bound_at_95pct:.6f} below point "
                    f"estimate {p.point_estimate:.6f} at step {i} ({p.period})."
                )

    def __len__(self) -> int:
        return len(self.points)

    @property
    def horizon(self) -> int:
        return len(self.points)

    def to_frame(self) -> pd.DataFrame:
        """Forecast as a DataFrame indexed by period."""
        frame = pd.DataFrame(
            {
                "point_estimate": [p.point_estimate for p in self.points],
                "lower_95": [p.lower_bound_at_95pct for p in self.points],
                "upper_95": [p.upper_bound_at_95pct for p in self.points],
            },
            index=pd.PeriodIndex([p.period for p in self.points], name="period"),
        )
        return frame


class ForecastModel(Protocol):
    """Anything that can turn a regular historical series into a ForecastResult."""

    def fit(self, series: pd.Series, horizon: int) -> ForecastResult:
        ...


# --- Shared Helpers ---
def _prepare_series(series: pd.Series, horizon: int) -> Tuple[np.ndarray, pd.PeriodIndex, int]:
    """Validates a model input series and returns (values, index, periods_per_year)."""
    if horizon < 1:
        raise ValueError(f"Forecast horizon must be at least 1, got {horizon}")
    if not isinstance(series.index, pd.PeriodIndex):
        raise DataError("Series must be indexed by a PeriodIndex (monthly or quarterly).")
    freq_code = series.index.freqstr[0]
    periods_per_year = PERIODS_PER_YEAR.get(freq_code)
    if periods_per_year is None:
        raise DataError(f"Unsupported series frequency '{series.index.freqstr}'.")

    values = series.to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise DataError("Series contains missing or non-finite values; preprocess it first.")
    if len(values) < MIN_OBSERVATIONS:
        raise ModelFitError(f"Series has {len(values)} observations; at least {MIN_OBSERVATIONS} are needed.")
    if len(values) < 2 * periods_per_year:
        logger.warning(f"Series has fewer than two seasonal cycles ({len(values)} < {2 * periods_per_year}); fit may not converge.")
    return values, series.index, periods_per_year


def _future_periods(index: pd.PeriodIndex, horizon: int) -> pd.PeriodIndex:
    return pd.period_range(index[-1] + 1, periods=horizon, freq=index.freq)


def _build_result(
    model_identifier: str,
    periods: pd.PeriodIndex,
    point: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
    periods_per_year: int,
    last_observed: float
) -> ForecastResult:
    points = tuple(
        ForecastPoint(period=per, point_estimate=float(p), lower_bound_at_95pct=float(lo), upper_bound_at_95pct=float(up))
        for per, p, lo, up in zip(periods, point, lower, upper)
    )
    return ForecastResult(
        model_identifier=model_identifier,
        points=points,
        periods_per_year=periods_per_year,
        last_observed=float(last_observed),
    )


# --- Automatic Seasonal ARIMA ---
class AutoSarimaForecaster:
    """Smoothed seasonal ARIMA with automatic order selection by AICc."""

    def __init__(self,
                 smoothing_window: int = DEFAULT_SMOOTHING_WINDOW,
                 max_order: int = DEFAULT_MAX_ARIMA_ORDER,
                 max_seasonal_order: int = DEFAULT_MAX_SEASONAL_ORDER,
                 max_d: int = 1):
        self.smoothing_window = smoothing_window
        self.max_order = max_order
        self.max_seasonal_order = max_seasonal_order
        self.max_d = max_d
        self.logger = logging.getLogger('exitcast.forecast.sarima')

    def smooth(self, values: np.ndarray) -> np.ndarray:
        """Centered rolling mean. Edges use the available neighbours."""
        if self.smoothing_window <= 1:
            return np.asarray(values, dtype=float)
        return (pd.Series(values)
                .rolling(window=self.smoothing_window, center=True, min_periods=1)
                .mean()
                .to_numpy())

    def choose_differencing(self, y: np.ndarray) -> int:
        """Difference once when the ADF test cannot reject a unit root."""
        if self.max_d < 1:
            return 0
        try:
            adf_p = adfuller(y, autolag='AIC')[1]
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ModelFitError(f"ADF test failed: {e}") from e
        d = 1 if adf_p > ADF_PVALUE_THRESHOLD else 0
        self.logger.debug(f"ADF p-value {adf_p:.4f} -> d={d}")
        return d

    def _candidate_orders(self, d: int, m: int):
        for p, q in itertools.product(range(self.max_order + 1), repeat=2):
            for P, Q in itertools.product(range(self.max_seasonal_order + 1), repeat=2):
                seasonal_order = (P, 0, Q, m) if (P or Q) and m > 1 else (0, 0, 0, 0)
                if seasonal_order == (0, 0, 0, 0) and (P or Q):
                    continue
                yield (p, d, q), seasonal_order

    def search(self, y: np.ndarray, m: int):
        """
        Grid search over (p, q, P, Q) with d fixed by the ADF test.

        Returns:
            Tuple of (fitted results, order, seasonal_order, aicc) for the best candidate.
        """
        d = self.choose_differencing(y)
        best = None
        best_aicc = np.inf
        n_tried = 0

        for order, seasonal_order in self._candidate_orders(d, m):
            trend = 'c' if d == 0 else 'n'
            n_tried += 1
            try:
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore")
                    model = SARIMAX(y, order=order, seasonal_order=seasonal_order, trend=trend)
                    fitted = model.fit(disp=False)
            except Exception as e:
                self.logger.debug(f"SARIMA{order}{seasonal_order} failed: {e}")
                continue

            aicc = fitted.aicc
            self.logger.debug(f"SARIMA{order}{seasonal_order} AICc={aicc:.3f}")
            if np.isfinite(aicc) and aicc < best_aicc:
                best_aicc = aicc
                best = (fitted, order, seasonal_order)

        if best is None:
            raise ModelFitError(f"No SARIMA candidate converged ({n_tried} tried).")
        fitted, order, seasonal_order = best
        self.logger.info(f"Selected SARIMA{order}{seasonal_order} (AICc={best_aicc:.3f}) from {n_tried} candidates.")
        return fitted, order, seasonal_order, best_aicc

    @simulation_error_handler
    def fit(self, series: pd.Series, horizon: int) -> ForecastResult:
        values, index, m = _prepare_series(series, horizon)
        y = self.smooth(values)
        fitted, order, seasonal_order, _ = self.search(y, m)

        try:
            forecast_obj = fitted.get_forecast(steps=horizon)
            point = np.asarray(forecast_obj.predicted_mean, dtype=float)
            ci = np.asarray(forecast_obj.conf_int(alpha=1.0 - CONFIDENCE_LEVEL), dtype=float)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ModelFitError(f"SARIMA forecast failed: {e}") from e

        return _build_result(
            model_identifier=f"SARIMA{order}{seasonal_order}",
            periods=_future_periods(index, horizon),
            point=point,
            lower=ci[:, 0],
            upper=ci[:, 1],
            periods_per_year=m,
            last_observed=values[-1],
        )


# --- STL Decomposition + Naive ---
class StlNaiveForecaster:
    """
    STL decomposition with a periodic seasonal component. The seasonally
    adjusted series (trend + remainder) is forecast with a random walk and the
    last fitted seasonal cycle is added back.
    """

    def __init__(self, robust: bool = False):
        self.robust = robust
        self.logger = logging.getLogger('exitcast.forecast.stl')

    def decompose(self, values: np.ndarray, m: int):
        if len(values) < 2 * m:
            raise ModelFitError(f"STL needs at least two full seasonal cycles ({2 * m} observations), got {len(values)}.")
        # A seasonal window this wide with degree 0 gives the same seasonal shape every cycle.
        seasonal_window = 10 * len(values) + 1
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                return STL(values, period=m, seasonal=seasonal_window, seasonal_deg=0, robust=self.robust).fit()
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ModelFitError(f"STL decomposition failed: {e}") from e

    @simulation_error_handler
    def fit(self, series: pd.Series, horizon: int) -> ForecastResult:
        values, index, m = _prepare_series(series, horizon)
        decomposition = self.decompose(values, m)

        seasonal = np.asarray(decomposition.seasonal, dtype=float)
        adjusted = np.asarray(decomposition.trend, dtype=float) + np.asarray(decomposition.resid, dtype=float)

        steps = np.arange(1, horizon + 1)
        seasonal_fc = seasonal[-m:][(steps - 1) % m]
        point = adjusted[-1] + seasonal_fc

        naive_residuals = np.diff(adjusted)
        sigma = float(np.sqrt(np.mean(naive_residuals ** 2)))
        half_width = Z_95 * sigma * np.sqrt(steps)
        self.logger.info(f"STL + naive: last adjusted value {adjusted[-1]:.4f}, one-step sigma {sigma:.5f}.")

        return _build_result(
            model_identifier="STL+Naive",
            periods=_future_periods(index, horizon),
            point=point,
            lower=point - half_width,
            upper=point + half_width,
            periods_per_year=m,
            last_observed=values[-1],
        )


def build_default_models(inputs) -> Tuple[ForecastModel, ForecastModel]:
    """Returns the (cap rate, rent growth) models configured from SimulationInputs."""
    cap_rate_model = AutoSarimaForecaster(
        smoothing_window=inputs.cap_rate_smoothing_window,
        max_order=inputs.max_arima_order,
        max_seasonal_order=inputs.max_seasonal_order,
    )
    return cap_rate_model, StlNaiveForecaster()
