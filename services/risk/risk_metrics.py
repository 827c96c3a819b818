# services/risk/risk_metrics.py
"""
Risk metrics for a periodic return series (monthly by default).

Used to annotate Monte Carlo results, and usable on any historical series
the caller has. Pure functions, no I/O. Zero-volatility and too-short
series are defined explicitly (0.0), never NaN.
"""
from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from config.settings import MONTHS_PER_YEAR, RISK_FREE_RATE
from schemas.simulation import RiskMetrics
from services.errors import InvalidInput

ReturnsInput = Union[pd.Series, np.ndarray, Sequence[float], Iterable[float]]

VAR_PERCENTILE = 5.0
_MIN_VOL = 1e-12


def _as_series(returns: ReturnsInput, field: str = "returns") -> pd.Series:
    if isinstance(returns, pd.Series):
        s = returns.astype(float).reset_index(drop=True)
    else:
        arr = returns if isinstance(returns, np.ndarray) else np.fromiter(returns, dtype=float)
        s = pd.Series(np.asarray(arr, dtype=float).ravel())
    if s.empty:
        raise InvalidInput(field, "must contain at least one value")
    if not np.isfinite(s.to_numpy()).all():
        raise InvalidInput(field, "must be finite numbers")
    return s


def compute_volatility(returns: ReturnsInput, periods_per_year: int = MONTHS_PER_YEAR) -> float:
    """Annualized standard deviation of periodic returns. 0.0 below two observations."""
    s = _as_series(returns)
    if len(s) < 2:
        return 0.0
    vol = float(s.std(ddof=1) * math.sqrt(periods_per_year))
    return vol if vol > _MIN_VOL else 0.0


def compute_max_drawdown(values: ReturnsInput) -> float:
    """Most negative peak-to-trough decline of a value path. Returns <= 0 (e.g. -0.35 = -35%)."""
    s = _as_series(values, field="values")
    if len(s) < 2:
        return 0.0
    peak = s.cummax()
    # peaks at 0 (empty portfolio) carry no drawdown
    drawdowns = ((s - peak) / peak.where(peak > 0)).fillna(0.0)
    return min(0.0, float(drawdowns.min()))


def growth_index(returns: ReturnsInput, start: float = 1.0) -> pd.Series:
    """Compounded value path of `start` under the returns, starting point included."""
    s = _as_series(returns)
    path = start * (1.0 + s).cumprod()
    return pd.concat([pd.Series([start]), path], ignore_index=True)


def compute_sharpe(
    returns: ReturnsInput,
    risk_free: float = RISK_FREE_RATE,
    periods_per_year: int = MONTHS_PER_YEAR,
) -> float:
    """Annualized Sharpe ratio. Defined as 0.0 when volatility is 0."""
    s = _as_series(returns)
    vol = compute_volatility(s, periods_per_year)
    if vol == 0.0:
        return 0.0
    ann_return = float(s.mean() * periods_per_year)
    return (ann_return - risk_free) / vol


def compute_value_at_risk(returns: ReturnsInput, percentile: float = VAR_PERCENTILE) -> float:
    """Historical/simulated VaR: the `percentile`-th percentile periodic return (usually negative)."""
    if not 0 < percentile < 100:
        raise InvalidInput("percentile", "must be between 0 and 100", percentile)
    s = _as_series(returns)
    return float(np.percentile(s.to_numpy(), percentile))


def compute_risk_metrics(
    returns: ReturnsInput,
    values: Optional[ReturnsInput] = None,
    *,
    risk_free: float = RISK_FREE_RATE,
    periods_per_year: int = MONTHS_PER_YEAR,
    max_drawdown: Optional[float] = None,
) -> RiskMetrics:
    """
    Summarize a return series.

    `values` is the value path used for drawdown; when omitted the growth
    index of `returns` is used. `max_drawdown` may be supplied directly when
    the caller already reduced it over many paths (Monte Carlo).
    """
    s = _as_series(returns)
    if max_drawdown is None:
        path = growth_index(s) if values is None else values
        max_drawdown = compute_max_drawdown(path)

    return RiskMetrics(
        max_drawdown=round(min(0.0, float(max_drawdown)), 6),
        volatility=round(compute_volatility(s, periods_per_year), 6),
        sharpe_ratio=round(compute_sharpe(s, risk_free, periods_per_year), 6),
        value_at_risk_5=round(compute_value_at_risk(s), 6),
        periods=len(s),
    )
