# services/risk/behavioral_factors.py
"""
Derive BehavioralRiskFactors from a transaction history.

Transactions need `date` and `amount` (negative = spending, positive = inflow).
Emergency fund and debt figures are not visible in transactions, so callers
pass them in; the defaults mirror the product's onboarding assumptions.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Union

import numpy as np
import pandas as pd
from pydantic import ValidationError

from schemas.risk_profile import BehavioralRiskFactors
from services.errors import InvalidInput

logger = logging.getLogger(__name__)

MIN_TRANSACTIONS = 30
MIN_SPENDING_MONTHS = 2
DEFAULT_SPENDING_VOLATILITY = 5.0

INCOME_DEPOSIT_MIN = 1000.0
MIN_INCOME_DEPOSITS = 3
DEFAULT_INCOME_STABILITY = 7.0

DEFAULT_EMERGENCY_FUND_MONTHS = 3.0
DEFAULT_DEBT_TO_INCOME = 0.2

TransactionsInput = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


def _to_frame(transactions: TransactionsInput) -> pd.DataFrame:
    df = transactions.copy() if isinstance(transactions, pd.DataFrame) else pd.DataFrame(list(transactions))
    if df.empty:
        return pd.DataFrame({"date": pd.Series(dtype="datetime64[ns]"), "amount": pd.Series(dtype=float)})
    missing = {"date", "amount"} - set(df.columns)
    if missing:
        raise InvalidInput("transactions", f"missing column(s): {', '.join(sorted(missing))}")

    df = df[["date", "amount"]].copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce", utc=True)
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce")
    if df["date"].isna().any():
        raise InvalidInput("transactions.date", "must be parseable dates")
    if df["amount"].isna().any() or not np.isfinite(df["amount"].to_numpy()).all():
        raise InvalidInput("transactions.amount", "must be finite numbers")
    return df.sort_values("date").reset_index(drop=True)


def spending_volatility(df: pd.DataFrame) -> float:
    """Coefficient of variation of monthly spending x 10, capped at 10."""
    if len(df) < MIN_TRANSACTIONS:
        return DEFAULT_SPENDING_VOLATILITY

    spend = df[df["amount"] < 0]
    if spend.empty:
        return DEFAULT_SPENDING_VOLATILITY
    monthly = spend["amount"].abs().groupby(spend["date"].dt.strftime("%Y-%m")).sum()
    if len(monthly) < MIN_SPENDING_MONTHS:
        return DEFAULT_SPENDING_VOLATILITY

    mean = float(monthly.mean())
    if mean <= 0:
        return DEFAULT_SPENDING_VOLATILITY
    cv = float(monthly.std(ddof=0)) / mean
    return round(min(cv * 10.0, 10.0), 4)


def income_stability(df: pd.DataFrame) -> float:
    """10 - 5 x CV of days between income deposits, clamped to 1..10."""
    deposits = df[df["amount"] > INCOME_DEPOSIT_MIN]
    if len(deposits) < MIN_INCOME_DEPOSITS:
        return DEFAULT_INCOME_STABILITY

    intervals = deposits["date"].diff().dropna().dt.total_seconds() / 86400.0
    mean = float(intervals.mean())
    if mean <= 0:
        # every deposit on the same day says nothing about cadence
        return DEFAULT_INCOME_STABILITY
    cv = float(intervals.std(ddof=0)) / mean
    return round(max(1.0, min(10.0, 10.0 - cv * 5.0)), 4)


def behavioral_factors_from_transactions(
    transactions: TransactionsInput,
    *,
    age: float,
    investment_experience_years: float = 0.0,
    emergency_fund_ratio: float = DEFAULT_EMERGENCY_FUND_MONTHS,
    debt_to_income_ratio: float = DEFAULT_DEBT_TO_INCOME,
) -> BehavioralRiskFactors:
    df = _to_frame(transactions)
    sv = spending_volatility(df)
    stability = income_stability(df)
    logger.debug(f"[Behavioral] transactions={len(df)} spending_volatility={sv} income_stability={stability}")

    try:
        return BehavioralRiskFactors(
            spending_volatility=sv,
            emergency_fund_ratio=emergency_fund_ratio,
            debt_to_income_ratio=debt_to_income_ratio,
            investment_experience_years=investment_experience_years,
            age=age,
            income_stability=stability,
        )
    except ValidationError as exc:
        raise InvalidInput.from_validation_error(exc, prefix="behavioral_factors") from exc
