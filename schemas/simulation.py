# schemas/simulation.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.allocation import AllocationMix


class SimulationParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_investment: float = Field(..., ge=0, allow_inf_nan=False)
    monthly_contribution: float = Field(0.0, ge=0, allow_inf_nan=False)
    horizon_months: int = Field(..., gt=0)
    allocation: AllocationMix
    goal_amount: float = Field(..., allow_inf_nan=False)
    trials: Optional[int] = Field(default=None, gt=0)
    seed: Optional[int] = Field(default=None, ge=0)


class RiskMetrics(BaseModel):
    """Read-only summary of a return series. Fractions, not percent."""

    model_config = ConfigDict(frozen=True)

    max_drawdown: float = Field(..., le=0)    # e.g. -0.35 = -35%
    volatility: float = Field(..., ge=0)      # annualized
    sharpe_ratio: float
    value_at_risk_5: float                    # 5th percentile periodic return
    periods: int = 0


class MonthlyProjection(BaseModel):
    month: int = Field(..., ge=1)
    median_value: float
    percentile_10: float
    percentile_90: float
    probability_above_goal: float = Field(..., ge=0, le=1)


class SimulationResults(BaseModel):
    probability_of_success: float = Field(..., ge=0, le=1)
    median_outcome: float
    percentile_10: float
    percentile_90: float
    monthly_projections: List[MonthlyProjection] = Field(default_factory=list)
    risk_metrics: RiskMetrics

    expected_annual_return: float
    expected_annual_volatility: float

    trials_requested: int
    trials_completed: int
    aborted: bool = False
    seed: Optional[int] = None
