# schemas/recommendation.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.allocation import AssetClass
from schemas.risk_profile import RiskCategory


class InvestmentGoal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, max_length=120)
    goal_amount: float = Field(..., allow_inf_nan=False)
    years_to_goal: float = Field(..., gt=0, le=100, allow_inf_nan=False)
    initial_investment: float = Field(0.0, ge=0, allow_inf_nan=False)
    monthly_contribution: float = Field(0.0, ge=0, allow_inf_nan=False)


class FundSuggestion(BaseModel):
    """Reference low-cost fund for one sleeve of the mix. Illustrative, not advice."""

    symbol: str
    name: str
    asset_class: AssetClass
    allocation_percentage: float
    expense_ratio: float
    description: str


class AllocationCandidate(BaseModel):
    category: RiskCategory
    primary: bool = False
    allocation: Dict[AssetClass, float]

    probability_of_success: float = Field(..., ge=0, le=1)
    median_outcome: float
    percentile_10: float
    percentile_90: float
    expected_annual_return: float
    expected_annual_volatility: float

    funds: List[FundSuggestion] = Field(default_factory=list)
    reasoning: str = ""


class RecommendationSet(BaseModel):
    category: RiskCategory
    goal: InvestmentGoal
    candidates: List[AllocationCandidate] = Field(default_factory=list)
    seed: Optional[int] = None
