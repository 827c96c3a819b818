# schemas/risk_profile.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RiskCategory = Literal["conservative", "moderate", "aggressive"]


class RiskQuestionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question_id: str = Field(..., min_length=1, max_length=64)
    question: Optional[str] = Field(default=None, max_length=500)
    answer: Union[float, str]
    # required; the caller must say how much each answer counts
    weight: float = Field(..., gt=0, allow_inf_nan=False)


class BehavioralRiskFactors(BaseModel):
    spending_volatility: float = Field(..., ge=0, le=10, allow_inf_nan=False)   # month-to-month, 0-10
    emergency_fund_ratio: float = Field(..., ge=0, allow_inf_nan=False)         # months of expenses covered
    debt_to_income_ratio: float = Field(..., ge=0, allow_inf_nan=False)
    investment_experience_years: float = Field(..., ge=0, allow_inf_nan=False)
    age: float = Field(..., ge=0, le=130, allow_inf_nan=False)
    income_stability: float = Field(..., ge=1, le=10, allow_inf_nan=False)      # 1-10


class RiskProfile(BaseModel):
    overall_score: int = Field(..., ge=1, le=100)
    category: RiskCategory
    questionnaire_score: float = Field(..., ge=0, le=100)
    behavioral_score: float = Field(..., ge=0, le=100)
    confidence_score: float = Field(..., ge=0, le=1)
    insufficient_data: bool = False
    warnings: List[str] = Field(default_factory=list)

    questionnaire_responses: List[RiskQuestionResponse] = Field(default_factory=list)
    behavioral_analysis: BehavioralRiskFactors
    created_date: datetime


class RiskQuestionInfo(BaseModel):
    """A catalog question as shown to the user, with its suggested weight."""

    id: str
    question: str
    weight: float
    options: List[str] = Field(default_factory=list)
    scale_min: Optional[float] = None
    scale_max: Optional[float] = None
