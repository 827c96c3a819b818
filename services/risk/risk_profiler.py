# services/risk/risk_profiler.py
"""
Risk tolerance scoring: weighted questionnaire + behavioral adjustment.

  overall = round(0.7 * questionnaire + 0.3 * behavioral), clamped to 1..100
  conservative <= 33 < moderate <= 66 < aggressive

Behavioral score starts at 50 and moves by fixed, monotonic terms:
  + emergency fund   up to +10 (capped at 12 months), -10 at zero
  + income stability 3 points per step above 5 (1..10)
  + experience       1.5 points per year, capped at 10 years
  + age              0.5 points per year below 45 (ages clamped 18..80)
  - debt-to-income   25 points per 1.0 DTI (capped at 1.0), +5 at zero
  - spending vol     2 points per step (0..10)
"""
from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from schemas.risk_profile import (
    BehavioralRiskFactors,
    RiskCategory,
    RiskProfile,
    RiskQuestionInfo,
    RiskQuestionResponse,
)
from services.errors import InsufficientData, InvalidInput

logger = logging.getLogger(__name__)

QUESTIONNAIRE_WEIGHT = 0.7
BEHAVIORAL_WEIGHT = 0.3

CONSERVATIVE_MAX = 33
MODERATE_MAX = 66

NEUTRAL_SCORE = 50.0
MIN_CONFIDENT_RESPONSES = 3
LOW_CONFIDENCE_CAP = 0.5


@dataclass(frozen=True)
class RiskQuestion:
    id: str
    question: str
    weight: float
    options: Tuple[str, ...] = ()
    scale: Optional[Tuple[float, float]] = None

    def normalize(self, answer: Union[float, str]) -> float:
        """Map an answer onto 0..100 (higher = more risk tolerant)."""
        if self.scale is not None:
            lo, hi = self.scale
            try:
                value = float(answer)
            except (TypeError, ValueError):
                raise InvalidInput(f"responses.{self.id}.answer", f"must be a number between {lo:g} and {hi:g}", answer)
            if not (lo <= value <= hi):
                raise InvalidInput(f"responses.{self.id}.answer", f"must be between {lo:g} and {hi:g}", answer)
            return (value - lo) / (hi - lo) * 100.0

        if isinstance(answer, str):
            if answer not in self.options:
                raise InvalidInput(f"responses.{self.id}.answer", "is not one of the question's options", answer)
            idx = self.options.index(answer)
        else:
            # numeric answers to option questions are 0-based option indexes
            if not math.isfinite(answer) or float(answer) != int(answer) or not (0 <= int(answer) < len(self.options)):
                raise InvalidInput(f"responses.{self.id}.answer", f"option index must be 0..{len(self.options) - 1}", answer)
            idx = int(answer)
        return idx / (len(self.options) - 1) * 100.0


RISK_QUESTIONS: Tuple[RiskQuestion, ...] = (
    RiskQuestion(
        id="time_horizon",
        question="What is your primary investment time horizon?",
        weight=25,
        options=("Less than 2 years", "2-5 years", "5-10 years", "10-20 years", "More than 20 years"),
    ),
    RiskQuestion(
        id="market_drop",
        question="If your investments dropped 20% in a month, what would you do?",
        weight=30,
        options=(
            "Sell everything immediately",
            "Sell some to reduce risk",
            "Hold and wait for recovery",
            "Buy more at lower prices",
        ),
    ),
    RiskQuestion(
        id="investment_experience",
        question="How many years of investment experience do you have?",
        weight=15,
        options=("None", "1-2 years", "3-5 years", "6-10 years", "More than 10 years"),
    ),
    RiskQuestion(
        id="risk_comfort",
        question="Rate your comfort with investment risk (1 = Very Conservative, 10 = Very Aggressive)",
        weight=20,
        scale=(1, 10),
    ),
    RiskQuestion(
        id="emergency_fund",
        question="How many months of expenses do you have in emergency savings?",
        weight=10,
        options=("Less than 1 month", "1-3 months", "3-6 months", "6-12 months", "More than 12 months"),
    ),
    RiskQuestion(
        id="income_stability",
        question="How stable is your income?",
        weight=15,
        options=("Very unstable", "Somewhat unstable", "Stable", "Very stable", "Multiple income sources"),
    ),
    RiskQuestion(
        id="investment_goal",
        question="What is your primary investment goal?",
        weight=20,
        options=(
            "Preserve capital (safety first)",
            "Generate steady income",
            "Balanced growth and income",
            "Long-term growth",
            "Maximum growth (high risk/reward)",
        ),
    ),
)

QUESTIONS_BY_ID: Dict[str, RiskQuestion] = {q.id: q for q in RISK_QUESTIONS}

# years of experience implied by each `investment_experience` option
EXPERIENCE_YEARS_BY_OPTION: Tuple[float, ...] = (0.0, 1.5, 4.0, 8.0, 12.0)


def question_catalog() -> List[RiskQuestionInfo]:
    """The questionnaire with suggested weights, in display order."""
    return [
        RiskQuestionInfo(
            id=q.id,
            question=q.question,
            weight=q.weight,
            options=list(q.options),
            scale_min=q.scale[0] if q.scale else None,
            scale_max=q.scale[1] if q.scale else None,
        )
        for q in RISK_QUESTIONS
    ]


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def categorize(score: float) -> RiskCategory:
    if score <= CONSERVATIVE_MAX:
        return "conservative"
    if score <= MODERATE_MAX:
        return "moderate"
    return "aggressive"


def behavioral_score(factors: BehavioralRiskFactors) -> float:
    score = NEUTRAL_SCORE
    score += 20.0 * (min(factors.emergency_fund_ratio, 12.0) / 12.0) - 10.0
    score += 3.0 * (factors.income_stability - 5.0)
    score += 1.5 * min(factors.investment_experience_years, 10.0)
    score += 0.5 * (45.0 - _clamp(factors.age, 18.0, 80.0))
    score += 5.0 - 25.0 * min(factors.debt_to_income_ratio, 1.0)
    score -= 2.0 * factors.spending_volatility
    return round(_clamp(score, 0.0, 100.0), 4)


def _coerce_responses(responses: Iterable[Any]) -> List[RiskQuestionResponse]:
    out: List[RiskQuestionResponse] = []
    for i, r in enumerate(responses):
        if isinstance(r, RiskQuestionResponse):
            out.append(r)
            continue
        try:
            out.append(RiskQuestionResponse.model_validate(r))
        except ValidationError as exc:
            raise InvalidInput.from_validation_error(exc, prefix=f"responses[{i}]") from exc
    return out


def experience_years_from_responses(responses: Iterable[Any]) -> Optional[float]:
    """
    Years of experience implied by the `investment_experience` answer,
    or None when that question was not answered.
    """
    question = QUESTIONS_BY_ID["investment_experience"]
    for r in _coerce_responses(responses):
        if r.question_id == question.id:
            idx = round(question.normalize(r.answer) / 100.0 * (len(question.options) - 1))
            return EXPERIENCE_YEARS_BY_OPTION[idx]
    return None


def _coerce_factors(factors: Union[BehavioralRiskFactors, Mapping[str, Any]]) -> BehavioralRiskFactors:
    if isinstance(factors, BehavioralRiskFactors):
        return factors
    try:
        return BehavioralRiskFactors.model_validate(factors)
    except ValidationError as exc:
        raise InvalidInput.from_validation_error(exc, prefix="behavioral_factors") from exc


def questionnaire_score(responses: Sequence[RiskQuestionResponse]) -> Tuple[float, List[float]]:
    """Weight-averaged normalized score and the per-answer normalized scores."""
    seen = set()
    weighted = 0.0
    total_weight = 0.0
    normalized: List[float] = []
    for r in responses:
        question = QUESTIONS_BY_ID.get(r.question_id)
        if question is None:
            raise InvalidInput("responses.question_id", f"unknown question {r.question_id!r}", r.question_id)
        if r.question_id in seen:
            raise InvalidInput("responses.question_id", f"duplicate answer for {r.question_id!r}", r.question_id)
        seen.add(r.question_id)
        n = question.normalize(r.answer)
        normalized.append(n)
        weighted += n * r.weight
        total_weight += r.weight
    if total_weight <= 0:
        return NEUTRAL_SCORE, normalized
    return weighted / total_weight, normalized


def confidence_score(normalized: Sequence[float]) -> float:
    """Completeness (share of catalog answered) x consistency (low answer dispersion)."""
    if not normalized:
        return 0.0
    completeness = len(normalized) / len(RISK_QUESTIONS)
    dispersion = statistics.pstdev(normalized) / 50.0 if len(normalized) > 1 else 0.0
    consistency = 1.0 - 0.5 * min(dispersion, 1.0)
    return round(_clamp(completeness * consistency, 0.0, 1.0), 4)


def score_risk(
    responses: Iterable[Any],
    behavioral_factors: Union[BehavioralRiskFactors, Mapping[str, Any]],
    *,
    strict: bool = False,
    now: Optional[datetime] = None,
) -> RiskProfile:
    """
    Score risk tolerance. Sparse questionnaires still get a best-effort score,
    flagged via `insufficient_data` and a capped confidence; `strict=True`
    raises InsufficientData instead.
    """
    parsed = _coerce_responses(responses)
    factors = _coerce_factors(behavioral_factors)

    q_score, normalized = questionnaire_score(parsed)
    b_score = behavioral_score(factors)
    overall = int(_clamp(round(QUESTIONNAIRE_WEIGHT * q_score + BEHAVIORAL_WEIGHT * b_score), 1, 100))
    confidence = confidence_score(normalized)

    warnings: List[str] = []
    insufficient = len(parsed) < MIN_CONFIDENT_RESPONSES
    if insufficient:
        if strict:
            raise InsufficientData(answered=len(parsed), required=MIN_CONFIDENT_RESPONSES)
        confidence = min(confidence, LOW_CONFIDENCE_CAP)
        warnings.append(
            f"Only {len(parsed)} of {len(RISK_QUESTIONS)} questions answered; "
            "score leans on behavioral factors and has reduced confidence."
        )
        logger.info(f"[RiskProfile] low-confidence score answered={len(parsed)}")

    return RiskProfile(
        overall_score=overall,
        category=categorize(overall),
        questionnaire_score=round(q_score, 4),
        behavioral_score=b_score,
        confidence_score=confidence,
        insufficient_data=insufficient,
        warnings=warnings,
        questionnaire_responses=parsed,
        behavioral_analysis=factors,
        created_date=now or datetime.now(timezone.utc),
    )
