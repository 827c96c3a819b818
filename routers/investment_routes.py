# routers/investment_routes.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from config.settings import DRIFT_BAND_MULTIPLIER, DRIFT_THRESHOLD_PCT
from schemas.allocation import DriftResult, RebalancingAlert
from schemas.recommendation import RecommendationSet
from schemas.risk_profile import RiskProfile, RiskQuestionInfo
from schemas.simulation import SimulationResults
from services.errors import InsufficientData, InvalidInput, PortfolioCoreError, SimulationAborted
from services.portfolio.drift_analyzer import analyze_drift
from services.portfolio.rebalancing_alerts import check_rebalancing
from services.recommendation.recommendation_engine import recommend_allocations
from services.risk.behavioral_factors import behavioral_factors_from_transactions
from services.risk.risk_profiler import experience_years_from_responses, question_catalog, score_risk
from services.simulation.portfolio_simulator import simulate_portfolio_async

logger = logging.getLogger(__name__)
router = APIRouter()
Json = Dict[str, Any]


class DriftRequest(BaseModel):
    current: Json
    target: Json
    threshold: float = DRIFT_THRESHOLD_PCT
    band_multiplier: float = DRIFT_BAND_MULTIPLIER
    include_within_band: bool = False


class AlertsRequest(BaseModel):
    current: Json
    target: Json
    threshold: float = DRIFT_THRESHOLD_PCT
    band_multiplier: float = DRIFT_BAND_MULTIPLIER
    dismissed_keys: List[str] = Field(default_factory=list)


class RiskProfileRequest(BaseModel):
    responses: List[Json] = Field(default_factory=list)
    # either explicit factors, or transactions (+ age) to derive them from
    behavioral_factors: Optional[Json] = None
    transactions: Optional[List[Json]] = None
    age: Optional[float] = None
    # defaults to the questionnaire's investment_experience answer, else 0
    investment_experience_years: Optional[float] = Field(default=None, ge=0)
    strict: bool = False


class RecommendationRequest(BaseModel):
    category: str
    goal: Json
    trials: Optional[int] = Field(default=None, gt=0)
    seed: Optional[int] = Field(default=None, ge=0)


def _http_error(exc: PortfolioCoreError) -> HTTPException:
    if isinstance(exc, InvalidInput):
        return HTTPException(status_code=422, detail=exc.to_detail())
    if isinstance(exc, InsufficientData):
        return HTTPException(
            status_code=422,
            detail={
                "field": "responses",
                "constraint": f"at least {exc.required} answers required, got {exc.answered}",
            },
        )
    if isinstance(exc, SimulationAborted):
        return HTTPException(
            status_code=504,
            detail={
                "message": f"Simulation {exc.reason}",
                "trials_completed": exc.trials_completed,
                "trials_requested": exc.trials_requested,
            },
        )
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/drift", response_model=List[DriftResult])
async def drift(req: DriftRequest):
    try:
        return analyze_drift(
            req.current,
            req.target,
            req.threshold,
            band_multiplier=req.band_multiplier,
            include_within_band=req.include_within_band,
        )
    except PortfolioCoreError as e:
        raise _http_error(e) from e


@router.post("/alerts", response_model=List[RebalancingAlert])
async def alerts(req: AlertsRequest):
    try:
        return check_rebalancing(
            req.current,
            req.target,
            req.threshold,
            band_multiplier=req.band_multiplier,
            dismissed_keys=req.dismissed_keys,
        )
    except PortfolioCoreError as e:
        raise _http_error(e) from e


@router.get("/risk-questions", response_model=List[RiskQuestionInfo])
async def risk_questions():
    return question_catalog()


@router.post("/risk-profile", response_model=RiskProfile)
async def risk_profile(req: RiskProfileRequest):
    try:
        factors: Any = req.behavioral_factors
        if factors is None:
            if req.transactions is None or req.age is None:
                raise InvalidInput("behavioral_factors", "required unless transactions and age are given")
            experience = req.investment_experience_years
            if experience is None:
                experience = experience_years_from_responses(req.responses) or 0.0
            factors = await run_in_threadpool(
                lambda: behavioral_factors_from_transactions(
                    req.transactions,
                    age=req.age,
                    investment_experience_years=experience,
                )
            )
        return score_risk(req.responses, factors, strict=req.strict)
    except PortfolioCoreError as e:
        raise _http_error(e) from e


@router.post("/simulate", response_model=SimulationResults)
async def simulate(params: Json):
    try:
        return await simulate_portfolio_async(params)
    except PortfolioCoreError as e:
        raise _http_error(e) from e


@router.post("/recommendations", response_model=RecommendationSet)
async def recommendations(req: RecommendationRequest):
    try:
        return await run_in_threadpool(
            lambda: recommend_allocations(req.category, req.goal, trials=req.trials, seed=req.seed)
        )
    except PortfolioCoreError as e:
        raise _http_error(e) from e
