# services/recommendation/recommendation_engine.py
"""
Goal-based allocation suggestions.

Base mixes per risk category, shifted for the goal's horizon:
  < 3 years  : bonds +20, cash +10, US stocks -20, intl stocks -10
  > 20 years : US stocks +10, intl stocks +5, bonds -15
No class goes below 0; a clamped mix is rescaled to sum to 100.
Every candidate is checked with the same seeded simulation so their
probabilities are comparable.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from schemas.allocation import ASSET_CLASS_LABELS, AllocationMix, AssetClass
from schemas.recommendation import AllocationCandidate, FundSuggestion, InvestmentGoal, RecommendationSet
from schemas.risk_profile import RiskCategory, RiskProfile
from schemas.simulation import SimulationParams
from services.errors import InvalidInput
from services.simulation.portfolio_simulator import PortfolioSimulator, random_seed

logger = logging.getLogger(__name__)

CATEGORIES: List[RiskCategory] = ["conservative", "moderate", "aggressive"]

SHORT_HORIZON_YEARS = 3
LONG_HORIZON_YEARS = 20

BASE_ALLOCATIONS: Dict[str, Dict[AssetClass, float]] = {
    "conservative": {
        AssetClass.stocks_us: 40, AssetClass.stocks_international: 10, AssetClass.bonds: 45,
        AssetClass.real_estate: 3, AssetClass.commodities: 1, AssetClass.cash: 1,
    },
    "moderate": {
        AssetClass.stocks_us: 60, AssetClass.stocks_international: 20, AssetClass.bonds: 15,
        AssetClass.real_estate: 3, AssetClass.commodities: 1, AssetClass.cash: 1,
    },
    "aggressive": {
        AssetClass.stocks_us: 70, AssetClass.stocks_international: 25, AssetClass.bonds: 2,
        AssetClass.real_estate: 2, AssetClass.commodities: 1, AssetClass.cash: 0,
    },
}

SHORT_HORIZON_SHIFT = {
    AssetClass.bonds: 20, AssetClass.cash: 10,
    AssetClass.stocks_us: -20, AssetClass.stocks_international: -10,
}
LONG_HORIZON_SHIFT = {
    AssetClass.stocks_us: 10, AssetClass.stocks_international: 5, AssetClass.bonds: -15,
}

# symbol, name, expense ratio (%), description
REFERENCE_FUNDS = {
    "VTI": ("Vanguard Total Stock Market ETF", 0.03, "Low-cost total US market exposure for long-term growth"),
    "VOO": ("Vanguard S&P 500 ETF", 0.03, "Low-cost large-cap US exposure for long-term growth"),
    "VTIAX": ("Vanguard Total International Stock Index", 0.11,
              "International diversification across developed and emerging markets"),
    "BND": ("Vanguard Total Bond Market ETF", 0.03, "Broad bond market exposure for stability and income"),
}
# above this US weight the total-market fund replaces the S&P 500 fund
TOTAL_MARKET_CUTOFF_PCT = 60


def target_allocation(category: str, years_to_goal: float) -> AllocationMix:
    if category not in BASE_ALLOCATIONS:
        raise InvalidInput("category", f"must be one of {', '.join(CATEGORIES)}", category)
    if years_to_goal <= 0:
        raise InvalidInput("years_to_goal", "must be > 0", years_to_goal)

    mix = dict(BASE_ALLOCATIONS[category])
    if years_to_goal < SHORT_HORIZON_YEARS:
        shift = SHORT_HORIZON_SHIFT
    elif years_to_goal > LONG_HORIZON_YEARS:
        shift = LONG_HORIZON_SHIFT
    else:
        shift = {}
    for asset, delta in shift.items():
        mix[asset] = max(0.0, mix[asset] + delta)
    total = sum(mix.values())
    if abs(total - 100.0) > 1e-9:
        # a clamped class leaves the mix over 100; scale back proportionally
        mix = {k: round(v * 100.0 / total, 2) for k, v in mix.items()}
    return AllocationMix({k: float(v) for k, v in mix.items()})


def _fund(symbol: str, asset_class: AssetClass, pct: float) -> FundSuggestion:
    name, expense_ratio, description = REFERENCE_FUNDS[symbol]
    return FundSuggestion(
        symbol=symbol,
        name=name,
        asset_class=asset_class,
        allocation_percentage=pct,
        expense_ratio=expense_ratio,
        description=description,
    )


def reference_funds(mix: AllocationMix) -> List[FundSuggestion]:
    funds: List[FundSuggestion] = []
    us = mix.get(AssetClass.stocks_us)
    if us > 0:
        funds.append(_fund("VTI" if us > TOTAL_MARKET_CUTOFF_PCT else "VOO", AssetClass.stocks_us, us))
    intl = mix.get(AssetClass.stocks_international)
    if intl > 0:
        funds.append(_fund("VTIAX", AssetClass.stocks_international, intl))
    bonds = mix.get(AssetClass.bonds)
    if bonds > 0:
        funds.append(_fund("BND", AssetClass.bonds, bonds))
    return funds


def neighbour_categories(category: str) -> List[RiskCategory]:
    i = CATEGORIES.index(category)
    return CATEGORIES[max(0, i - 1): i + 2]


def _reasoning(category: str, primary: bool, mix: AllocationMix, years: float) -> str:
    largest = max(mix, key=mix.get)
    parts = [
        f"{category.capitalize()} mix led by {ASSET_CLASS_LABELS[largest]} ({mix.get(largest):.0f}%)",
    ]
    if years < SHORT_HORIZON_YEARS:
        parts.append("shifted toward bonds and cash for a short horizon")
    elif years > LONG_HORIZON_YEARS:
        parts.append("tilted toward stocks for a long horizon")
    parts.append("matches your risk profile" if primary else "shown for comparison")
    return "; ".join(parts)


def _coerce_goal(goal: Union[InvestmentGoal, Mapping[str, Any]]) -> InvestmentGoal:
    if isinstance(goal, InvestmentGoal):
        return goal
    try:
        return InvestmentGoal.model_validate(goal)
    except ValidationError as exc:
        raise InvalidInput.from_validation_error(exc, prefix="goal") from exc


def recommend_allocations(
    risk_profile: Union[RiskProfile, str],
    goal: Union[InvestmentGoal, Mapping[str, Any]],
    simulator: Optional[PortfolioSimulator] = None,
    *,
    trials: Optional[int] = None,
    seed: Optional[int] = None,
) -> RecommendationSet:
    """
    Candidate mixes for the profile's category and its neighbours, each
    validated by simulation. Primary candidate first, then by probability.
    """
    category = risk_profile.category if isinstance(risk_profile, RiskProfile) else risk_profile
    if category not in BASE_ALLOCATIONS:
        raise InvalidInput("category", f"must be one of {', '.join(CATEGORIES)}", category)
    goal = _coerce_goal(goal)
    sim = simulator or PortfolioSimulator()
    horizon_months = max(1, int(round(goal.years_to_goal * 12)))
    # one seed for every candidate so the comparison is like for like
    run_seed = seed if seed is not None else random_seed()

    candidates: List[AllocationCandidate] = []
    for cat in neighbour_categories(category):
        mix = target_allocation(cat, goal.years_to_goal)
        result = sim.run(
            SimulationParams(
                initial_investment=goal.initial_investment,
                monthly_contribution=goal.monthly_contribution,
                horizon_months=horizon_months,
                allocation=mix,
                goal_amount=goal.goal_amount,
                trials=trials,
                seed=run_seed,
            )
        )
        primary = cat == category
        candidates.append(
            AllocationCandidate(
                category=cat,
                primary=primary,
                allocation=dict(mix.root),
                probability_of_success=result.probability_of_success,
                median_outcome=result.median_outcome,
                percentile_10=result.percentile_10,
                percentile_90=result.percentile_90,
                expected_annual_return=result.expected_annual_return,
                expected_annual_volatility=result.expected_annual_volatility,
                funds=reference_funds(mix),
                reasoning=_reasoning(cat, primary, mix, goal.years_to_goal),
            )
        )

    candidates.sort(key=lambda c: (not c.primary, -c.probability_of_success))
    logger.info(f"[Recommend] category={category} candidates={len(candidates)} horizon={horizon_months}m")
    return RecommendationSet(category=category, goal=goal, candidates=candidates, seed=run_seed)
