# services/portfolio/rebalancing_alerts.py
"""
Turns drift rows into actionable rebalancing alerts.

Alerts come back unordered; anything that lists them to a user goes through
`sort_alerts` (urgency high > medium > low, then |deviation| descending).
Dismissal is caller state: pass the dismissed keys to `visible_alerts`.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence

from config.settings import ASSET_ASSUMPTIONS, DRIFT_BAND_MULTIPLIER, DRIFT_THRESHOLD_PCT
from schemas.allocation import (
    ASSET_CLASS_LABELS,
    ASSET_CLASS_ORDER,
    AlertType,
    AssetClass,
    DriftResult,
    MixInput,
    RebalancingAlert,
    Urgency,
)
from services.portfolio.drift_analyzer import analyze_drift

logger = logging.getLogger(__name__)

# Receives a within-band underweight row; returns a reason to flag it, or None.
OpportunityScorer = Callable[[DriftResult], Optional[str]]

URGENCY_RANK = {"high": 0, "medium": 1, "low": 2}

# Rough rule of thumb carried over from the product: ~0.1% per point rebalanced.
IMPACT_PER_POINT_PCT = 0.1

HIGH_RISK_VOL = 0.15
DEFENSIVE_VOL = 0.05


def urgency_for(abs_deviation: float, threshold: float) -> Urgency:
    if abs_deviation >= 2 * threshold:
        return "high"
    if abs_deviation >= threshold:
        return "medium"
    return "low"


def alert_key(asset_class: AssetClass, alert_type: AlertType) -> str:
    return f"{asset_class.value}:{alert_type}"


def _risk_character(asset_class: AssetClass) -> str:
    _, vol = ASSET_ASSUMPTIONS[asset_class.value]
    if vol >= HIGH_RISK_VOL:
        return "growth"
    if vol <= DEFENSIVE_VOL:
        return "defensive"
    return "diversifier"


def suggested_action(asset_class: AssetClass, deviation: float) -> str:
    label = ASSET_CLASS_LABELS[asset_class]
    points = abs(deviation)
    if deviation > 0:
        return f"Sell {label} to reduce allocation by {points:.1f} points"
    return f"Buy {label} to increase allocation by {points:.1f} points"


def potential_impact(asset_class: AssetClass, deviation: float) -> str:
    """Templated risk/return effect of closing the gap. Text only, no market data."""
    label = ASSET_CLASS_LABELS[asset_class]
    points = abs(deviation)
    character = _risk_character(asset_class)
    reducing = deviation > 0

    if character == "growth":
        effect = (
            f"Trimming {label} by {points:.1f} points lowers portfolio volatility and drawdown exposure"
            if reducing
            else f"Adding {points:.1f} points of {label} restores long-term growth potential, with more short-term volatility"
        )
    elif character == "defensive":
        effect = (
            f"Moving {points:.1f} points out of {label} raises expected return with a modest rise in volatility"
            if reducing
            else f"Adding {points:.1f} points of {label} adds stability and cushions drawdowns"
        )
    else:
        effect = f"Bringing {label} back to target restores the intended diversification"

    return f"{effect}; rebalancing could improve risk-adjusted returns by ~{points * IMPACT_PER_POINT_PCT:.1f}%"


def _build_alert(row: DriftResult, alert_type: AlertType, urgency: Urgency, created: datetime,
                 action: Optional[str] = None, impact: Optional[str] = None) -> RebalancingAlert:
    return RebalancingAlert(
        alert_key=alert_key(row.asset_class, alert_type),
        alert_type=alert_type,
        asset_class=row.asset_class,
        current_allocation=row.current_pct,
        target_allocation=row.target_pct,
        deviation_percentage=row.deviation,
        urgency=urgency,
        suggested_action=action or suggested_action(row.asset_class, row.deviation),
        potential_impact=impact or potential_impact(row.asset_class, row.deviation),
        created_date=created,
        dismissed=False,
    )


def generate_alerts(
    drift_results: Iterable[DriftResult],
    *,
    opportunity_scorer: Optional[OpportunityScorer] = None,
    now: Optional[datetime] = None,
) -> List[RebalancingAlert]:
    """
    One alert per flagged row. Within-band underweight rows (present only when
    drift was analysed with include_within_band=True) become `opportunity`
    alerts when the scorer returns a reason.
    """
    created = now or datetime.now(timezone.utc)
    alerts: List[RebalancingAlert] = []

    for row in drift_results:
        if row.classification is not None:
            alerts.append(
                _build_alert(row, row.classification, urgency_for(row.abs_deviation, row.threshold), created)
            )
            continue

        if opportunity_scorer is None or row.deviation >= 0:
            continue
        reason = opportunity_scorer(row)
        if not reason:
            continue
        label = ASSET_CLASS_LABELS[row.asset_class]
        alerts.append(
            _build_alert(
                row,
                "opportunity",
                urgency_for(row.abs_deviation, row.threshold),
                created,
                action=f"Consider buying {label} to close a {row.abs_deviation:.1f} point gap to target",
                impact=f"{reason}; {potential_impact(row.asset_class, row.deviation)}",
            )
        )

    logger.debug(f"[Alerts] generated={len(alerts)}")
    return alerts


def sort_alerts(alerts: Iterable[RebalancingAlert]) -> List[RebalancingAlert]:
    """Display order: urgency (high > medium > low), then |deviation| descending."""
    order = {a: i for i, a in enumerate(ASSET_CLASS_ORDER)}
    return sorted(
        alerts,
        key=lambda a: (URGENCY_RANK[a.urgency], -abs(a.deviation_percentage), order[a.asset_class]),
    )


def visible_alerts(alerts: Iterable[RebalancingAlert], dismissed_keys: Iterable[str] = ()) -> List[RebalancingAlert]:
    """Drop alerts the caller has dismissed (by key or by flag)."""
    hidden = set(dismissed_keys)
    return [a for a in alerts if not a.dismissed and a.alert_key not in hidden]


def check_rebalancing(
    current: MixInput,
    target: MixInput,
    threshold: float = DRIFT_THRESHOLD_PCT,
    *,
    band_multiplier: float = DRIFT_BAND_MULTIPLIER,
    opportunity_scorer: Optional[OpportunityScorer] = None,
    dismissed_keys: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> List[RebalancingAlert]:
    """Drift analysis + alerts + display ordering in one explicit, pure call."""
    rows = analyze_drift(
        current,
        target,
        threshold,
        band_multiplier=band_multiplier,
        include_within_band=opportunity_scorer is not None,
    )
    alerts = generate_alerts(rows, opportunity_scorer=opportunity_scorer, now=now)
    return sort_alerts(visible_alerts(alerts, dismissed_keys))
