# services/portfolio/drift_analyzer.py
"""
Allocation drift: current vs. target mix, per asset class.

Classification rule (applied identically everywhere):
  |dev| <  threshold                         -> no result (within band)
  threshold <= |dev| < threshold * band      -> "drift"
  |dev| >= threshold * band, dev > 0         -> "overweight"
  |dev| >= threshold * band, dev < 0         -> "underweight"
band defaults to 1.5; band == 1.0 disables the "drift" tier.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional

from config.settings import BALANCE_TOLERANCE_PCT, DRIFT_BAND_MULTIPLIER, DRIFT_THRESHOLD_PCT
from schemas.allocation import (
    ASSET_CLASS_ORDER,
    DriftClassification,
    DriftResult,
    MixInput,
    coerce_mix,
)
from services.errors import InvalidInput

logger = logging.getLogger(__name__)

# float noise guard so 65.0 - 60.0 style inputs hit the inclusive boundary
_EPS = 1e-9


def _validate_threshold(threshold: float, band_multiplier: float) -> None:
    if not isinstance(threshold, (int, float)) or not math.isfinite(threshold) or threshold <= 0:
        raise InvalidInput("threshold", "must be a positive number of percentage points", threshold)
    if not isinstance(band_multiplier, (int, float)) or not math.isfinite(band_multiplier) or band_multiplier < 1.0:
        raise InvalidInput("band_multiplier", "must be >= 1.0", band_multiplier)


def classify_deviation(
    deviation: float,
    threshold: float,
    band_multiplier: float = DRIFT_BAND_MULTIPLIER,
) -> Optional[DriftClassification]:
    magnitude = abs(deviation)
    if magnitude + _EPS < threshold:
        return None
    if magnitude + _EPS < threshold * band_multiplier:
        return "drift"
    return "overweight" if deviation > 0 else "underweight"


def analyze_drift(
    current: MixInput,
    target: MixInput,
    threshold: float = DRIFT_THRESHOLD_PCT,
    *,
    band_multiplier: float = DRIFT_BAND_MULTIPLIER,
    include_within_band: bool = False,
) -> List[DriftResult]:
    """
    Compare every asset class present in either mix (missing = 0%).
    Classes are evaluated independently; no zero-sum coupling is assumed.
    Results come back in asset-class declaration order.
    """
    _validate_threshold(threshold, band_multiplier)
    cur = coerce_mix(current, "current")
    tgt = coerce_mix(target, "target")

    results: List[DriftResult] = []
    for asset in ASSET_CLASS_ORDER:
        if asset not in cur and asset not in tgt:
            continue
        c, t = cur.get(asset), tgt.get(asset)
        deviation = c - t
        classification = classify_deviation(deviation, threshold, band_multiplier)
        if classification is None and not include_within_band:
            continue
        results.append(
            DriftResult(
                asset_class=asset,
                current_pct=c,
                target_pct=t,
                deviation=round(deviation, 6),
                abs_deviation=round(abs(deviation), 6),
                threshold=float(threshold),
                classification=classification,
            )
        )

    flagged = sum(1 for r in results if r.classification is not None)
    logger.debug(f"[Drift] threshold={threshold} flagged={flagged} evaluated={len(results)}")
    return results


def is_balanced(mix: MixInput, tolerance: float = BALANCE_TOLERANCE_PCT) -> bool:
    """A mix is balanced when it sums to 100 within `tolerance` percentage points."""
    if not math.isfinite(tolerance) or tolerance < 0:
        raise InvalidInput("tolerance", "must be >= 0", tolerance)
    return coerce_mix(mix).is_balanced(tolerance)

