# config/settings.py
"""
Tunables for the portfolio decision core.

Everything is read once at import from the environment (a local .env is
honoured). Defaults are the documented policy values; override per deploy.
"""
from __future__ import annotations

import json
import os
from typing import Dict, List, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


# ─── Drift / rebalancing ───────────────────────────────────────────
DRIFT_THRESHOLD_PCT = _env_float("DRIFT_THRESHOLD_PCT", 5.0)
# |deviation| in [threshold, threshold * multiplier) is reported as "drift"
DRIFT_BAND_MULTIPLIER = _env_float("DRIFT_BAND_MULTIPLIER", 1.5)
BALANCE_TOLERANCE_PCT = _env_float("BALANCE_TOLERANCE_PCT", 1.0)

# ─── Monte Carlo ───────────────────────────────────────────────────
SIM_DEFAULT_TRIALS = _env_int("SIM_DEFAULT_TRIALS", 1000)
SIM_MAX_TRIALS = _env_int("SIM_MAX_TRIALS", 20_000)
SIM_MAX_HORIZON_MONTHS = _env_int("SIM_MAX_HORIZON_MONTHS", 1200)  # 100y
SIM_MAX_WORKERS = _env_int("SIM_MAX_WORKERS", 4)
SIM_CHUNK_SIZE = _env_int("SIM_CHUNK_SIZE", 250)                    # trials per worker task
SIM_TIMEOUT_SEC = _env_float("SIM_TIMEOUT_SEC", 20.0)
# trials x months kept in memory for percentiles (one float64 array per kept series)
SIM_MAX_CELLS = _env_int("SIM_MAX_CELLS", 6_000_000)
MONTHLY_RETURN_FLOOR = -0.99

# ─── Risk metrics ──────────────────────────────────────────────────
RISK_FREE_RATE = _env_float("RISK_FREE_RATE", 0.045)  # approximate T-bill rate
MONTHS_PER_YEAR = 12

# ─── Return assumptions ────────────────────────────────────────────
# (annual expected return, annual volatility) per asset class.
# Long-run reference figures, not market data.
DEFAULT_ASSET_ASSUMPTIONS: Dict[str, Tuple[float, float]] = {
    "stocks_us": (0.105, 0.16),
    "stocks_international": (0.098, 0.18),
    "bonds": (0.042, 0.04),
    "real_estate": (0.089, 0.20),
    "commodities": (0.065, 0.25),
    "cash": (0.025, 0.01),
}


def _load_asset_assumptions() -> Dict[str, Tuple[float, float]]:
    """
    ASSET_RETURN_ASSUMPTIONS overrides individual classes, e.g.
    {"stocks_us": {"annual_return": 0.08, "annual_volatility": 0.17}}
    """
    table = dict(DEFAULT_ASSET_ASSUMPTIONS)
    raw = os.getenv("ASSET_RETURN_ASSUMPTIONS")
    if not raw:
        return table
    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"ASSET_RETURN_ASSUMPTIONS is not valid JSON: {e}")
    if not isinstance(overrides, dict):
        raise RuntimeError("ASSET_RETURN_ASSUMPTIONS must be a JSON object")

    for key, node in overrides.items():
        if key not in table:
            raise RuntimeError(f"ASSET_RETURN_ASSUMPTIONS has unknown asset class {key!r}")
        if not isinstance(node, dict):
            raise RuntimeError(f"ASSET_RETURN_ASSUMPTIONS[{key!r}] must be an object")
        mean, vol = table[key]
        try:
            mean = float(node.get("annual_return", mean))
            vol = float(node.get("annual_volatility", vol))
        except (TypeError, ValueError):
            raise RuntimeError(f"ASSET_RETURN_ASSUMPTIONS[{key!r}] values must be numbers")
        if vol < 0:
            raise RuntimeError(f"ASSET_RETURN_ASSUMPTIONS[{key!r}] volatility must be >= 0")
        table[key] = (mean, vol)
    return table


ASSET_ASSUMPTIONS = _load_asset_assumptions()

# ─── HTTP ──────────────────────────────────────────────────────────
CORS_ORIGINS: List[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
