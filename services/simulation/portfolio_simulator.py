# services/simulation/portfolio_simulator.py
"""
Monte Carlo projection of a portfolio toward a goal amount.

Model, per trial and month:
  class return  ~ Normal(annual_return / 12, annual_volatility / sqrt(12))
  r             = max(sum(weight_pct / 100 * class return), -0.99)
  balance       = (balance + contribution) * (1 + r)

Each trial draws from its own Generator spawned off one SeedSequence(seed),
so a seed reproduces the same paths whatever the worker count or chunking.
Weights are used as given: a mix summing to 80 leaves 20% idle at 0% return.
"""
from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from pydantic import ValidationError

from config.settings import (
    ASSET_ASSUMPTIONS,
    MONTHLY_RETURN_FLOOR,
    MONTHS_PER_YEAR,
    SIM_CHUNK_SIZE,
    SIM_DEFAULT_TRIALS,
    SIM_MAX_CELLS,
    SIM_MAX_HORIZON_MONTHS,
    SIM_MAX_TRIALS,
    SIM_MAX_WORKERS,
    SIM_TIMEOUT_SEC,
)
from schemas.allocation import ASSET_CLASS_ORDER, AssetClass
from schemas.simulation import MonthlyProjection, SimulationParams, SimulationResults
from services.errors import InvalidInput, SimulationAborted
from services.risk.risk_metrics import compute_risk_metrics

logger = logging.getLogger(__name__)

PERCENTILES = (10, 50, 90)

AssumptionsInput = Mapping[Union[AssetClass, str], Tuple[float, float]]
ParamsInput = Union[SimulationParams, Mapping[str, Any]]


@dataclass
class _ChunkResult:
    trial_ids: np.ndarray       # trials actually completed in this chunk
    balances: np.ndarray        # (k, horizon)
    returns: np.ndarray         # (k, horizon) portfolio monthly returns
    drawdowns: np.ndarray       # (k,) worst growth-index drawdown per trial


def random_seed() -> int:
    """Fresh 63-bit seed; small enough to survive a JSON round trip as an int64."""
    return int(np.random.SeedSequence().generate_state(1, np.uint64)[0] >> np.uint64(1))


def coerce_params(params: ParamsInput) -> SimulationParams:
    if isinstance(params, SimulationParams):
        return params
    try:
        return SimulationParams.model_validate(params)
    except ValidationError as exc:
        raise InvalidInput.from_validation_error(exc) from exc


def _normalize_assumptions(assumptions: Optional[AssumptionsInput]) -> Dict[AssetClass, Tuple[float, float]]:
    table = {AssetClass(k): tuple(v) for k, v in ASSET_ASSUMPTIONS.items()}
    for key, pair in (assumptions or {}).items():
        try:
            asset = AssetClass(key)
            mean, vol = (float(x) for x in pair)
        except (TypeError, ValueError):
            raise InvalidInput("assumptions", f"bad entry for {key!r}; expected (annual_return, annual_volatility)")
        if not (math.isfinite(mean) and math.isfinite(vol)) or vol < 0:
            raise InvalidInput(f"assumptions.{asset.value}", "return must be finite and volatility >= 0")
        table[asset] = (mean, vol)
    return table


class PortfolioSimulator:
    """Holds immutable configuration only; safe to share between threads."""

    def __init__(
        self,
        assumptions: Optional[AssumptionsInput] = None,
        *,
        max_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
        max_trials: int = SIM_MAX_TRIALS,
        max_horizon_months: int = SIM_MAX_HORIZON_MONTHS,
        default_timeout_s: Optional[float] = SIM_TIMEOUT_SEC,
    ):
        self.assumptions = _normalize_assumptions(assumptions)
        self.max_workers = max(1, int(max_workers or SIM_MAX_WORKERS))
        self.chunk_size = max(1, int(chunk_size or SIM_CHUNK_SIZE))
        self.max_trials = max_trials
        self.max_horizon_months = max_horizon_months
        self.default_timeout_s = default_timeout_s

        means = np.array([self.assumptions[a][0] for a in ASSET_CLASS_ORDER], dtype=float)
        vols = np.array([self.assumptions[a][1] for a in ASSET_CLASS_ORDER], dtype=float)
        self._monthly_mean = means / MONTHS_PER_YEAR
        self._monthly_std = vols / math.sqrt(MONTHS_PER_YEAR)
        self._annual_mean = means
        self._annual_vol = vols

    # ── validation ────────────────────────────────────────────────

    def _check_limits(self, params: SimulationParams, trials: int) -> None:
        if trials > self.max_trials:
            raise InvalidInput("trials", f"must be <= {self.max_trials}", trials)
        if params.horizon_months > self.max_horizon_months:
            raise InvalidInput("horizon_months", f"must be <= {self.max_horizon_months}", params.horizon_months)
        if trials * params.horizon_months > SIM_MAX_CELLS:
            raise InvalidInput("trials", f"trials x horizon_months must be <= {SIM_MAX_CELLS}", trials)

    def expected_annual(self, weights: np.ndarray) -> Tuple[float, float]:
        """Portfolio (mean, volatility) for fractional weights; classes drawn independently."""
        mean = float(weights @ self._annual_mean)
        vol = float(math.sqrt(float(np.sum((weights * self._annual_vol) ** 2))))
        return mean, vol

    # ── trial work ────────────────────────────────────────────────

    def _run_chunk(
        self,
        trial_ids: range,
        seeds: List[np.random.SeedSequence],
        weights: np.ndarray,
        params: SimulationParams,
        stop: threading.Event,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> _ChunkResult:
        horizon = params.horizon_months
        done: List[int] = []
        rets = np.empty((len(trial_ids), horizon), dtype=float)

        for i, tid in enumerate(trial_ids):
            if (
                stop.is_set()
                or (cancel_event is not None and cancel_event.is_set())
                or (deadline is not None and time.monotonic() >= deadline)
            ):
                stop.set()
                break
            rng = np.random.default_rng(seeds[tid])
            draws = rng.normal(self._monthly_mean, self._monthly_std, size=(horizon, len(ASSET_CLASS_ORDER)))
            rets[i] = np.maximum(draws @ weights, MONTHLY_RETURN_FLOOR)
            done.append(tid)

        k = len(done)
        rets = rets[:k]
        balances = np.empty((k, horizon), dtype=float)
        balance = np.full(k, float(params.initial_investment))
        contribution = float(params.monthly_contribution)
        for m in range(horizon):
            balance = (balance + contribution) * (1.0 + rets[:, m])
            balances[:, m] = balance

        if k:
            growth = np.cumprod(1.0 + rets, axis=1)
            peaks = np.maximum(np.maximum.accumulate(growth, axis=1), 1.0)
            drawdowns = np.minimum((growth / peaks - 1.0).min(axis=1), 0.0)
        else:
            drawdowns = np.empty(0, dtype=float)

        return _ChunkResult(np.asarray(done, dtype=int), balances, rets, drawdowns)

    # ── public ────────────────────────────────────────────────────

    def run(
        self,
        params: ParamsInput,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout_s: Optional[float] = None,
    ) -> SimulationResults:
        params = coerce_params(params)
        trials = params.trials or SIM_DEFAULT_TRIALS
        self._check_limits(params, trials)

        seed = params.seed if params.seed is not None else random_seed()
        seeds = np.random.SeedSequence(seed).spawn(trials)
        weights = np.asarray(params.allocation.fractions(), dtype=float)
        horizon = params.horizon_months

        timeout = self.default_timeout_s if timeout_s is None else timeout_s
        deadline = time.monotonic() + timeout if timeout is not None else None
        stop = threading.Event()

        balances = np.empty((trials, horizon), dtype=float)
        returns = np.empty((trials, horizon), dtype=float)
        drawdowns = np.zeros(trials, dtype=float)
        completed = np.zeros(trials, dtype=bool)

        chunks = [range(s, min(s + self.chunk_size, trials)) for s in range(0, trials, self.chunk_size)]
        workers = min(self.max_workers, len(chunks))
        t0 = time.perf_counter()

        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = [ex.submit(self._run_chunk, c, seeds, weights, params, stop, cancel_event, deadline) for c in chunks]
            for fut in as_completed(futures):
                part = fut.result()
                if part.trial_ids.size:
                    balances[part.trial_ids] = part.balances
                    returns[part.trial_ids] = part.returns
                    drawdowns[part.trial_ids] = part.drawdowns
                    completed[part.trial_ids] = True

        n_done = int(completed.sum())
        aborted = n_done < trials
        elapsed = time.perf_counter() - t0
        if aborted:
            reason = "cancelled" if cancel_event is not None and cancel_event.is_set() else "timed out"
            if n_done == 0:
                logger.warning(f"[Simulator] {reason} before any trial completed ({elapsed:.2f}s)")
                raise SimulationAborted(0, trials, reason=reason)
            logger.warning(f"[Simulator] {reason}: {n_done}/{trials} trials in {elapsed:.2f}s, returning partial")
            balances = balances[completed]
            returns = returns[completed]
            drawdowns = drawdowns[completed]
        else:
            logger.info(
                f"[Simulator] trials={trials} horizon={horizon} workers={workers} elapsed={elapsed:.2f}s"
            )

        return self._summarize(params, seed, trials, n_done, aborted, weights, balances, returns, drawdowns)

    def _summarize(
        self,
        params: SimulationParams,
        seed: int,
        trials: int,
        n_done: int,
        aborted: bool,
        weights: np.ndarray,
        balances: np.ndarray,
        returns: np.ndarray,
        drawdowns: np.ndarray,
    ) -> SimulationResults:
        goal = float(params.goal_amount)
        p10, p50, p90 = np.percentile(balances, PERCENTILES, axis=0)
        if goal <= 0:
            above = np.ones(balances.shape[1], dtype=float)
        else:
            above = (balances >= goal).mean(axis=0)

        projections = [
            MonthlyProjection(
                month=m + 1,
                median_value=round(float(p50[m]), 2),
                percentile_10=round(float(p10[m]), 2),
                percentile_90=round(float(p90[m]), 2),
                probability_above_goal=round(float(above[m]), 6),
            )
            for m in range(balances.shape[1])
        ]

        metrics = compute_risk_metrics(returns.ravel(), max_drawdown=float(drawdowns.min()))
        exp_return, exp_vol = self.expected_annual(weights)
        last = projections[-1]

        return SimulationResults(
            probability_of_success=last.probability_above_goal,
            median_outcome=last.median_value,
            percentile_10=last.percentile_10,
            percentile_90=last.percentile_90,
            monthly_projections=projections,
            risk_metrics=metrics,
            expected_annual_return=round(exp_return, 6),
            expected_annual_volatility=round(exp_vol, 6),
            trials_requested=trials,
            trials_completed=n_done,
            aborted=aborted,
            seed=seed,
        )


def simulate_portfolio(
    params: ParamsInput,
    *,
    cancel_event: Optional[threading.Event] = None,
    timeout_s: Optional[float] = None,
    simulator: Optional[PortfolioSimulator] = None,
) -> SimulationResults:
    return (simulator or PortfolioSimulator()).run(params, cancel_event=cancel_event, timeout_s=timeout_s)


async def simulate_portfolio_async(
    params: ParamsInput,
    *,
    timeout_s: Optional[float] = None,
    simulator: Optional[PortfolioSimulator] = None,
) -> SimulationResults:
    """Run in a worker thread; cancelling the awaiting task stops the trials."""
    stop = threading.Event()
    try:
        return await asyncio.to_thread(
            simulate_portfolio, params, cancel_event=stop, timeout_s=timeout_s, simulator=simulator
        )
    except asyncio.CancelledError:
        stop.set()
        raise
