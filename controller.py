# controller.py
"""
Roulette Orchestrator: round lifecycle controller

Polls the game session and issues exactly one round-advancing action per status:

    NotStarted / Completed -> start_new_round
    AcceptingBets          -> dispatch bets (detached), wait out the window, close_bets
    BetsClosed             -> cooldown, get_random (bounded attempts), claim winnings (retried)

Every step ends by re-polling rather than assuming the action landed. The outer
loop never exits on error: retryable failures rotate the RPC endpoint, anything
else is alerted and backed off.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from errors import (
    RETRYABLE_KINDS,
    PhaseExhausted,
    RetryState,
    RoundNotSettled,
    classify_exception,
)
from round_state import RoundState, RoundStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerTimings:
    """All durations in seconds."""

    betting_duration: float = 60.0
    deadline_from_start: bool = True
    cooldown_after_close: float = 15.0
    cooldown_after_random: float = 30.0
    settle_delay: float = 5.0
    reveal_max_attempts: int = 3
    reveal_retry_delay: float = 5.0
    claim_max_attempts: Optional[int] = None
    claim_retry_delay: float = 10.0
    transient_backoff: float = 5.0
    error_backoff: float = 30.0
    alert_after_failures: int = 5

    @classmethod
    def from_settings(cls, s) -> "ControllerTimings":
        return cls(
            betting_duration=s.seconds("BETTING_DURATION_MS"),
            deadline_from_start=s.BETTING_DEADLINE_FROM_START,
            cooldown_after_close=s.seconds("COOLDOWN_AFTER_CLOSE_MS"),
            cooldown_after_random=s.seconds("COOLDOWN_AFTER_RANDOM_MS"),
            settle_delay=s.seconds("SETTLE_DELAY_MS"),
            reveal_max_attempts=s.REVEAL_MAX_ATTEMPTS,
            reveal_retry_delay=s.seconds("REVEAL_RETRY_DELAY_MS"),
            claim_max_attempts=s.claim_max_attempts,
            claim_retry_delay=s.seconds("CLAIM_RETRY_DELAY_MS"),
            transient_backoff=s.seconds("TRANSIENT_BACKOFF_MS"),
            error_backoff=s.seconds("ERROR_BACKOFF_MS"),
            alert_after_failures=s.ALERT_AFTER_FAILURES,
        )


class RoundController:
    def __init__(
        self,
        reader,
        actions,
        bets,
        reconciler,
        pool,
        notifier,
        timings: ControllerTimings = ControllerTimings(),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader = reader
        self.actions = actions
        self.bets = bets
        self.reconciler = reconciler
        self.pool = pool
        self.notifier = notifier
        self.timings = timings
        self._sleep = sleep
        self._clock = clock

        self._transitions: Dict[RoundStatus, Callable[[RoundState], Awaitable[None]]] = {
            RoundStatus.NOT_STARTED: self._start_round,
            RoundStatus.COMPLETED: self._start_round,
            RoundStatus.ACCEPTING_BETS: self._run_betting_window,
            RoundStatus.BETS_CLOSED: self._reveal_and_claim,
        }
        # round number whose bets were dispatched (one-shot per round)
        self._bets_dispatched_round: Optional[int] = None
        self._bet_tasks: Set[asyncio.Task] = set()
        self._stopping = False

        self.last_state: Optional[RoundState] = None
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None
        self.last_bet_summary: Optional[dict] = None
        self.last_claim_summary: Optional[dict] = None

    # =========================================================
    # Driver
    # =========================================================
    async def run_forever(self) -> None:
        logger.info("[controller] starting round loop on %s", self.pool.current())
        while not self._stopping:
            try:
                await self.step()
                self.consecutive_failures = 0
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                await self._recover(exc)

    def stop(self) -> None:
        self._stopping = True

    async def step(self) -> RoundState:
        """One poll plus the action for the observed status."""
        state = await self.reader.fetch()
        self.last_state = state
        logger.info("[controller] round %s status %s", state.round_number, state.status.value)
        await self._transitions[state.status](state)
        return state

    async def _recover(self, exc: Exception) -> None:
        kind = classify_exception(exc)
        self.consecutive_failures += 1
        self.last_error = f"{type(exc).__name__}: {exc}"
        if kind in RETRYABLE_KINDS:
            logger.warning(
                "[controller] %s error (%d in a row): %s", kind.value, self.consecutive_failures, exc
            )
            if self.consecutive_failures >= self.timings.alert_after_failures:
                await self.notifier.notify(
                    f"{self.consecutive_failures} consecutive {kind.value} failures; "
                    f"endpoint {self.pool.current()}: {exc}"
                )
            await self.pool.rotate()
            await self._sleep(self.timings.transient_backoff)
            return
        logger.error("[controller] round loop error: %s", exc, exc_info=exc)
        if not isinstance(exc, PhaseExhausted):
            # exhausted phases alert where they give up
            await self.notifier.notify(f"Round loop error ({kind.value}): {exc}")
        await self._sleep(self.timings.error_backoff)

    # =========================================================
    # NotStarted / Completed
    # =========================================================
    async def _start_round(self, state: RoundState) -> None:
        logger.info("[controller] starting a new round")
        await self.actions.start_new_round()
        await self._sleep(self.timings.settle_delay)

    # =========================================================
    # AcceptingBets
    # =========================================================
    def betting_wait(self, state: RoundState) -> float:
        """Seconds left in the betting window."""
        if self.timings.deadline_from_start and state.start_time > 0:
            deadline = state.start_time + self.timings.betting_duration
            return max(0.0, deadline - self._clock())
        return self.timings.betting_duration

    async def _run_betting_window(self, state: RoundState) -> None:
        if self._bets_dispatched_round != state.round_number:
            self._bets_dispatched_round = state.round_number
            self.dispatch_bets(state.round_number)

        wait = self.betting_wait(state)
        logger.info("[controller] betting open, closing in %.1fs", wait)
        await self._sleep(wait)

        logger.info("[controller] betting window over, closing bets")
        await self.actions.close_bets()
        await self._sleep(self.timings.settle_delay)

    def dispatch_bets(self, round_number: int) -> asyncio.Task:
        """Fire-and-monitor: the bet batch runs detached, its failure goes to the notifier."""
        task = asyncio.ensure_future(self._monitored_bets(round_number))
        self._bet_tasks.add(task)
        task.add_done_callback(self._bet_tasks.discard)
        return task

    async def _monitored_bets(self, round_number: int) -> None:
        try:
            summary = await self.bets.run(round_number)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[controller] bet batch for round %s crashed: %s", round_number, exc, exc_info=exc)
            await self.notifier.notify(f"Bet placement for round {round_number} crashed: {exc}")
            return
        self.last_bet_summary = {"round_number": round_number, **summary.as_dict()}
        logger.info("[controller] bets for round %s: %s", round_number, summary.as_dict())

    @property
    def pending_bet_tasks(self) -> Set[asyncio.Task]:
        return set(self._bet_tasks)

    # =========================================================
    # BetsClosed
    # =========================================================
    async def _reveal_and_claim(self, state: RoundState) -> None:
        logger.info("[controller] bets closed, waiting %.1fs before reveal", self.timings.cooldown_after_close)
        await self._sleep(self.timings.cooldown_after_close)

        await self.reveal()
        await self.claim_until_done(state.round_number)

        logger.info("[controller] waiting %.1fs before the next round", self.timings.cooldown_after_random)
        await self._sleep(self.timings.cooldown_after_random)

    async def reveal(self) -> None:
        """get_random with a bounded number of attempts; exhaustion is alerted and raised."""
        retry = RetryState(max_attempts=self.timings.reveal_max_attempts)
        while True:
            try:
                await self.actions.request_random()
                return
            except Exception as exc:
                retry.record_failure(exc)
                kind = classify_exception(exc)
                logger.warning(
                    "[controller] get_random attempt %d/%d failed (%s): %s",
                    retry.attempt_count, retry.max_attempts, kind.value, exc,
                )
                if retry.exhausted:
                    await self.notifier.notify(
                        f"get_random failed {retry.attempt_count} time(s); last error: {exc}"
                    )
                    raise PhaseExhausted("get_random", retry.attempt_count, exc) from exc
                if kind in RETRYABLE_KINDS:
                    await self.pool.rotate()
                await self._sleep(self.timings.reveal_retry_delay)

    async def claim_until_done(self, round_number: int) -> Optional[dict]:
        """
        Re-run the whole two-phase reconciliation until it completes. Unbounded
        unless claim_max_attempts is set, in which case exhaustion is alerted and
        the round is abandoned.
        """
        retry = RetryState(max_attempts=self.timings.claim_max_attempts)
        # failed attempts, not counting waits for settlement
        failures = 0
        while True:
            try:
                summary = await self._claim_once(round_number)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                retry.record_failure(exc)
                waiting = isinstance(exc, RoundNotSettled)
                kind = classify_exception(exc)
                if waiting:
                    logger.info("[controller] %s; checking again in %.1fs", exc, self.timings.claim_retry_delay)
                else:
                    logger.warning(
                        "[controller] claiming round %s failed (attempt %d, %s): %s",
                        round_number, retry.attempt_count, kind.value, exc,
                    )
                if retry.exhausted:
                    logger.error("[controller] giving up on claims for round %s", round_number)
                    await self.notifier.notify(
                        f"Claims for round {round_number} abandoned after {retry.attempt_count} attempt(s): {exc}"
                    )
                    return None
                if not waiting:
                    failures += 1
                    if failures % max(1, self.timings.alert_after_failures) == 0:
                        await self.notifier.notify(
                            f"Claims for round {round_number} still failing after {failures} attempt(s): {exc}"
                        )
                    if kind in RETRYABLE_KINDS:
                        await self.pool.rotate()
                await self._sleep(self.timings.claim_retry_delay)
                continue

            self.last_claim_summary = summary
            problems = []
            if summary.get("failed"):
                problems.append(f"{summary['failed']} claim(s) rejected by the program")
            if summary.get("eligibility_failed"):
                problems.append(f"eligibility unknown for {summary['eligibility_failed']} wallet(s)")
            if problems:
                await self.notifier.notify(f"Round {round_number}: " + "; ".join(problems))
            return summary

    async def _claim_once(self, round_number: int) -> dict:
        state = await self.reader.fetch()
        self.last_state = state
        if state.last_completed_round < round_number:
            raise RoundNotSettled(
                f"round {round_number} not settled yet (last completed {state.last_completed_round})"
            )
        logger.info(
            "[controller] claiming round %s, winning number %s", round_number, state.winning_value
        )
        result = await self.reconciler.reconcile(round_number)
        return result.as_dict()

    # =========================================================
    # Status
    # =========================================================
    def snapshot(self) -> dict:
        return {
            "state": self.last_state.as_dict() if self.last_state else None,
            "endpoint": self.pool.current(),
            "endpoint_rotations": getattr(self.pool, "rotations", 0),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "bets_dispatched_round": self._bets_dispatched_round,
            "bet_batches_running": len(self._bet_tasks),
            "last_bet_summary": self.last_bet_summary,
            "last_claim_summary": self.last_claim_summary,
        }
