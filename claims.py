# claims.py
"""
Roulette Orchestrator: claim reconciliation

Two phases, both through the bounded task runner:
  1. eligibility: ask the game API which bot wallets won the round and have not claimed
  2. submission: one claim transaction per candidate, unless a claim record already exists

`reconcile()` is the single success/failure boundary. It raises ClaimIncomplete
when any check or claim failed with a retryable error, so the caller re-runs both
phases; already-claimed wallets are skipped on the re-run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from solders.keypair import Keypair

from errors import RETRYABLE_KINDS, ClaimIncomplete, FatalError, NotFoundError, classify_exception
from task_runner import BatchProgress, OutcomeKind, TaskOutcome, run_bounded, summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimCandidate:
    identity: str
    eligible_payout_total: int
    already_claimed: bool
    token_mint: str
    wallet: Optional[Keypair] = field(default=None, compare=False, repr=False)


@dataclass
class ClaimSummary:
    round_number: int
    checked: BatchProgress
    candidates: int = 0
    claimed: int = 0
    already_recorded: int = 0
    failed: int = 0
    # wallets whose win/loss could not be determined
    eligibility_failed: int = 0
    retryable_failures: int = 0

    def as_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "checked": self.checked.as_dict(),
            "candidates": self.candidates,
            "claimed": self.claimed,
            "already_recorded": self.already_recorded,
            "failed": self.failed,
            "eligibility_failed": self.eligibility_failed,
            "retryable_failures": self.retryable_failures,
        }


def _retryable_failures(outcomes: Sequence[TaskOutcome]) -> int:
    return sum(
        1 for o in outcomes
        if o.kind == OutcomeKind.FAILURE and o.error is not None
        and classify_exception(o.error) in RETRYABLE_KINDS
    )


class ClaimReconciler:
    def __init__(
        self,
        api,
        program,
        wallets: Sequence[Keypair],
        concurrency_limit: int,
        pace_delay: float,
        submit_concurrency_limit: Optional[int] = None,
    ) -> None:
        self.api = api
        self.program = program
        self.wallets = list(wallets)
        self.concurrency_limit = concurrency_limit
        self.pace_delay = pace_delay
        self.submit_concurrency_limit = submit_concurrency_limit or concurrency_limit

    # ---------------- Phase 1 ----------------
    def _check_task(self, wallet: Keypair, round_number: int):
        identity = str(wallet.pubkey())

        async def check() -> TaskOutcome:
            try:
                bets = await self.api.player_round_bets(identity, round_number)
            except NotFoundError:
                # no bets placed this round
                return TaskOutcome.skipped()
            except Exception as exc:
                logger.error("[claims] eligibility check failed for %s: %s", identity, exc)
                raise
            payout = bets.total_payout
            if payout <= 0 or bets.already_claimed:
                return TaskOutcome.skipped()
            if not bets.token_mint:
                raise FatalError(f"winning bets for {identity} carry no token mint")
            return TaskOutcome.success(ClaimCandidate(
                identity=identity,
                eligible_payout_total=payout,
                already_claimed=False,
                token_mint=bets.token_mint,
                wallet=wallet,
            ))
        return check

    async def check_eligibility(self, round_number: int) -> Tuple[List[ClaimCandidate], List[TaskOutcome]]:
        outcomes = await run_bounded(
            [self._check_task(w, round_number) for w in self.wallets],
            self.concurrency_limit,
            self.pace_delay,
            label=f"eligibility round {round_number}",
        )
        candidates = [o.payload for o in outcomes if o.kind == OutcomeKind.SUCCESS]
        return candidates, outcomes

    # ---------------- Phase 2 ----------------
    def _claim_task(self, candidate: ClaimCandidate, round_number: int):
        async def claim() -> TaskOutcome:
            try:
                if await self.program.claim_record_exists(candidate.identity, round_number):
                    logger.warning(
                        "[claims] claim record for %s round %s already exists; skipping",
                        candidate.identity, round_number,
                    )
                    return TaskOutcome.skipped(candidate)
                sig = await self.program.claim_winnings(candidate.wallet, round_number, candidate.token_mint)
            except Exception as exc:
                logger.error("[claims] claim failed for %s: %s", candidate.identity, exc)
                raise
            logger.info(
                "[claims] claimed %s for %s round %s, tx %s",
                candidate.eligible_payout_total, candidate.identity, round_number, sig,
            )
            return TaskOutcome.success(sig)
        return claim

    async def submit(self, round_number: int, candidates: Sequence[ClaimCandidate]) -> List[TaskOutcome]:
        return await run_bounded(
            [self._claim_task(c, round_number) for c in candidates],
            self.submit_concurrency_limit,
            self.pace_delay,
            label=f"claims round {round_number}",
        )

    # ---------------- Both ----------------
    async def reconcile(self, round_number: int, check_only: bool = False) -> ClaimSummary:
        candidates, check_outcomes = await self.check_eligibility(round_number)
        summary = ClaimSummary(round_number=round_number, checked=summarize(check_outcomes))
        summary.candidates = len(candidates)
        summary.retryable_failures = _retryable_failures(check_outcomes)
        summary.eligibility_failed = summary.checked.failed

        if not candidates:
            logger.info("[claims] round %s: no winners among %d wallet(s)", round_number, len(self.wallets))
        elif check_only:
            logger.info("[claims] round %s: %d winner(s) found (check only)", round_number, len(candidates))
        else:
            logger.info("[claims] round %s: %d winner(s) found, claiming", round_number, len(candidates))
            claim_outcomes = await self.submit(round_number, candidates)
            progress = summarize(claim_outcomes)
            summary.claimed = progress.succeeded
            summary.already_recorded = progress.skipped
            summary.failed = progress.failed
            summary.retryable_failures += _retryable_failures(claim_outcomes)

        if summary.retryable_failures:
            raise ClaimIncomplete(
                f"round {round_number}: {summary.retryable_failures} retryable failure(s) "
                f"({summary.claimed} claimed, {summary.failed} failed)"
            )
        if summary.eligibility_failed:
            logger.error(
                "[claims] round %s: eligibility unknown for %d wallet(s)", round_number, summary.eligibility_failed
            )
        logger.info(
            "[claims] round %s done: %d claimed, %d already recorded, %d failed",
            round_number, summary.claimed, summary.already_recorded, summary.failed,
        )
        return summary
