# betting.py
"""
Roulette Orchestrator: bulk bet placement.

Builds one bet per (wallet, amount range) for every configured group, shuffles the
queue and pushes it through the bounded task runner.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from solders.keypair import Keypair

from config import BetGroup
from errors import ActionFailed
from task_runner import BatchProgress, TaskOutcome, run_bounded, summarize

logger = logging.getLogger(__name__)

BET_TYPES: Dict[str, int] = {
    "Straight": 0, "Split": 1, "Corner": 2, "Street": 3, "SixLine": 4,
    "FirstFour": 5, "Red": 6, "Black": 7, "Even": 8, "Odd": 9, "Manque": 10,
    "Passe": 11, "Column": 12, "P12": 13, "M12": 14, "D12": 15,
}


def to_base_units(amount: int, decimals: int) -> int:
    return int(amount) * (10 ** int(decimals))


def random_bet_numbers(bet_type: int, rng: random.Random) -> List[int]:
    """Numbers for the bet type; unused slots stay 0."""
    numbers = [0, 0, 0, 0]
    if bet_type == BET_TYPES["Straight"]:
        numbers[0] = rng.randint(0, 36)
    elif bet_type == BET_TYPES["Split"]:
        if rng.random() < 0.5:
            # vertical
            n1 = rng.randint(1, 33)
            numbers[0], numbers[1] = n1, n1 + 3
        else:
            n1 = 1 + 3 * rng.randint(0, 11) + rng.randint(0, 1)
            numbers[0], numbers[1] = n1, n1 + 1
    elif bet_type == BET_TYPES["Corner"]:
        numbers[0] = 1 + 3 * rng.randint(0, 10) + rng.randint(0, 1)
    elif bet_type == BET_TYPES["Street"]:
        numbers[0] = 1 + 3 * rng.randint(0, 11)
    elif bet_type == BET_TYPES["SixLine"]:
        numbers[0] = 1 + 3 * rng.randint(0, 10)
    elif bet_type == BET_TYPES["Column"]:
        numbers[0] = rng.randint(1, 3)
    return numbers


@dataclass(frozen=True)
class PlannedBet:
    player: Keypair
    group: str
    mint: str
    amount_tokens: int
    amount_base: int
    bet_type: int
    numbers: tuple


def build_bet_queue(
    wallets_by_group: Dict[str, Sequence[Keypair]],
    groups: Sequence[BetGroup],
    rng: Optional[random.Random] = None,
) -> List[PlannedBet]:
    rng = rng or random.Random()
    bet_type_values = list(BET_TYPES.values())
    queue: List[PlannedBet] = []
    for group in groups:
        for wallet in wallets_by_group.get(group.name, []):
            for lo, hi in group.amount_ranges:
                amount = rng.randint(lo, hi)
                bet_type = rng.choice(bet_type_values)
                queue.append(PlannedBet(
                    player=wallet,
                    group=group.name,
                    mint=group.mint,
                    amount_tokens=amount,
                    amount_base=to_base_units(amount, group.decimals),
                    bet_type=bet_type,
                    numbers=tuple(random_bet_numbers(bet_type, rng)),
                ))
    rng.shuffle(queue)
    return queue


class BetPlacer:
    def __init__(
        self,
        program,
        wallets_by_group: Dict[str, Sequence[Keypair]],
        groups: Sequence[BetGroup],
        concurrency_limit: int,
        pace_delay: float,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.program = program
        self.wallets_by_group = wallets_by_group
        self.groups = list(groups)
        self.concurrency_limit = concurrency_limit
        self.pace_delay = pace_delay
        self._rng = rng or random.Random()

    def _task(self, bet: PlannedBet):
        async def place() -> TaskOutcome:
            try:
                sig = await self.program.place_bet(
                    bet.player, bet.mint, bet.amount_base, bet.bet_type, bet.numbers
                )
            except Exception as exc:
                # ActionFailed carries the program logs in its str()
                verb = "rejected" if isinstance(exc, ActionFailed) else "failed"
                logger.error(
                    "[betting] bet %s for %s [%s] amount=%s type=%s: %s",
                    verb, bet.player.pubkey(), bet.group, bet.amount_tokens, bet.bet_type, exc,
                )
                return TaskOutcome.failure(exc, payload=bet)
            return TaskOutcome.success(sig)
        return place

    async def run(self, round_number: int) -> BatchProgress:
        queue = build_bet_queue(self.wallets_by_group, self.groups, self._rng)
        logger.info("[betting] round %s: queued %d bet(s)", round_number, len(queue))
        outcomes = await run_bounded(
            [self._task(bet) for bet in queue],
            self.concurrency_limit,
            self.pace_delay,
            label=f"bets round {round_number}",
        )
        return summarize(outcomes)
