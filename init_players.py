"""
Roulette Orchestrator: init_players.py
One-shot initializer for the bot wallets' on-chain player accounts:
- Derives each wallet's player_bets account
- Skips wallets that already have one
- Sends initialize_player_bets for the rest through the bounded runner
"""

import argparse
import asyncio
import logging
import sys

from config import settings
from logging_setup import configure_logging
from services import build_services
from task_runner import TaskOutcome, run_bounded, summarize

logger = logging.getLogger("init_players")


# =========================================================
# Config
# =========================================================
INIT_CONCURRENCY_LIMIT = 15
INIT_PACE_DELAY_MS = 200


# =========================================================
# Helpers
# =========================================================
def init_task(program, wallet):
    async def init() -> TaskOutcome:
        owner = wallet.pubkey()
        if await program.player_bets_exists(owner):
            logger.info("player_bets for %s already initialized", owner)
            return TaskOutcome.skipped(str(owner))
        sig = await program.initialize_player(wallet)
        logger.info("Initialized player_bets for %s, tx %s", owner, sig)
        return TaskOutcome.success(sig)
    return init


# =========================================================
# Main
# =========================================================
async def main(concurrency: int, pace_ms: int) -> int:
    services = build_services(settings)
    try:
        wallets = services.wallets
        logger.info("Initializing player accounts for %d wallet(s)", len(wallets))
        outcomes = await run_bounded(
            [init_task(services.program, w) for w in wallets],
            concurrency,
            pace_ms / 1000.0,
            label="init players",
        )
        for wallet, outcome in zip(wallets, outcomes):
            if outcome.error is not None:
                logger.error("Failed to initialize %s: %s", wallet.pubkey(), outcome.error)
        progress = summarize(outcomes)
        logger.info(
            "Done: %d initialized, %d already existed, %d failed",
            progress.succeeded, progress.skipped, progress.failed,
        )
        return 1 if progress.failed else 0
    finally:
        await services.close()


if __name__ == "__main__":
    p = argparse.ArgumentParser(description="Initialize player_bets accounts for all bot wallets")
    p.add_argument("--concurrency", type=int, default=INIT_CONCURRENCY_LIMIT)
    p.add_argument("--pace-ms", type=int, default=INIT_PACE_DELAY_MS)
    args = p.parse_args()
    configure_logging(settings.LOG_LEVEL)
    sys.exit(asyncio.run(main(args.concurrency, args.pace_ms)))
