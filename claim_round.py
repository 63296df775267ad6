# claim_round.py
"""
Roulette Orchestrator: manual claim tool.

Runs one claim reconciliation for a given round outside the controller loop,
e.g. after the controller gave up on a round or was stopped mid-claim.

    python claim_round.py --round 42
    python claim_round.py --round 42 --player <pubkey> --check-only
"""

import argparse
import asyncio
import json
import logging
import sys

from config import settings
from errors import OrchestratorError
from logging_setup import configure_logging
from services import build_services

logger = logging.getLogger("claim_round")


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Claim winnings of the bot wallets for one round")
    p.add_argument("--round", type=int, default=None,
                   help="round number (default: the last completed round)")
    p.add_argument("--player", default=None, help="only this wallet's public key")
    p.add_argument("--check-only", action="store_true", help="report winners without claiming")
    return p.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    services = build_services(settings)
    try:
        round_number = args.round
        if round_number is None:
            state = await services.reader.fetch()
            round_number = state.last_completed_round
            logger.info("Using last completed round %s", round_number)

        wallets = services.wallets
        if args.player:
            wallets = [w for w in wallets if str(w.pubkey()) == args.player]
            if not wallets:
                logger.error("Player %s is not one of the loaded wallets", args.player)
                return 2

        reconciler = services.reconciler(wallets)
        try:
            summary = await reconciler.reconcile(round_number, check_only=args.check_only)
        except OrchestratorError as e:
            logger.error("Claiming round %s incomplete: %s", round_number, e)
            return 1
        print(json.dumps(summary.as_dict(), indent=2))
        return 1 if summary.failed or summary.eligibility_failed else 0
    finally:
        await services.close()


def main(argv=None) -> int:
    configure_logging(settings.LOG_LEVEL)
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
