# services.py
"""
Roulette Orchestrator: component wiring.

Builds the shared collaborators from Settings once. Used by the web service and
by the one-shot tools (claim_round.py, init_players.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from solders.keypair import Keypair

from betting import BetPlacer
from claims import ClaimReconciler
from config import Settings
from controller import ControllerTimings, RoundController
from endpoints import EndpointPool
from game_api import GameApiClient
from game_program import GameProgram, RoundActions, load_idl_discriminators
from notifier import SlackNotifier
from round_state import RoundStateReader
from wallets import load_wallets_by_group

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    pool: EndpointPool
    program: GameProgram
    reader: RoundStateReader
    api: GameApiClient
    notifier: SlackNotifier
    wallets_by_group: Dict[str, List[Keypair]]

    @property
    def wallets(self) -> List[Keypair]:
        out: List[Keypair] = []
        for keypairs in self.wallets_by_group.values():
            out.extend(keypairs)
        return out

    def reconciler(self, wallets: Optional[List[Keypair]] = None) -> ClaimReconciler:
        s = self.settings
        return ClaimReconciler(
            self.api,
            self.program,
            self.wallets if wallets is None else wallets,
            concurrency_limit=s.CONCURRENCY_LIMIT,
            pace_delay=s.claim_pace_delay_s,
            submit_concurrency_limit=s.CLAIM_CONCURRENCY_LIMIT,
        )

    def controller(self) -> RoundController:
        s = self.settings
        bets = BetPlacer(
            self.program,
            self.wallets_by_group,
            s.BET_GROUPS,
            concurrency_limit=s.CONCURRENCY_LIMIT,
            pace_delay=s.pace_delay_s,
        )
        return RoundController(
            reader=self.reader,
            actions=RoundActions(self.program, self.wallets),
            bets=bets,
            reconciler=self.reconciler(),
            pool=self.pool,
            notifier=self.notifier,
            timings=ControllerTimings.from_settings(s),
        )

    async def close(self) -> None:
        await self.api.close()
        await self.pool.close()


def build_services(s: Settings) -> Services:
    discriminators = load_idl_discriminators(s.PROGRAM_IDL_PATH) if s.PROGRAM_IDL_PATH else None
    pool = EndpointPool(s.RPC_ENDPOINTS, settle_delay=s.seconds("RPC_SETTLE_DELAY_MS"))
    program = GameProgram(
        pool,
        s.PROGRAM_ID,
        discriminators=discriminators,
        confirm_max_polls=s.CONFIRM_MAX_POLLS,
        confirm_poll_interval=s.seconds("CONFIRM_POLL_INTERVAL_MS"),
        bet_compute_units=s.BET_COMPUTE_UNITS,
        random_compute_units=s.RANDOM_COMPUTE_UNITS,
    )
    wallets_by_group = load_wallets_by_group(s.WALLETS_DIR, [g.name for g in s.BET_GROUPS])
    logger.info(
        "[services] %d RPC endpoint(s), %d wallet(s) in %d group(s), program %s",
        len(pool), sum(len(v) for v in wallets_by_group.values()), len(wallets_by_group), s.PROGRAM_ID,
    )
    return Services(
        settings=s,
        pool=pool,
        program=program,
        reader=RoundStateReader(program, with_authority=s.GAME_SESSION_HAS_AUTHORITY),
        api=GameApiClient(s.API_BASE_URL, timeout=s.API_TIMEOUT_S, verify_tls=s.API_VERIFY_TLS),
        notifier=SlackNotifier(s.SLACK_WEBHOOK_URL, timeout=s.SLACK_TIMEOUT_S),
        wallets_by_group=wallets_by_group,
    )
