# game_api.py
"""
Roulette Orchestrator: off-chain game API client (eligibility queries).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx

from errors import FatalError, network_boundary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerRoundBets:
    player: str
    round_number: int
    bets: List[dict] = field(default_factory=list)
    already_claimed: bool = False

    @property
    def total_payout(self) -> int:
        total = 0
        for bet in self.bets:
            try:
                total += int(bet.get("payoutAmount") or 0)
            except (TypeError, ValueError):
                continue
        return total

    @property
    def token_mint(self) -> Optional[str]:
        for bet in self.bets:
            if bet.get("tokenMint"):
                return str(bet["tokenMint"])
        return None


class GameApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        verify_tls: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )

    async def player_round_bets(self, player: str, round_number: int) -> PlayerRoundBets:
        """
        Bets of `player` in `round_number`. A 404 (no bets) surfaces as NotFoundError,
        rate limits as RateLimitedError.
        """
        async with network_boundary(f"player-round-bets {player} round {round_number}"):
            resp = await self._client.get(
                "/player-round-bets",
                params={"player": player, "round": str(round_number)},
            )
            resp.raise_for_status()
            body: Any = resp.json() if resp.content else {}
        body = body or {}
        if not isinstance(body, dict):
            raise FatalError(f"player-round-bets {player} round {round_number}: unexpected body {body!r:.200}")
        return PlayerRoundBets(
            player=player,
            round_number=round_number,
            bets=list(body.get("bets") or []),
            already_claimed=body.get("alreadyClaimed") is True,
        )

    async def close(self) -> None:
        await self._client.aclose()
