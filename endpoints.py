# endpoints.py
"""
Roulette Orchestrator: RPC endpoint pool

Holds the ordered list of interchangeable RPC endpoints and the one live client
bound to the active endpoint. Callers fetch `client()` right before every use;
`rotate()` replaces it wholesale.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

logger = logging.getLogger(__name__)


def _default_client_factory(url: str) -> AsyncClient:
    return AsyncClient(url, commitment=Confirmed)


class EndpointPool:
    def __init__(
        self,
        endpoints: Sequence[str],
        settle_delay: float = 2.0,
        client_factory: Callable[[str], Any] = _default_client_factory,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        urls = [u for u in endpoints if u]
        if not urls:
            raise ValueError("EndpointPool needs at least one endpoint")
        self._endpoints: List[str] = urls
        self._active_index = 0
        self._settle_delay = settle_delay
        self._client_factory = client_factory
        self._sleep = sleep
        self._client: Optional[Any] = None
        self.rotations = 0
        logger.info("[endpoints] initialized with %s", self.current())

    @property
    def endpoints(self) -> List[str]:
        return list(self._endpoints)

    @property
    def active_index(self) -> int:
        return self._active_index

    def __len__(self) -> int:
        return len(self._endpoints)

    def current(self) -> str:
        return self._endpoints[self._active_index]

    def client(self) -> Any:
        """Live client for the active endpoint (created on first use)."""
        if self._client is None:
            self._client = self._client_factory(self.current())
        return self._client

    async def rotate(self) -> str:
        """Advance exactly one endpoint (wrapping), swap the client, then wait for it to settle."""
        self._active_index = (self._active_index + 1) % len(self._endpoints)
        self.rotations += 1
        old, self._client = self._client, self._client_factory(self.current())
        logger.warning("[endpoints] rotating to %s", self.current())
        if old is not None:
            await self._close_client(old)
        if self._settle_delay > 0:
            await self._sleep(self._settle_delay)
        return self.current()

    async def close(self) -> None:
        old, self._client = self._client, None
        if old is not None:
            await self._close_client(old)

    @staticmethod
    async def _close_client(client: Any) -> None:
        try:
            await client.close()
        except Exception as exc:
            # the client is being discarded either way
            logger.debug("[endpoints] error closing client: %s", exc)
