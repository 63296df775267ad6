"""
Shared test fakes for the chain, the game API and the notifier.

Use these from conftest.py fixtures or directly in test modules.
"""
from __future__ import annotations

import asyncio
import struct
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from game_api import PlayerRoundBets
from round_state import RoundState, RoundStatus

MINT = "So11111111111111111111111111111111111111112"


class FakeSleep:
    """Records requested delays and yields once to the event loop."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


class FakeRpcClient:
    def __init__(self, url: str, fail_close: bool = False) -> None:
        self.url = url
        self.closed = False
        self._fail_close = fail_close

    async def close(self) -> None:
        self.closed = True
        if self._fail_close:
            raise RuntimeError("close failed")


class FakePool:
    def __init__(self, endpoints: Sequence[str] = ("https://rpc-a", "https://rpc-b")) -> None:
        self._endpoints = list(endpoints)
        self.index = 0
        self.rotations = 0

    def current(self) -> str:
        return self._endpoints[self.index]

    async def rotate(self) -> str:
        self.index = (self.index + 1) % len(self._endpoints)
        self.rotations += 1
        return self.current()


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: List[str] = []

    async def notify(self, message: str) -> bool:
        self.messages.append(message)
        return True


class FakeReader:
    """
    Plays back a script of RoundState values or exceptions. When the script is
    exhausted, `on_empty()` supplies the state (or the last state is repeated).
    """

    def __init__(self, script, on_empty: Optional[Callable[[], RoundState]] = None) -> None:
        self.script = list(script)
        self.on_empty = on_empty
        self.fetches = 0
        self._last: Optional[RoundState] = None

    async def fetch(self) -> RoundState:
        self.fetches += 1
        if self.script:
            item = self.script.pop(0)
        elif self.on_empty is not None:
            item = self.on_empty()
        else:
            item = self._last
        if isinstance(item, BaseException):
            raise item
        self._last = item
        return item


class FakeActions:
    def __init__(self, random_failures: Sequence[BaseException] = ()) -> None:
        self.calls: List[str] = []
        self._random_failures = list(random_failures)

    async def start_new_round(self) -> str:
        self.calls.append("start_new_round")
        return "sig-start"

    async def close_bets(self) -> str:
        self.calls.append("close_bets")
        return "sig-close"

    async def request_random(self) -> str:
        self.calls.append("get_random")
        if self._random_failures:
            raise self._random_failures.pop(0)
        return "sig-random"


class FakeApi:
    """
    Off-chain eligibility source. `results[(player, round)]` is a PlayerRoundBets
    or an exception to raise; unknown keys raise `default_error`.
    """

    def __init__(self, default_error: Optional[BaseException] = None) -> None:
        self.results: Dict[Tuple[str, int], object] = {}
        self.default_error = default_error
        self.calls: List[Tuple[str, int]] = []

    def set_bets(self, player: str, round_number: int, payouts: Sequence[int],
                 already_claimed: bool = False, mint: Optional[str] = MINT) -> None:
        bets = [{"payoutAmount": p, "tokenMint": mint} for p in payouts]
        self.results[(player, round_number)] = PlayerRoundBets(
            player=player, round_number=round_number, bets=bets, already_claimed=already_claimed
        )

    def mark_claimed(self, player: str, round_number: int) -> None:
        current = self.results.get((player, round_number))
        if isinstance(current, PlayerRoundBets):
            self.results[(player, round_number)] = PlayerRoundBets(
                player=player, round_number=round_number, bets=current.bets, already_claimed=True
            )

    async def player_round_bets(self, player: str, round_number: int) -> PlayerRoundBets:
        self.calls.append((player, round_number))
        result = self.results.get((player, round_number), self.default_error)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeProgram:
    """Claim-side program client. Successful claims are reflected back into the API."""

    def __init__(self, api: Optional[FakeApi] = None) -> None:
        self.api = api
        self.claim_records: set = set()
        self.claim_failures: Dict[str, List[BaseException]] = {}
        self.claims: List[Tuple[str, int, str]] = []
        self.record_checks = 0
        self.bets: List[Tuple[str, str, int, int, tuple]] = []
        self.bet_failures: Dict[str, BaseException] = {}

    async def claim_record_exists(self, player, round_number: int) -> bool:
        self.record_checks += 1
        return (str(player), round_number) in self.claim_records

    async def claim_winnings(self, player: Keypair, round_number: int, mint) -> str:
        identity = str(player.pubkey())
        pending = self.claim_failures.get(identity)
        if pending:
            raise pending.pop(0)
        self.claims.append((identity, round_number, str(mint)))
        self.claim_records.add((identity, round_number))
        if self.api is not None:
            self.api.mark_claimed(identity, round_number)
        return f"sig-claim-{identity[:6]}"

    async def place_bet(self, player: Keypair, mint, amount: int, bet_type: int, numbers) -> str:
        identity = str(player.pubkey())
        if identity in self.bet_failures:
            raise self.bet_failures[identity]
        self.bets.append((identity, str(mint), amount, bet_type, tuple(numbers)))
        return f"sig-bet-{len(self.bets)}"


def round_state(status: RoundStatus, round_number: int = 1, start_time: int = 0,
                winning_value: Optional[int] = None, last_completed_round: int = 0) -> RoundState:
    return RoundState(
        status=status,
        round_number=round_number,
        start_time=start_time,
        winning_value=winning_value,
        last_completed_round=last_completed_round,
    )


def encode_game_session(
    authority: Optional[Pubkey],
    round_number: int,
    start_time: int,
    status_ordinal: int,
    winning_number: Optional[int] = None,
    bets_closed_at: int = 0,
    random_requested_at: int = 0,
    bump: int = 255,
    last_bettor: Optional[Pubkey] = None,
    last_completed_round: int = 0,
) -> bytes:
    """Raw game_session account bytes, discriminator included. authority=None omits the field."""
    out = b"\x07" * 8 + (b"" if authority is None else bytes(authority))
    out += struct.pack("<QqB", round_number, start_time, status_ordinal)
    out += b"\x00" if winning_number is None else struct.pack("<BB", 1, winning_number)
    out += struct.pack("<qqB", bets_closed_at, random_requested_at, bump)
    out += b"\x00" if last_bettor is None else b"\x01" + bytes(last_bettor)
    out += struct.pack("<Q", last_completed_round)
    return out
