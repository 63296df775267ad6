# round_state.py
"""
Roulette Orchestrator: round state reader

Decodes the program's `game_session` account (Borsh layout, little-endian):

    [8]  account discriminator
    [32] authority             (absent on deployments built without it)
    u64  current_round
    i64  round_start_time
    u8   round_status          0 NotStarted | 1 AcceptingBets | 2 BetsClosed | 3 Completed
    Option<u8>  winning_number
    i64  bets_closed_timestamp
    i64  get_random_timestamp
    u8   bump
    Option<Pubkey> last_bettor
    u64  last_completed_round
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from solders.pubkey import Pubkey

from errors import StateIntegrityError, StateUnavailable

logger = logging.getLogger(__name__)

ACCOUNT_DISCRIMINATOR_LEN = 8


class RoundStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    ACCEPTING_BETS = "AcceptingBets"
    BETS_CLOSED = "BetsClosed"
    COMPLETED = "Completed"


# on-chain ordinal -> status
STATUS_BY_ORDINAL = (
    RoundStatus.NOT_STARTED,
    RoundStatus.ACCEPTING_BETS,
    RoundStatus.BETS_CLOSED,
    RoundStatus.COMPLETED,
)


@dataclass(frozen=True)
class RoundState:
    status: RoundStatus
    round_number: int
    start_time: int
    winning_value: Optional[int]
    last_completed_round: int
    authority: Optional[Pubkey] = None
    bets_closed_at: int = 0
    random_requested_at: int = 0
    bump: int = 0
    last_bettor: Optional[Pubkey] = None

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "round_number": self.round_number,
            "start_time": self.start_time,
            "winning_value": self.winning_value,
            "last_completed_round": self.last_completed_round,
            "bets_closed_at": self.bets_closed_at,
            "random_requested_at": self.random_requested_at,
        }


class _Cursor:
    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def take(self, fmt: str) -> Tuple:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise StateIntegrityError(
                f"game session truncated: need {size} byte(s) at offset {self.offset}, have {len(self.data)}"
            )
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def u8(self) -> int:
        return self.take("<B")[0]

    def u64(self) -> int:
        return self.take("<Q")[0]

    def i64(self) -> int:
        return self.take("<q")[0]

    def pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self.take("<32s")[0])

    def option(self, read):
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return read()
        raise StateIntegrityError(f"invalid option tag {tag} at offset {self.offset - 1}")


def decode_round_state(data: bytes, with_authority: bool = True) -> RoundState:
    """Decode raw account data. Any malformation is a StateIntegrityError, never a default."""
    cur = _Cursor(bytes(data), ACCOUNT_DISCRIMINATOR_LEN)
    authority = cur.pubkey() if with_authority else None
    round_number = cur.u64()
    start_time = cur.i64()
    ordinal = cur.u8()
    if ordinal >= len(STATUS_BY_ORDINAL):
        raise StateIntegrityError(f"round status ordinal out of range: {ordinal}")
    winning_value = cur.option(cur.u8)
    bets_closed_at = cur.i64()
    random_requested_at = cur.i64()
    bump = cur.u8()
    last_bettor = cur.option(cur.pubkey)
    last_completed_round = cur.u64()
    return RoundState(
        status=STATUS_BY_ORDINAL[ordinal],
        round_number=round_number,
        start_time=start_time,
        winning_value=winning_value,
        last_completed_round=last_completed_round,
        authority=authority,
        bets_closed_at=bets_closed_at,
        random_requested_at=random_requested_at,
        bump=bump,
        last_bettor=last_bettor,
    )


class RoundStateReader:
    def __init__(self, program, with_authority: bool = True) -> None:
        # GameProgram (or anything with game_session_address() and account_data())
        self.program = program
        self.with_authority = with_authority

    async def fetch(self) -> RoundState:
        address = self.program.game_session_address()
        data = await self.program.account_data(address)
        if data is None:
            raise StateUnavailable(f"game session account not found: {address}")
        state = decode_round_state(data, self.with_authority)
        logger.debug("[round_state] %s", state.as_dict())
        return state
