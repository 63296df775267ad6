"""Tests for decoding the game session account."""
import pytest
from solders.keypair import Keypair

from errors import StateIntegrityError, StateUnavailable
from round_state import RoundStateReader, RoundStatus, decode_round_state
from tests.common import encode_game_session


class _Program:
    def __init__(self, data):
        self.data = data
        self.requested = []

    def game_session_address(self):
        return "session"

    async def account_data(self, address):
        self.requested.append(address)
        return self.data


class TestDecodeRoundState:
    def test_decodes_every_field(self):
        authority = Keypair().pubkey()
        bettor = Keypair().pubkey()
        data = encode_game_session(
            authority, round_number=42, start_time=1_700_000_000, status_ordinal=3,
            winning_number=17, bets_closed_at=1_700_000_060, random_requested_at=1_700_000_075,
            bump=253, last_bettor=bettor, last_completed_round=42,
        )

        state = decode_round_state(data)

        assert state.status == RoundStatus.COMPLETED
        assert state.round_number == 42
        assert state.start_time == 1_700_000_000
        assert state.winning_value == 17
        assert state.last_completed_round == 42
        assert state.authority == authority
        assert state.bets_closed_at == 1_700_000_060
        assert state.random_requested_at == 1_700_000_075
        assert state.bump == 253
        assert state.last_bettor == bettor

    @pytest.mark.parametrize("ordinal,status", [
        (0, RoundStatus.NOT_STARTED),
        (1, RoundStatus.ACCEPTING_BETS),
        (2, RoundStatus.BETS_CLOSED),
        (3, RoundStatus.COMPLETED),
    ])
    def test_status_ordinals(self, ordinal, status):
        data = encode_game_session(Keypair().pubkey(), 5, 0, ordinal)
        assert decode_round_state(data).status == status

    def test_absent_options_decode_to_none(self):
        state = decode_round_state(encode_game_session(Keypair().pubkey(), 5, 0, 1))

        assert state.winning_value is None
        assert state.last_bettor is None
        assert state.last_completed_round == 0

    def test_layout_without_authority(self):
        data = encode_game_session(None, round_number=31, start_time=1_700_000_000, status_ordinal=2,
                                   last_completed_round=30)

        state = decode_round_state(data, with_authority=False)

        assert state.authority is None
        assert state.round_number == 31
        assert state.status == RoundStatus.BETS_CLOSED
        assert state.last_completed_round == 30

    def test_out_of_range_status_is_an_integrity_error(self):
        data = encode_game_session(Keypair().pubkey(), 5, 0, 4)
        with pytest.raises(StateIntegrityError):
            decode_round_state(data)

    def test_truncated_account_is_an_integrity_error(self):
        data = encode_game_session(Keypair().pubkey(), 5, 0, 1)
        with pytest.raises(StateIntegrityError):
            decode_round_state(data[:-3])

    def test_invalid_option_tag_is_an_integrity_error(self):
        data = bytearray(encode_game_session(Keypair().pubkey(), 5, 0, 1))
        # winning_number option tag sits right after the status byte
        data[8 + 32 + 8 + 8 + 1] = 9
        with pytest.raises(StateIntegrityError):
            decode_round_state(bytes(data))


class TestRoundStateReader:
    @pytest.mark.asyncio
    async def test_fetch_decodes_account(self):
        program = _Program(encode_game_session(Keypair().pubkey(), 8, 100, 2, last_completed_round=7))

        state = await RoundStateReader(program).fetch()

        assert state.status == RoundStatus.BETS_CLOSED
        assert state.round_number == 8
        assert program.requested == ["session"]

    @pytest.mark.asyncio
    async def test_fetch_without_authority(self):
        program = _Program(encode_game_session(None, 8, 100, 1))

        state = await RoundStateReader(program, with_authority=False).fetch()

        assert state.status == RoundStatus.ACCEPTING_BETS
        assert state.round_number == 8

    @pytest.mark.asyncio
    async def test_missing_account(self):
        with pytest.raises(StateUnavailable):
            await RoundStateReader(_Program(None)).fetch()
