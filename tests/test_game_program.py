"""
Tests for the program client: addresses, instruction data and the
confirmation poll. RPC responses are stand-ins with the attributes solana-py returns.
"""
import hashlib
import json
import struct
from types import SimpleNamespace

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction_status import TransactionConfirmationStatus

from errors import ActionFailed, TransientError
from game_program import (
    GameProgram,
    RoundActions,
    anchor_discriminator,
    encode_bet,
    load_idl_discriminators,
)

PROGRAM_ID = Keypair().pubkey()


class _StatusClient:
    def __init__(self, statuses, logs=None, accounts=None):
        self.statuses = list(statuses)
        self.logs = logs or []
        self.accounts = accounts or {}
        self.polls = 0

    async def get_signature_statuses(self, signatures):
        self.polls += 1
        status = self.statuses.pop(0) if self.statuses else None
        return SimpleNamespace(value=[status])

    async def get_transaction(self, signature, commitment=None, max_supported_transaction_version=None):
        meta = SimpleNamespace(log_messages=self.logs)
        return SimpleNamespace(value=SimpleNamespace(transaction=SimpleNamespace(meta=meta)))

    async def get_account_info(self, address, commitment=None):
        data = self.accounts.get(address)
        return SimpleNamespace(value=None if data is None else SimpleNamespace(data=data))


class _Pool:
    def __init__(self, client):
        self._client = client

    def client(self):
        return self._client


def _program(client, fake_sleep, **kw):
    return GameProgram(_Pool(client), PROGRAM_ID, confirm_poll_interval=0.5, sleep=fake_sleep, **kw)


def _status(err=None, level=TransactionConfirmationStatus.Confirmed):
    return SimpleNamespace(err=err, confirmation_status=level)


class TestEncoding:
    def test_anchor_discriminator(self):
        assert anchor_discriminator("place_bet") == hashlib.sha256(b"global:place_bet").digest()[:8]

    def test_encode_bet_layout(self):
        data = encode_bet(1_500_000, 1, [4, 7])

        assert len(data) == 13
        assert struct.unpack("<QB4B", data) == (1_500_000, 1, 4, 7, 0, 0)

    def test_encode_bet_rejects_bad_values(self):
        with pytest.raises(ValueError):
            encode_bet(0, 1, [])
        with pytest.raises(ValueError):
            encode_bet(10, 300, [])

    def test_idl_discriminators_override(self, tmp_path, fake_sleep):
        idl = {"instructions": [
            {"name": "close_bets", "discriminator": [1, 2, 3, 4, 5, 6, 7, 8]},
            {"name": "legacy"},
        ]}
        path = tmp_path / "roulette.json"
        path.write_text(json.dumps(idl))

        found = load_idl_discriminators(str(path))
        program = _program(_StatusClient([]), fake_sleep, discriminators=found)

        assert found == {"close_bets": bytes([1, 2, 3, 4, 5, 6, 7, 8])}
        assert program.discriminator("close_bets") == bytes([1, 2, 3, 4, 5, 6, 7, 8])
        assert program.discriminator("get_random") == anchor_discriminator("get_random")


class TestAddresses:
    def test_seeds(self, fake_sleep):
        program = _program(_StatusClient([]), fake_sleep)
        player = Keypair().pubkey()
        mint = Keypair().pubkey()
        session, _ = Pubkey.find_program_address([b"game_session"], PROGRAM_ID)

        assert program.game_session_address() == session
        assert program.vault_address(mint) == Pubkey.find_program_address([b"vault", bytes(mint)], PROGRAM_ID)[0]
        assert program.player_bets_address(player) == Pubkey.find_program_address(
            [b"player_bets", bytes(session), bytes(player)], PROGRAM_ID)[0]
        assert program.claim_record_address(str(player), 258) == Pubkey.find_program_address(
            [b"claim_record", bytes(player), (258).to_bytes(8, "little")], PROGRAM_ID)[0]

    @pytest.mark.asyncio
    async def test_vault_token_account_read_from_vault_record(self, fake_sleep):
        mint = Keypair().pubkey()
        token_account = Keypair().pubkey()
        client = _StatusClient([])
        program = _program(client, fake_sleep)
        client.accounts[program.vault_address(mint)] = b"\x00" * 8 + bytes(mint) + bytes(token_account) + b"\x01"

        assert await program.vault_token_account(mint) == token_account

    @pytest.mark.asyncio
    async def test_missing_vault(self, fake_sleep):
        program = _program(_StatusClient([]), fake_sleep)
        with pytest.raises(ActionFailed):
            await program.vault_token_account(Keypair().pubkey())

    @pytest.mark.asyncio
    async def test_claim_record_exists(self, fake_sleep):
        player = Keypair().pubkey()
        client = _StatusClient([])
        program = _program(client, fake_sleep)
        client.accounts[program.claim_record_address(player, 3)] = b"\x00" * 16

        assert await program.claim_record_exists(player, 3) is True
        assert await program.claim_record_exists(player, 4) is False


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_polls_until_confirmed(self, fake_sleep):
        client = _StatusClient([None, _status(level=TransactionConfirmationStatus.Processed), _status()])
        program = _program(client, fake_sleep)

        assert await program._confirm("sig111", "close_bets") == "sig111"
        assert client.polls == 3
        assert fake_sleep.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_on_chain_error_carries_logs(self, fake_sleep):
        client = _StatusClient([_status(err="InstructionError")], logs=["Program log: BettingClosed"])
        program = _program(client, fake_sleep)

        with pytest.raises(ActionFailed) as info:
            await program._confirm("sig222", "place_bet")

        assert info.value.logs == ["Program log: BettingClosed"]
        assert "BettingClosed" in str(info.value)

    @pytest.mark.asyncio
    async def test_unconfirmed_is_transient(self, fake_sleep):
        client = _StatusClient([])
        program = _program(client, fake_sleep, confirm_max_polls=4)

        with pytest.raises(TransientError):
            await program._confirm("sig333", "get_random")
        assert client.polls == 4


class TestRoundActions:
    @pytest.mark.asyncio
    async def test_requires_signers(self, fake_sleep):
        actions = RoundActions(_program(_StatusClient([]), fake_sleep), [])
        with pytest.raises(ActionFailed):
            await actions.start_new_round()
