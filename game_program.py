# game_program.py
"""
Roulette Orchestrator: on-chain program client

PDA derivation, instruction encoding and fire-and-confirm submission for the
roulette program's actions. Every RPC call goes through the endpoint pool's live
client and the error boundary.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import random
import struct
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.models import TxOpts
from solders.compute_budget import set_compute_unit_limit
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from endpoints import EndpointPool
from errors import ActionFailed, TransientError, network_boundary

logger = logging.getLogger(__name__)

GAME_SESSION_SEED = b"game_session"
VAULT_SEED = b"vault"
PLAYER_BETS_SEED = b"player_bets"
CLAIM_RECORD_SEED = b"claim_record"

# Vault account: 8 (discriminator) + 32 (token_mint), then the token account
VAULT_TOKEN_ACCOUNT_OFFSET = 40

_CONFIRMED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)

PubkeyLike = Union[str, Pubkey]


# =========================================================
# Helpers
# =========================================================
def to_pubkey(addr: PubkeyLike) -> Pubkey:
    if isinstance(addr, Pubkey):
        return addr
    if not addr:
        raise ValueError("Empty public key provided")
    return Pubkey.from_string(str(addr).strip())


def anchor_discriminator(name: str) -> bytes:
    """Anchor instruction discriminator: first 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def load_idl_discriminators(path: str) -> Dict[str, bytes]:
    with open(path, "r", encoding="utf-8") as fh:
        idl = json.load(fh)
    out: Dict[str, bytes] = {}
    for ix in idl.get("instructions", []):
        if ix.get("discriminator"):
            out[ix["name"]] = bytes(ix["discriminator"])
    return out


def encode_bet(amount: int, bet_type: int, numbers: Sequence[int]) -> bytes:
    """u64 amount, u8 bet type, [u8; 4] numbers (13 bytes, little-endian)."""
    if amount <= 0:
        raise ValueError("bet amount must be > 0")
    if not 0 <= bet_type <= 255:
        raise ValueError(f"bet type out of range: {bet_type}")
    nums = list(numbers)[:4]
    nums += [0] * (4 - len(nums))
    return struct.pack("<QB4B", int(amount), int(bet_type), *nums)


def _rpc_error_logs(exc: RPCException) -> List[str]:
    # preflight failures carry the program logs in data.logs
    detail = exc.args[0] if exc.args else None
    data = getattr(detail, "data", None)
    logs = getattr(data, "logs", None)
    return [str(line) for line in logs] if logs else []


# =========================================================
# Program client
# =========================================================
class GameProgram:
    def __init__(
        self,
        pool: EndpointPool,
        program_id: PubkeyLike,
        discriminators: Optional[Dict[str, bytes]] = None,
        confirm_max_polls: int = 30,
        confirm_poll_interval: float = 1.0,
        bet_compute_units: int = 400_000,
        random_compute_units: int = 200_000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.pool = pool
        self.program_id = to_pubkey(program_id)
        self._discriminators = dict(discriminators or {})
        self._confirm_max_polls = max(1, int(confirm_max_polls))
        self._confirm_poll_interval = confirm_poll_interval
        self._bet_compute_units = bet_compute_units
        self._random_compute_units = random_compute_units
        self._sleep = sleep
        self._game_session: Optional[Pubkey] = None

    def discriminator(self, name: str) -> bytes:
        found = self._discriminators.get(name)
        return found if found is not None else anchor_discriminator(name)

    # ---------------- Addresses ----------------
    def game_session_address(self) -> Pubkey:
        if self._game_session is None:
            self._game_session, _ = Pubkey.find_program_address([GAME_SESSION_SEED], self.program_id)
        return self._game_session

    def vault_address(self, mint: PubkeyLike) -> Pubkey:
        pda, _ = Pubkey.find_program_address([VAULT_SEED, bytes(to_pubkey(mint))], self.program_id)
        return pda

    def player_bets_address(self, player: PubkeyLike) -> Pubkey:
        pda, _ = Pubkey.find_program_address(
            [PLAYER_BETS_SEED, bytes(self.game_session_address()), bytes(to_pubkey(player))],
            self.program_id,
        )
        return pda

    def claim_record_address(self, player: PubkeyLike, round_number: int) -> Pubkey:
        pda, _ = Pubkey.find_program_address(
            [CLAIM_RECORD_SEED, bytes(to_pubkey(player)), int(round_number).to_bytes(8, "little")],
            self.program_id,
        )
        return pda

    # ---------------- Reads ----------------
    async def account_data(self, address: Pubkey) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist."""
        async with network_boundary(f"get_account_info {address}"):
            resp = await self.pool.client().get_account_info(address, commitment=Confirmed)
        value = getattr(resp, "value", None)
        if value is None:
            return None
        return bytes(value.data)

    async def vault_token_account(self, mint: PubkeyLike) -> Pubkey:
        """The vault's token account is read from the vault record, not derived."""
        vault = self.vault_address(mint)
        data = await self.account_data(vault)
        if data is None:
            raise ActionFailed(f"vault account not found: {vault}")
        end = VAULT_TOKEN_ACCOUNT_OFFSET + 32
        if len(data) < end:
            raise ActionFailed(f"vault account {vault} too short ({len(data)} bytes)")
        return Pubkey.from_bytes(data[VAULT_TOKEN_ACCOUNT_OFFSET:end])

    async def claim_record_exists(self, player: PubkeyLike, round_number: int) -> bool:
        return await self.account_data(self.claim_record_address(player, round_number)) is not None

    async def player_bets_exists(self, player: PubkeyLike) -> bool:
        return await self.account_data(self.player_bets_address(player)) is not None

    # ---------------- Submission ----------------
    async def send_and_confirm(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        operation: str,
    ) -> str:
        """Sign, send (skip preflight) and poll for confirmation a bounded number of times."""
        payer = signers[0]
        async with network_boundary(f"{operation}: send"):
            client = self.pool.client()
            latest = await client.get_latest_blockhash(commitment=Confirmed)
            blockhash = latest.value.blockhash
            message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
            tx = Transaction(list(signers), message, blockhash)
            try:
                sent = await client.send_raw_transaction(
                    bytes(tx), opts=TxOpts(skip_preflight=True, preflight_commitment=Confirmed)
                )
            except RPCException as exc:
                raise ActionFailed(f"{operation} rejected: {exc}", logs=_rpc_error_logs(exc)) from exc
        return await self._confirm(sent.value, operation)

    async def _confirm(self, signature, operation: str) -> str:
        for _ in range(self._confirm_max_polls):
            async with network_boundary(f"{operation}: confirm"):
                resp = await self.pool.client().get_signature_statuses([signature])
            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err is not None:
                    logs = await self._transaction_logs(signature)
                    raise ActionFailed(f"{operation} failed: {status.err} (tx {signature})", logs=logs)
                if status.confirmation_status in _CONFIRMED:
                    return str(signature)
            await self._sleep(self._confirm_poll_interval)
        raise TransientError(
            f"{operation}: tx {signature} not confirmed after {self._confirm_max_polls} polls"
        )

    async def _transaction_logs(self, signature) -> List[str]:
        try:
            resp = await self.pool.client().get_transaction(
                signature, commitment=Confirmed, max_supported_transaction_version=0
            )
            meta = resp.value.transaction.meta if resp.value else None
            return list(meta.log_messages or []) if meta else []
        except Exception as exc:
            logger.debug("[program] could not fetch logs for %s: %s", signature, exc)
            return []

    # ---------------- Lifecycle actions ----------------
    def _session_ix(self, name: str, signer: Pubkey, with_system: bool = True) -> Instruction:
        accounts = [
            AccountMeta(self.game_session_address(), is_signer=False, is_writable=True),
            AccountMeta(signer, is_signer=True, is_writable=True),
        ]
        if with_system:
            accounts.append(AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False))
        return Instruction(self.program_id, self.discriminator(name), accounts)

    async def start_new_round(self, initiator: Keypair) -> str:
        ix = self._session_ix("start_new_round", initiator.pubkey())
        return await self.send_and_confirm([ix], [initiator], "start_new_round")

    async def close_bets(self, closer: Keypair) -> str:
        ix = self._session_ix("close_bets", closer.pubkey())
        return await self.send_and_confirm([ix], [closer], "close_bets")

    async def request_random(self, initiator: Keypair) -> str:
        ixs = [
            set_compute_unit_limit(self._random_compute_units),
            self._session_ix("get_random", initiator.pubkey(), with_system=False),
        ]
        return await self.send_and_confirm(ixs, [initiator], "get_random")

    # ---------------- Per-wallet actions ----------------
    async def place_bet(
        self,
        player: Keypair,
        mint: PubkeyLike,
        amount: int,
        bet_type: int,
        numbers: Sequence[int],
    ) -> str:
        mint_pk = to_pubkey(mint)
        owner = player.pubkey()
        vault = self.vault_address(mint_pk)
        vault_ata = await self.vault_token_account(mint_pk)
        accounts = [
            AccountMeta(vault, is_signer=False, is_writable=True),
            AccountMeta(self.game_session_address(), is_signer=False, is_writable=True),
            AccountMeta(get_associated_token_address(owner, mint_pk), is_signer=False, is_writable=True),
            AccountMeta(vault_ata, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=True),
            AccountMeta(self.player_bets_address(owner), is_signer=False, is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        data = self.discriminator("place_bet") + encode_bet(amount, bet_type, numbers)
        ixs = [
            set_compute_unit_limit(self._bet_compute_units),
            Instruction(self.program_id, data, accounts),
        ]
        return await self.send_and_confirm(ixs, [player], "place_bet")

    async def claim_winnings(self, player: Keypair, round_number: int, mint: PubkeyLike) -> str:
        mint_pk = to_pubkey(mint)
        owner = player.pubkey()
        vault = self.vault_address(mint_pk)
        vault_ata = await self.vault_token_account(mint_pk)
        accounts = [
            AccountMeta(owner, is_signer=True, is_writable=True),
            AccountMeta(self.game_session_address(), is_signer=False, is_writable=False),
            AccountMeta(self.player_bets_address(owner), is_signer=False, is_writable=False),
            AccountMeta(vault, is_signer=False, is_writable=True),
            AccountMeta(vault_ata, is_signer=False, is_writable=True),
            AccountMeta(get_associated_token_address(owner, mint_pk), is_signer=False, is_writable=True),
            AccountMeta(self.claim_record_address(owner, round_number), is_signer=False, is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(RENT, is_signer=False, is_writable=False),
        ]
        data = self.discriminator("claim_my_winnings") + int(round_number).to_bytes(8, "little")
        ixs = [
            set_compute_unit_limit(self._bet_compute_units),
            Instruction(self.program_id, data, accounts),
        ]
        return await self.send_and_confirm(ixs, [player], "claim_my_winnings")

    async def initialize_player(self, player: Keypair) -> str:
        owner = player.pubkey()
        accounts = [
            AccountMeta(owner, is_signer=True, is_writable=True),
            AccountMeta(self.game_session_address(), is_signer=False, is_writable=False),
            AccountMeta(self.player_bets_address(owner), is_signer=False, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(RENT, is_signer=False, is_writable=False),
        ]
        ix = Instruction(self.program_id, self.discriminator("initialize_player_bets"), accounts)
        return await self.send_and_confirm([ix], [player], "initialize_player_bets")


class RoundActions:
    """Round-advancing actions signed by a random wallet from the pool of bots."""

    def __init__(self, program: GameProgram, signers: Sequence[Keypair], rng: Optional[random.Random] = None) -> None:
        self.program = program
        self._signers = list(signers)
        self._rng = rng or random.Random()

    def _pick_signer(self) -> Keypair:
        if not self._signers:
            raise ActionFailed("no bot wallets available to sign round actions")
        return self._rng.choice(self._signers)

    async def start_new_round(self) -> str:
        signer = self._pick_signer()
        logger.info("[actions] starting new round as %s", signer.pubkey())
        sig = await self.program.start_new_round(signer)
        logger.info("[actions] round started, tx %s", sig)
        return sig

    async def close_bets(self) -> str:
        signer = self._pick_signer()
        logger.info("[actions] closing bets as %s", signer.pubkey())
        sig = await self.program.close_bets(signer)
        logger.info("[actions] bets closed, tx %s", sig)
        return sig

    async def request_random(self) -> str:
        signer = self._pick_signer()
        logger.info("[actions] requesting random number as %s", signer.pubkey())
        sig = await self.program.request_random(signer)
        logger.info("[actions] random number requested, tx %s", sig)
        return sig
