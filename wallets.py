# wallets.py
"""
Roulette Orchestrator: bot wallet loading.

Layout: <WALLETS_DIR>/<GROUP>/*.json, each file either a JSON byte array
(solana-keygen format) or a base58 secret key string.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Dict, Iterable, List, Optional

import base58 as _b58
from solders.keypair import Keypair

logger = logging.getLogger(__name__)


def keypair_from_secret(raw: bytes) -> Keypair:
    if len(raw) == 64:
        return Keypair.from_bytes(raw)
    if len(raw) == 32:
        return Keypair.from_seed(raw)
    raise ValueError(f"Invalid secret key length: {len(raw)} (expected 32 or 64 bytes)")


def load_keypair_file(path: str) -> Keypair:
    with open(path, "r", encoding="utf-8") as fh:
        text = fh.read().strip()
    if text.startswith("["):
        return keypair_from_secret(bytes(json.loads(text)))
    # base58 secret, optionally JSON-quoted
    return keypair_from_secret(_b58.b58decode(text.strip('"')))


def load_wallet_dir(path: str) -> List[Keypair]:
    keypairs: List[Keypair] = []
    for name in sorted(os.listdir(path)):
        if not name.endswith(".json"):
            continue
        file_path = os.path.join(path, name)
        try:
            keypairs.append(load_keypair_file(file_path))
        except (OSError, ValueError) as exc:
            logger.warning("[wallets] skipping unreadable key %s: %s", file_path, exc)
    return keypairs


def load_wallets_by_group(base_dir: str, groups: Optional[Iterable[str]] = None) -> Dict[str, List[Keypair]]:
    """Keypairs per sub-directory. With `groups`, every named sub-directory must exist."""
    if not os.path.isdir(base_dir):
        raise FileNotFoundError(f"wallet directory not found: {base_dir}")
    names = list(groups) if groups is not None else sorted(
        d for d in os.listdir(base_dir) if os.path.isdir(os.path.join(base_dir, d))
    )
    out: Dict[str, List[Keypair]] = {}
    for group in names:
        dir_path = os.path.join(base_dir, group)
        if not os.path.isdir(dir_path):
            raise FileNotFoundError(f"wallet group directory not found: {dir_path}")
        out[group] = load_wallet_dir(dir_path)
        logger.info("[wallets] loaded %d wallet(s) from group %s", len(out[group]), group)
    return out

