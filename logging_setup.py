# logging_setup.py
from __future__ import annotations

import logging


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # quiet per-request logging
    for noisy in ("httpx", "httpcore", "solana"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
