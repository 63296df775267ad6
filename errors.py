# errors.py
"""
Roulette Orchestrator: error taxonomy

Every network call goes through `network_boundary()`, which tags failures with an
ErrorKind where they happen. Everything downstream switches on `exc.kind`.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Type

import httpx
from solana.exceptions import SolanaRpcException


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    FATAL = "fatal"


# kinds that rotate the endpoint and retry
RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT, ErrorKind.RATE_LIMITED})


class OrchestratorError(Exception):
    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class TransientError(OrchestratorError):
    kind = ErrorKind.TRANSIENT


class RateLimitedError(OrchestratorError):
    kind = ErrorKind.RATE_LIMITED


class NotFoundError(OrchestratorError):
    kind = ErrorKind.NOT_FOUND


class FatalError(OrchestratorError):
    kind = ErrorKind.FATAL


class StateUnavailable(FatalError):
    """The game session account does not exist."""


class StateIntegrityError(FatalError):
    """The game session account exists but cannot be decoded."""


class ActionFailed(FatalError):
    """The program rejected a submitted action."""

    def __init__(self, message: str, logs: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.logs:
            return base
        return base + "\n" + "\n".join(self.logs)


class PhaseExhausted(FatalError):
    def __init__(self, phase: str, attempts: int, last_error: Optional[BaseException] = None) -> None:
        super().__init__(f"{phase} failed after {attempts} attempt(s): {last_error}")
        self.phase = phase
        self.attempts = attempts
        self.last_error = last_error


class RoundNotSettled(TransientError):
    """The revealed round is not yet reflected in the game session."""


class ClaimIncomplete(TransientError):
    """Some eligibility checks or claims failed with a retryable error."""


_ERRORS_BY_KIND: Dict[ErrorKind, Type[OrchestratorError]] = {
    ErrorKind.TRANSIENT: TransientError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.FATAL: FatalError,
}


def _classify_status(status: int) -> ErrorKind:
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status >= 500 or status == 408:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map a raw library exception (or an already tagged one) to an ErrorKind."""
    if isinstance(exc, OrchestratorError):
        return exc.kind
    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)
    if isinstance(exc, SolanaRpcException):
        # solana-py wraps the underlying httpx error
        cause = exc.__cause__ or exc.__context__
        if cause is not None and cause is not exc:
            kind = classify_exception(cause)
            return kind if kind != ErrorKind.FATAL else ErrorKind.TRANSIENT
        return ErrorKind.TRANSIENT
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError, OSError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def tag_exception(exc: BaseException, operation: str) -> OrchestratorError:
    if isinstance(exc, OrchestratorError):
        return exc
    kind = classify_exception(exc)
    return _ERRORS_BY_KIND[kind](f"{operation}: {type(exc).__name__}: {exc}")


@asynccontextmanager
async def network_boundary(operation: str):
    """Re-raise anything escaping the block as a tagged OrchestratorError."""
    try:
        yield
    except OrchestratorError:
        raise
    except Exception as exc:
        raise tag_exception(exc, operation) from exc


@dataclass
class RetryState:
    """Attempt bookkeeping for one long-running phase. max_attempts=None is unbounded."""

    max_attempts: Optional[int] = None
    attempt_count: int = 0
    last_error: Optional[BaseException] = None

    def record_failure(self, exc: BaseException) -> None:
        if self.exhausted:
            raise RuntimeError("retry budget already exhausted")
        self.attempt_count += 1
        self.last_error = exc

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempt_count >= self.max_attempts

    def reset(self) -> None:
        self.attempt_count = 0
        self.last_error = None
