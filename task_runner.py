# task_runner.py
"""
Roulette Orchestrator: bounded task runner

Runs a queue of zero-argument coroutine factories with a concurrency ceiling and a
pace delay between launches. Individual failures never abort the batch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[Any]]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskOutcome:
    kind: OutcomeKind
    payload: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, payload: Any = None) -> "TaskOutcome":
        return cls(OutcomeKind.SUCCESS, payload)

    @classmethod
    def failure(cls, error: BaseException, payload: Any = None) -> "TaskOutcome":
        return cls(OutcomeKind.FAILURE, payload, error)

    @classmethod
    def skipped(cls, payload: Any = None) -> "TaskOutcome":
        return cls(OutcomeKind.SKIPPED, payload)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


@dataclass
class BatchProgress:
    total: int
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: TaskOutcome) -> None:
        self.completed += 1
        if outcome.kind == OutcomeKind.SUCCESS:
            self.succeeded += 1
        elif outcome.kind == OutcomeKind.FAILURE:
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


ProgressCallback = Callable[[BatchProgress], None]


async def run_bounded(
    tasks: Sequence[Task],
    concurrency_limit: int,
    pace_delay: float = 0.0,
    on_progress: Optional[ProgressCallback] = None,
    *,
    label: str = "batch",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> List[TaskOutcome]:
    """
    Execute every task with at most `concurrency_limit` in flight and at least
    `pace_delay` seconds between consecutive launches.

    Returns one TaskOutcome per task, in input order, after all have settled.
    A task may return a TaskOutcome itself (e.g. skipped); any other return value
    is wrapped as a success, and an exception becomes a failure.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be >= 1")
    if pace_delay < 0:
        raise ValueError("pace_delay must be >= 0")

    total = len(tasks)
    progress = BatchProgress(total=total)
    if total == 0:
        return []

    # C >= N: pacing alone governs the launches
    gate = asyncio.Semaphore(concurrency_limit) if concurrency_limit < total else None

    logger.info(
        "[%s] launching %d task(s), concurrency=%d pace=%.0fms",
        label, total, concurrency_limit, pace_delay * 1000,
    )

    async def _settle(index: int, task: Task) -> TaskOutcome:
        try:
            try:
                result = await task()
            except Exception as exc:
                logger.debug("[%s] task %d failed: %s", label, index, exc)
                outcome = TaskOutcome.failure(exc)
            else:
                outcome = result if isinstance(result, TaskOutcome) else TaskOutcome.success(result)
            progress.record(outcome)
            if on_progress is not None:
                on_progress(progress)
            return outcome
        finally:
            if gate is not None:
                gate.release()

    launched: List[asyncio.Task] = []
    for index, task in enumerate(tasks):
        if gate is not None:
            await gate.acquire()
        launched.append(asyncio.ensure_future(_settle(index, task)))
        if pace_delay and index < total - 1:
            await sleep(pace_delay)

    outcomes = list(await asyncio.gather(*launched))
    logger.info(
        "[%s] done: %d ok, %d failed, %d skipped (of %d)",
        label, progress.succeeded, progress.failed, progress.skipped, total,
    )
    return outcomes


def summarize(outcomes: Sequence[TaskOutcome]) -> BatchProgress:
    progress = BatchProgress(total=len(outcomes))
    for outcome in outcomes:
        progress.record(outcome)
    return progress
