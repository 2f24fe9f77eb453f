"""Bounded-concurrency execution of independent async tasks.

A fixed pool of ``min(limit, len(tasks))`` workers pulls task indices from a
shared counter in submission order. Every task's outcome is captured in a
TaskResult at the task's input position; one failing task never affects its
siblings.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]
ProgressCallback = Callable[[int, int, "TaskResult[Any]"], None]


class TaskStatus(Enum):
    """Settlement state of a scheduled task."""

    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class TaskResult(Generic[T]):
    """Outcome of one scheduled task.

    Attributes:
        status: fulfilled or rejected
        index: Position of the task in the input list
        value: Return value when fulfilled
        reason: Exception when rejected
    """

    status: TaskStatus
    index: int
    value: T | None = None
    reason: BaseException | None = None

    @property
    def fulfilled(self) -> bool:
        return self.status == TaskStatus.FULFILLED


async def parallel_limit_with_progress(
    tasks: Sequence[Task[T]],
    limit: int = 3,
    on_progress: ProgressCallback | None = None,
) -> list[TaskResult[T]]:
    """Run tasks with at most ``limit`` in flight, reporting each settlement.

    Args:
        tasks: Zero-argument coroutine functions
        limit: Maximum concurrent tasks (clamped to at least 1)
        on_progress: Called as ``(completed, total, result)`` in completion order

    Returns:
        One TaskResult per task, in input order
    """
    total = len(tasks)
    if total == 0:
        return []

    effective_limit = max(1, min(limit, total))
    results: list[TaskResult[T] | None] = [None] * total
    next_index = 0
    completed = 0

    async def worker() -> None:
        nonlocal next_index, completed
        while next_index < total:
            index = next_index
            next_index += 1

            try:
                value = await tasks[index]()
                result: TaskResult[T] = TaskResult(
                    status=TaskStatus.FULFILLED, index=index, value=value
                )
            except Exception as e:
                result = TaskResult(status=TaskStatus.REJECTED, index=index, reason=e)

            results[index] = result
            completed += 1

            if on_progress is not None:
                on_progress(completed, total, result)

    await asyncio.gather(*(worker() for _ in range(effective_limit)))

    return [r for r in results if r is not None]


async def parallel_limit(tasks: Sequence[Task[T]], limit: int = 3) -> list[TaskResult[T]]:
    """Run tasks with at most ``limit`` in flight.

    Returns:
        One TaskResult per task, in input order
    """
    return await parallel_limit_with_progress(tasks, limit)


async def parallel_limit_strict(tasks: Sequence[Task[T]], limit: int = 3) -> list[T]:
    """Run tasks with at most ``limit`` in flight, raising on any failure.

    All tasks settle before anything is raised.

    Returns:
        Task values in input order

    Raises:
        Exception: The rejection of the lowest-indexed failed task
    """
    results = await parallel_limit_with_progress(tasks, limit)

    for result in results:
        if result.status == TaskStatus.REJECTED and result.reason is not None:
            raise result.reason

    return [result.value for result in results]  # type: ignore[misc]


@dataclass(frozen=True)
class Job(Generic[T]):
    """Named unit of orchestrated work.

    Attributes:
        name: Unique job name
        task: Zero-argument coroutine function
        blocks_on: Name of a job that must settle before this one starts
    """

    name: str
    task: Task[T]
    blocks_on: str | None = None


def dependency_levels(jobs: Sequence[Job[Any]]) -> list[list[int]]:
    """Group job indices into dispatch levels by ``blocks_on``.

    Level 0 holds jobs without dependencies; level n holds jobs whose
    dependency sits in level n-1. Input order is preserved within a level.

    Raises:
        ValueError: On duplicate names, unknown dependencies or cycles
    """
    positions: dict[str, int] = {}
    for index, job in enumerate(jobs):
        if job.name in positions:
            raise ValueError(f"Duplicate job name: {job.name}")
        positions[job.name] = index

    for job in jobs:
        if job.blocks_on is not None and job.blocks_on not in positions:
            raise ValueError(f"Job '{job.name}' blocks on unknown job '{job.blocks_on}'")

    depth: dict[int, int] = {}

    def resolve(index: int, chain: tuple[int, ...]) -> int:
        if index in depth:
            return depth[index]
        if index in chain:
            names = " -> ".join(jobs[i].name for i in (*chain, index))
            raise ValueError(f"Dependency cycle: {names}")
        parent = jobs[index].blocks_on
        level = 0 if parent is None else resolve(positions[parent], (*chain, index)) + 1
        depth[index] = level
        return level

    for index in range(len(jobs)):
        resolve(index, ())

    levels: list[list[int]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for index in range(len(jobs)):
        levels[depth[index]].append(index)
    return levels


async def run_staged(
    jobs: Sequence[Job[T]],
    limit: int = 3,
    on_progress: ProgressCallback | None = None,
) -> list[TaskResult[T]]:
    """Run jobs level by level, honouring ``blocks_on`` dependencies.

    Each level is dispatched through the bounded scheduler only after the
    previous level has fully settled. A job whose dependency failed still
    runs; it decides for itself how to handle missing context.

    Args:
        jobs: Jobs to run
        limit: Maximum concurrent jobs within a level
        on_progress: Called as ``(completed, total, result)`` across all levels

    Returns:
        One TaskResult per job, indexed by input position
    """
    levels = dependency_levels(jobs)
    total = len(jobs)
    results: list[TaskResult[T] | None] = [None] * total
    completed = 0

    for level_number, level in enumerate(levels):
        if len(levels) > 1:
            logger.debug(
                "Dispatching level %d/%d: %s",
                level_number + 1,
                len(levels),
                ", ".join(jobs[i].name for i in level),
            )

        def report(_done: int, _level_total: int, result: TaskResult[Any], level=level) -> None:
            nonlocal completed
            completed += 1
            if on_progress is not None:
                on_progress(completed, total, _reindex(result, level))

        level_results = await parallel_limit_with_progress(
            [jobs[i].task for i in level], limit, report
        )
        for result in level_results:
            mapped = _reindex(result, level)
            results[mapped.index] = mapped

    return [r for r in results if r is not None]


def _reindex(result: TaskResult[T], level: list[int]) -> TaskResult[T]:
    """Map a level-local result back to its position in the full job list."""
    return TaskResult(
        status=result.status,
        index=level[result.index],
        value=result.value,
        reason=result.reason,
    )
