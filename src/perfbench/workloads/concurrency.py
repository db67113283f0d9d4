"""Concurrency workloads.

Each run spins up its own producers, consumers or worker threads so the
measured time covers hand-off and synchronization cost, not just work.
"""

import asyncio
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor

_DONE = object()


@dataclass(frozen=True)
class ChannelConfig:
    items: int
    capacity: int


def _channel_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> ChannelConfig:
    return ChannelConfig(items=int(params["items"]), capacity=int(params["capacity"]))


async def channel_throughput(config: ChannelConfig) -> int:
    """Push items through a bounded queue from one producer to one consumer.

    Returns:
        Number of items the consumer received

    Raises:
        RuntimeError: If items were lost in transit
    """
    queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=config.capacity)

    async def produce() -> None:
        for i in range(config.items):
            await queue.put(i)
        await queue.put(_DONE)

    async def consume() -> int:
        received = 0
        while await queue.get() is not _DONE:
            received += 1
        return received

    _, received = await asyncio.gather(produce(), consume())
    if received != config.items:
        raise RuntimeError(f"Channel delivered {received} of {config.items} items")
    return received


@dataclass
class PoolState:
    pool: ThreadPoolExecutor
    data: list[int]


def _pool_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> PoolState:
    return PoolState(
        pool=ThreadPoolExecutor(max_workers=int(params["workers"]), thread_name_prefix="perfbench-map"),
        data=list(range(int(params["items"]))),
    )


def _square(x: int) -> int:
    return x * x


def _parallel_map_run(state: PoolState) -> int:
    return sum(state.pool.map(_square, state.data))


def _pool_teardown(state: PoolState) -> None:
    state.pool.shutdown(wait=True)


@dataclass
class ContentionState:
    pool: ThreadPoolExecutor
    threads: int
    increments: int


def _contention_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> ContentionState:
    threads = int(params["threads"])
    return ContentionState(
        pool=ThreadPoolExecutor(max_workers=threads, thread_name_prefix="perfbench-lock"),
        threads=threads,
        increments=int(params["increments"]),
    )


def lock_contention(state: ContentionState) -> int:
    """All workers increment one counter under one lock.

    Raises:
        RuntimeError: If an increment was lost
    """
    lock = threading.Lock()
    counter = [0]

    def work() -> None:
        for _ in range(state.increments):
            with lock:
                counter[0] += 1

    futures = [state.pool.submit(work) for _ in range(state.threads)]
    for future in futures:
        future.result()

    expected = state.threads * state.increments
    if counter[0] != expected:
        raise RuntimeError(f"Counter is {counter[0]}, expected {expected}")
    return counter[0]


def _contention_teardown(state: ContentionState) -> None:
    state.pool.shutdown(wait=True)


@dataclass(frozen=True)
class SemaphoreConfig:
    tasks: int
    permits: int


def _semaphore_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> SemaphoreConfig:
    return SemaphoreConfig(tasks=int(params["tasks"]), permits=int(params["permits"]))


async def semaphore_contention(config: SemaphoreConfig) -> int:
    """Many tasks pass through a semaphore with few permits.

    Raises:
        RuntimeError: If more tasks than permits were inside at once
    """
    semaphore = asyncio.Semaphore(config.permits)
    inside = 0
    peak = 0

    async def worker() -> None:
        nonlocal inside, peak
        async with semaphore:
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0)
            inside -= 1

    await asyncio.gather(*(worker() for _ in range(config.tasks)))
    if peak > config.permits:
        raise RuntimeError(f"{peak} tasks held the semaphore at once, permits {config.permits}")
    return config.tasks


def _task_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> int:
    return int(params["tasks"])


async def task_overhead(tasks: int) -> int:
    """Spawn and await trivial tasks to measure scheduling cost."""

    async def noop(i: int) -> int:
        return i

    results = await asyncio.gather(*(asyncio.create_task(noop(i)) for i in range(tasks)))
    return len(results)


CHANNEL_THROUGHPUT = WorkloadDescriptor(
    name="concurrency.channel_throughput",
    setup=_channel_setup,
    run=channel_throughput,
    parameters=ParameterSpace.of(items=(1_000, 10_000), capacity=(1, 100)),
    category="concurrency",
    description="Producer/consumer over a bounded asyncio.Queue",
)

PARALLEL_MAP = WorkloadDescriptor(
    name="concurrency.parallel_map",
    setup=_pool_setup,
    run=_parallel_map_run,
    teardown=_pool_teardown,
    parameters=ParameterSpace.of(items=(1_000, 10_000), workers=(2, 4)),
    category="concurrency",
    description="ThreadPoolExecutor.map over a list",
)

LOCK_CONTENTION = WorkloadDescriptor(
    name="concurrency.lock_contention",
    setup=_contention_setup,
    run=lock_contention,
    teardown=_contention_teardown,
    parameters=ParameterSpace.of(threads=(2, 8), increments=(1_000,)),
    category="concurrency",
    description="Threads incrementing a shared counter under one lock",
)

SEMAPHORE_CONTENTION = WorkloadDescriptor(
    name="concurrency.semaphore_contention",
    setup=_semaphore_setup,
    run=semaphore_contention,
    parameters=ParameterSpace.of(tasks=(100, 1_000), permits=(1, 10)),
    category="concurrency",
    description="asyncio tasks competing for a bounded semaphore",
)

TASK_OVERHEAD = WorkloadDescriptor(
    name="concurrency.task_overhead",
    setup=_task_setup,
    run=task_overhead,
    parameters=ParameterSpace.of(tasks=(100, 1_000)),
    category="concurrency",
    description="Create and await trivial asyncio tasks",
)

WORKLOADS = (
    CHANNEL_THROUGHPUT,
    PARALLEL_MAP,
    LOCK_CONTENTION,
    SEMAPHORE_CONTENTION,
    TASK_OVERHEAD,
)
