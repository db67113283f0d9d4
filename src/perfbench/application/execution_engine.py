# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Benchmark execution engine.

Runs one workload through acquire -> setup -> warmup -> measure ->
teardown -> release and hands the samples to the Reporter. Measured calls
run strictly one after another; any concurrency being measured lives inside
the workload's own run function.
"""

import asyncio
import inspect
import logging
import time
import tracemalloc
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from perfbench.application.fixture_manager import FixtureHandle, FixtureManager
from perfbench.domain.errors import HarnessError, RunTimeoutError, WorkloadError
from perfbench.domain.services import Reporter
from perfbench.domain.value_objects import (
    ParamCombination,
    Report,
    RunResult,
    Sample,
    Scalar,
    WorkloadDescriptor,
)

logger = logging.getLogger(__name__)


class _Deadline:
    """Wall budget for one run, measured on the monotonic clock."""

    def __init__(self, timeout_seconds: float | None) -> None:
        self.timeout_seconds = timeout_seconds
        self._expires_at = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, workload: str, phase: str) -> None:
        if self.expired():
            raise RunTimeoutError(
                f"Workload '{workload}' exceeded its {self.timeout_seconds}s deadline during {phase}"
            )


async def _await_within(awaitable: Any, deadline: _Deadline) -> Any:
    remaining = deadline.remaining()
    if remaining is None:
        return await awaitable
    timeout = asyncio.timeout(remaining)
    try:
        async with timeout:
            return await awaitable
    except TimeoutError as e:
        # Only our own timeout is a deadline overrun
        if timeout.expired():
            raise RunTimeoutError(
                f"Call exceeded the {deadline.timeout_seconds}s run deadline"
            ) from e
        raise


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class ExecutionEngine:
    """Runs workloads and produces reports.

    Each run owns a private event loop (asyncio.Runner), so a workload's
    setup, every run call and its teardown share one loop: connections
    opened in setup stay usable in run.

    Deadlines are checked before every call and enforced inside coroutine
    calls with asyncio.timeout. A synchronous call that overruns is
    detected when it returns.

    Args:
        fixtures: Manager that owns the shared fixtures workloads declare.
        reporter: Aggregator for samples (default: Reporter()).
        track_allocations: Record peak traced allocation per measured call
            (tracemalloc; slows calls down noticeably). The peak is
            process-wide: allocations made by other threads during the call,
            such as the in-process echo server answering a network workload,
            are counted too.
        clock: Nanosecond monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        fixtures: FixtureManager,
        reporter: Reporter | None = None,
        track_allocations: bool = False,
        clock: Callable[[], int] = time.perf_counter_ns,
    ) -> None:
        self._fixtures = fixtures
        self._reporter = reporter or Reporter()
        self._track_allocations = track_allocations
        self._clock = clock

    def run_workload(
        self,
        descriptor: WorkloadDescriptor,
        params: Mapping[str, Scalar] | None = None,
        warmup_count: int = 0,
        measured_count: int = 1,
        timeout_seconds: float | None = None,
    ) -> Report:
        """Run one parameter combination of a workload.

        Args:
            descriptor: Workload to run
            params: Parameter combination (default: first combination)
            warmup_count: Discarded calls before measurement
            measured_count: Timed calls, one Sample each
            timeout_seconds: Deadline for the whole run (None = no deadline)

        Returns:
            Aggregated report

        Raises:
            InvalidParameterError: If params do not match the workload's space
            FixtureStartError: If a declared fixture could not be started
            WorkloadError: If setup or a warmup call failed
            RunTimeoutError: If the deadline expired
        """
        if warmup_count < 0 or measured_count < 0:
            raise ValueError(
                f"iteration counts must be >= 0 (warmup={warmup_count}, measured={measured_count})"
            )
        combination = descriptor.parameters.validate(
            params if params is not None else descriptor.parameters.default()
        )
        deadline = _Deadline(timeout_seconds)

        logger.info(
            f"Running {descriptor.name} {combination} "
            f"(warmup={warmup_count}, measured={measured_count})"
        )

        started_tracing = self._track_allocations and not tracemalloc.is_tracing()
        if started_tracing:
            tracemalloc.start()

        handles: list[FixtureHandle] = []
        try:
            with asyncio.Runner() as runner:
                try:
                    for name in descriptor.fixtures:
                        handles.append(self._fixtures.acquire(name))
                    fixture_values = {handle.name: handle.value for handle in handles}
                    samples = self._run_phases(runner, descriptor, combination, fixture_values,
                                               warmup_count, measured_count, deadline)
                finally:
                    for handle in reversed(handles):
                        try:
                            self._fixtures.release(handle)
                        except Exception as e:
                            logger.error(f"Releasing fixture {handle.name} failed: {e}")
        finally:
            if started_tracing:
                tracemalloc.stop()

        report = self._reporter.aggregate(descriptor.name, combination, samples, warmup_count)
        logger.info(
            f"Finished {descriptor.name} {combination}: "
            f"{report.successes} ok, {report.failures} failed"
        )
        return report

    def run_sweep(
        self,
        descriptor: WorkloadDescriptor,
        warmup_count: int = 0,
        measured_count: int = 1,
        combinations: Iterable[Mapping[str, Scalar]] | None = None,
        timeout_seconds: float | None = None,
    ) -> list[RunResult]:
        """Run several parameter combinations in deterministic order.

        A combination aborted by a harness error is recorded on its
        RunResult and the sweep moves on to the next one.

        Args:
            descriptor: Workload to run
            warmup_count: Discarded calls per combination
            measured_count: Timed calls per combination
            combinations: Explicit combinations (default: the full space)
            timeout_seconds: Deadline per combination

        Returns:
            One RunResult per combination, in enumeration order
        """
        if combinations is None:
            combinations = descriptor.parameters.combinations()

        results: list[RunResult] = []
        for combination in combinations:
            try:
                report = self.run_workload(
                    descriptor, combination, warmup_count, measured_count, timeout_seconds
                )
            except HarnessError as e:
                logger.error(f"{descriptor.name} {dict(combination)} aborted: {_describe(e)}")
                results.append(RunResult(descriptor.name, dict(combination), error=e))
            else:
                results.append(RunResult(descriptor.name, dict(combination), report=report))
        return results

    def _run_phases(
        self,
        runner: asyncio.Runner,
        descriptor: WorkloadDescriptor,
        combination: ParamCombination,
        fixture_values: dict[str, Any],
        warmup_count: int,
        measured_count: int,
        deadline: _Deadline,
    ) -> list[Sample]:
        deadline.check(descriptor.name, "setup")
        try:
            state = self._call(runner, descriptor.setup, (combination, fixture_values), deadline)
        except RunTimeoutError:
            raise
        except Exception as e:
            raise WorkloadError(f"Setup of '{descriptor.name}' failed: {_describe(e)}") from e

        failed = False
        try:
            for i in range(warmup_count):
                deadline.check(descriptor.name, "warmup")
                try:
                    self._call(runner, descriptor.run, (state,), deadline)
                except RunTimeoutError:
                    raise
                except Exception as e:
                    raise WorkloadError(
                        f"Warmup iteration {i} of '{descriptor.name}' failed: {_describe(e)}"
                    ) from e

            samples: list[Sample] = []
            for i in range(measured_count):
                deadline.check(descriptor.name, "measurement")
                samples.append(self._measure_once(runner, descriptor, state, i, deadline))
            return samples
        except BaseException:
            failed = True
            raise
        finally:
            self._teardown(runner, descriptor, state, best_effort=failed)

    def _measure_once(
        self,
        runner: asyncio.Runner,
        descriptor: WorkloadDescriptor,
        state: Any,
        index: int,
        deadline: _Deadline,
    ) -> Sample:
        tracing = self._track_allocations
        if tracing:
            tracemalloc.reset_peak()
            baseline = tracemalloc.get_traced_memory()[0]

        error: str | None = None
        start = self._clock()
        try:
            self._call(runner, descriptor.run, (state,), deadline)
        except RunTimeoutError:
            raise
        except Exception as e:
            error = _describe(e)
        elapsed = self._clock() - start

        allocated = None
        if tracing:
            allocated = max(0, tracemalloc.get_traced_memory()[1] - baseline)

        if error is not None:
            logger.warning(f"{descriptor.name} iteration {index} failed: {error}")
        return Sample(index=index, duration_ns=elapsed, allocated_bytes=allocated, error=error)

    def _teardown(
        self,
        runner: asyncio.Runner,
        descriptor: WorkloadDescriptor,
        state: Any,
        best_effort: bool,
    ) -> None:
        if descriptor.teardown is None:
            return
        try:
            # Teardown is not cut short by the run deadline
            self._call(runner, descriptor.teardown, (state,), _Deadline(None))
        except Exception as e:
            if best_effort:
                logger.error(f"Teardown of '{descriptor.name}' failed: {_describe(e)}")
                return
            raise WorkloadError(
                f"Teardown of '{descriptor.name}' failed: {_describe(e)}"
            ) from e

    def _call(
        self,
        runner: asyncio.Runner,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        deadline: _Deadline,
    ) -> Any:
        result = fn(*args)
        if not inspect.isawaitable(result):
            if deadline.expired():
                raise RunTimeoutError(
                    f"Call exceeded the {deadline.timeout_seconds}s run deadline"
                )
            return result

        return runner.run(_await_within(result, deadline))

