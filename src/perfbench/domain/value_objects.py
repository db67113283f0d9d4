# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain value objects (immutable data structures).

Value objects have no identity - two instances with the same values are
considered equal. Workload descriptors and fixtures are registered once at
process start and are read-only thereafter; samples and reports are created
per run and discarded after rendering.
"""

import itertools
import math
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from perfbench.domain.errors import InvalidParameterError

Scalar = Union[int, float, str, bool]
ParamCombination = dict[str, Scalar]

SetupFn = Callable[[Mapping[str, Scalar], Mapping[str, Any]], Any]
RunFn = Callable[[Any], Any]
TeardownFn = Callable[[Any], Any]


@dataclass(frozen=True)
class ParameterAxis:
    """One named axis of a parameter sweep.

    Attributes:
        name: Axis name (keyword passed to the workload's setup).
        values: Ordered, non-empty tuple of scalar values.
    """

    name: str
    values: tuple[Scalar, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidParameterError("Parameter axis name must be non-empty")
        if not self.values:
            raise InvalidParameterError(f"Parameter axis '{self.name}' has no values")
        if len(set(self.values)) != len(self.values):
            raise InvalidParameterError(f"Parameter axis '{self.name}' has duplicate values")


@dataclass(frozen=True)
class ParameterSpace:
    """Cartesian parameter space over an ordered list of axes.

    Enumeration order is fully determined by declaration order: the first
    axis varies slowest, each axis walks its values in declared order. Two
    runs over the same space therefore visit combinations identically.

    Example:
        >>> space = ParameterSpace.of(size=(64, 128), mode=("a", "b"))
        >>> list(space.combinations())
        [{'size': 64, 'mode': 'a'}, {'size': 64, 'mode': 'b'},
         {'size': 128, 'mode': 'a'}, {'size': 128, 'mode': 'b'}]
    """

    axes: tuple[ParameterAxis, ...] = ()

    def __post_init__(self) -> None:
        names = [axis.name for axis in self.axes]
        if len(set(names)) != len(names):
            raise InvalidParameterError(f"Duplicate axis names in parameter space: {names}")

    @classmethod
    def of(cls, **axes: tuple[Scalar, ...] | list[Scalar]) -> "ParameterSpace":
        """Build a space from keyword axes (keyword order is declaration order)."""
        return cls(tuple(ParameterAxis(name, tuple(values)) for name, values in axes.items()))

    def axis_names(self) -> list[str]:
        return [axis.name for axis in self.axes]

    def size(self) -> int:
        """Number of combinations (1 for an empty space)."""
        return math.prod(len(axis.values) for axis in self.axes)

    def combinations(self) -> Iterator[ParamCombination]:
        """Lazily yield every combination in deterministic order."""
        names = self.axis_names()
        for values in itertools.product(*(axis.values for axis in self.axes)):
            yield dict(zip(names, values))

    def default(self) -> ParamCombination:
        """First combination of the sweep."""
        return {axis.name: axis.values[0] for axis in self.axes}

    def validate(self, combination: Mapping[str, Scalar]) -> ParamCombination:
        """Check a combination against the space.

        Every axis must be present and every value must belong to its axis.

        Raises:
            InvalidParameterError: On unknown axes, missing axes, or foreign values.
        """
        by_name = {axis.name: axis for axis in self.axes}
        unknown = set(combination) - set(by_name)
        if unknown:
            raise InvalidParameterError(f"Unknown parameter axes: {sorted(unknown)}")
        missing = set(by_name) - set(combination)
        if missing:
            raise InvalidParameterError(f"Missing parameter axes: {sorted(missing)}")
        for name, value in combination.items():
            if value not in by_name[name].values:
                raise InvalidParameterError(
                    f"Value {value!r} not in axis '{name}' {list(by_name[name].values)}"
                )
        return {name: combination[name] for name in self.axis_names()}

    def coerce(self, raw: Mapping[str, str]) -> ParamCombination:
        """Map string values (e.g. from the command line) onto axis values.

        Unspecified axes take their first declared value.

        Raises:
            InvalidParameterError: If a name or value does not match the space.
        """
        by_name = {axis.name: axis for axis in self.axes}
        result = self.default()
        for name, text in raw.items():
            axis = by_name.get(name)
            if axis is None:
                raise InvalidParameterError(f"Unknown parameter axis: '{name}'")
            matches = [value for value in axis.values if str(value) == text]
            if not matches:
                raise InvalidParameterError(
                    f"Value '{text}' not in axis '{name}' {list(axis.values)}"
                )
            result[name] = matches[0]
        return result


@dataclass(frozen=True)
class WorkloadDescriptor:
    """A named, parameterized unit of work.

    Attributes:
        name: Unique workload name (e.g. "network.ws_echo").
        setup: Called once per run with (params, fixture values); returns state.
        run: The measured unit; called with the state. May be a coroutine function.
        teardown: Optional cleanup called with the state. May be a coroutine function.
        parameters: Parameter space swept by the workload.
        fixtures: Names of shared fixtures, acquired in this order.
        category: Grouping label for listings ("cpu", "network", ...).
        description: One-line summary.

    Invariant:
        ``run`` can be repeated against the same state without accumulating
        unbounded resources.
    """

    name: str
    setup: SetupFn
    run: RunFn
    teardown: TeardownFn | None = None
    parameters: ParameterSpace = field(default_factory=ParameterSpace)
    fixtures: tuple[str, ...] = ()
    category: str = "general"
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidParameterError("Workload name must be non-empty")
        if len(set(self.fixtures)) != len(self.fixtures):
            raise InvalidParameterError(
                f"Workload '{self.name}' declares a fixture more than once: {self.fixtures}"
            )


@dataclass(frozen=True)
class Sample:
    """One measured call of a workload's run function.

    Attributes:
        index: Position in the measured sequence (0-based).
        duration_ns: Monotonic elapsed time in nanoseconds.
        allocated_bytes: Peak bytes allocated during the call, if tracked.
        error: Failure description, None on success.
    """

    index: int
    duration_ns: int
    allocated_bytes: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Report:
    """Aggregate statistics for one (workload, parameter combination) run.

    Latency fields are None when no sample succeeded.
    """

    workload: str
    params: Mapping[str, Scalar]
    count: int
    successes: int
    failures: int
    warmup_count: int
    mean_ns: float | None
    stdev_ns: float | None
    min_ns: int | None
    max_ns: int | None
    p50_ns: float | None
    p95_ns: float | None
    p99_ns: float | None
    ops_per_second: float | None
    alloc_mean_bytes: float | None = None
    alloc_max_bytes: int | None = None
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Read-only copy of the caller's mapping
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def failed(self) -> bool:
        return self.failures > 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation."""
        return {
            "workload": self.workload,
            "params": dict(self.params),
            "count": self.count,
            "successes": self.successes,
            "failures": self.failures,
            "warmup_count": self.warmup_count,
            "mean_ns": self.mean_ns,
            "stdev_ns": self.stdev_ns,
            "min_ns": self.min_ns,
            "max_ns": self.max_ns,
            "p50_ns": self.p50_ns,
            "p95_ns": self.p95_ns,
            "p99_ns": self.p99_ns,
            "ops_per_second": self.ops_per_second,
            "alloc_mean_bytes": self.alloc_mean_bytes,
            "alloc_max_bytes": self.alloc_max_bytes,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class RunResult:
    """Outcome of one combination inside a sweep: a report or the aborting error."""

    workload: str
    params: Mapping[str, Scalar]
    report: Report | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and not self.report.failed
