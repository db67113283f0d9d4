"""Allocation and memory-bandwidth workloads."""

from collections.abc import Mapping
from typing import Any

import numpy as np

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor

SIZES = (1_000, 1_000_000)


def _size_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> int:
    return int(params["size"])


def _allocate_run(size: int) -> int:
    array = np.zeros(size, dtype=np.int64)
    return array.nbytes


def _sum_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> np.ndarray:
    return np.arange(int(params["size"]), dtype=np.int64)


def _sum_run(array: np.ndarray) -> int:
    return int(array.sum())


ALLOCATE_ARRAY = WorkloadDescriptor(
    name="memory.allocate_array",
    setup=_size_setup,
    run=_allocate_run,
    parameters=ParameterSpace.of(size=SIZES),
    category="memory",
    description="Allocate and zero an int64 array",
)

SUM_ARRAY = WorkloadDescriptor(
    name="memory.sum_array",
    setup=_sum_setup,
    run=_sum_run,
    parameters=ParameterSpace.of(size=SIZES),
    category="memory",
    description="Sum a preallocated int64 array",
)

WORKLOADS = (ALLOCATE_ARRAY, SUM_ARRAY)
