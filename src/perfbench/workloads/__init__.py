"""Built-in workloads.

Each module exposes a ``WORKLOADS`` tuple of descriptors; this package
registers them all.
"""

from perfbench.application.registry import WorkloadRegistry
from perfbench.domain.value_objects import WorkloadDescriptor
from perfbench.workloads import concurrency, cpu, database, io, json_workloads, memory, network

__all__ = ["builtin_workloads", "register_builtin_workloads"]


def builtin_workloads() -> list[WorkloadDescriptor]:
    """Every built-in descriptor, grouped by module."""
    return [
        *cpu.WORKLOADS,
        *memory.WORKLOADS,
        *concurrency.WORKLOADS,
        *io.WORKLOADS,
        *database.WORKLOADS,
        *json_workloads.WORKLOADS,
        *network.WORKLOADS,
    ]


def register_builtin_workloads(registry: WorkloadRegistry) -> WorkloadRegistry:
    """Register every built-in workload.

    Raises:
        DuplicateNameError: If a built-in name is already registered
    """
    for descriptor in builtin_workloads():
        registry.register(descriptor)
    return registry
