"""Workload registry.

Holds named workload descriptors. Descriptors are registered once at
process start and read-only afterwards.
"""

import logging
from collections.abc import Iterator

from perfbench.domain.errors import DuplicateNameError, NotFoundError
from perfbench.domain.value_objects import WorkloadDescriptor

logger = logging.getLogger(__name__)


class WorkloadRegistry:
    """Registry of workload descriptors keyed by name.

    Thread Safety:
    - Not thread-safe for registration. Register everything at startup,
      before any run begins; lookups afterwards are read-only.

    Example:
        >>> registry = WorkloadRegistry()
        >>> registry.register(descriptor)
        >>> registry.resolve("cpu.sha256") is descriptor
        True
    """

    def __init__(self) -> None:
        self._workloads: dict[str, WorkloadDescriptor] = {}

    def register(self, descriptor: WorkloadDescriptor) -> WorkloadDescriptor:
        """Add a descriptor.

        Args:
            descriptor: Workload to register

        Returns:
            The registered descriptor (handy for module-level registration)

        Raises:
            DuplicateNameError: If a workload with the same name exists
        """
        if descriptor.name in self._workloads:
            raise DuplicateNameError(f"Workload '{descriptor.name}' is already registered")
        self._workloads[descriptor.name] = descriptor
        logger.debug(
            f"Registered workload {descriptor.name} "
            f"({descriptor.parameters.size()} combinations, fixtures={list(descriptor.fixtures)})"
        )
        return descriptor

    def resolve(self, name: str) -> WorkloadDescriptor:
        """Look up a descriptor by name.

        Raises:
            NotFoundError: If no workload has this name
        """
        try:
            return self._workloads[name]
        except KeyError:
            raise NotFoundError(f"Workload '{name}' is not registered") from None

    def names(self) -> list[str]:
        """Registered names, sorted."""
        return sorted(self._workloads)

    def by_category(self) -> dict[str, list[WorkloadDescriptor]]:
        """Descriptors grouped by category, each group in registration order."""
        groups: dict[str, list[WorkloadDescriptor]] = {}
        for descriptor in self._workloads.values():
            groups.setdefault(descriptor.category, []).append(descriptor)
        return groups

    def __contains__(self, name: object) -> bool:
        return name in self._workloads

    def __len__(self) -> int:
        return len(self._workloads)

    def __iter__(self) -> Iterator[WorkloadDescriptor]:
        return iter(self._workloads.values())
