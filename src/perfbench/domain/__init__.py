"""Domain layer for the benchmark harness.

This package contains pure logic with zero external dependencies.
All domain code uses only Python stdlib (typing, dataclasses, enum,
statistics) and internal perfbench.domain imports.

Modules:
    entities: Connection entity and its lifecycle state machine
    value_objects: Immutable values (ParameterSpace, WorkloadDescriptor, Sample, Report)
    services: Domain services (Reporter)
    errors: Domain exception hierarchy
"""
