"""perfbench: Performance-measurement harness with a shared echo server.

Runs parameterized workloads (CPU kernels, memory patterns, concurrency
primitives, I/O, JSON, HTTP/WebSocket exchanges) under a timing engine and
aggregates the samples into latency and throughput reports.

Architecture: Hexagonal (Ports & Adapters)
- Domain core: Pure types, errors and statistics (stdlib only)
- Application: Workload registry, fixture lifecycle manager, execution engine
- Adapters: Echo server (FastAPI/uvicorn), settings, logging, report rendering
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
