"""Render reports for the terminal or as JSON."""

import json
from collections.abc import Iterable, Mapping

from perfbench.domain.value_objects import Report, RunResult, Scalar

NS_PER_MS = 1_000_000


def _format_params(params: Mapping[str, Scalar]) -> str:
    return ",".join(f"{name}={value}" for name, value in params.items()) or "-"


def _ms(value_ns: float | None) -> str:
    if value_ns is None:
        return "-"
    return f"{value_ns / NS_PER_MS:.3f}"


def render_table(reports: Iterable[Report]) -> str:
    """Fixed-width table, one row per report. Latencies in milliseconds."""
    header = (
        f"{'Workload':<32} {'Params':<32} {'OK':>6} {'Fail':>5} "
        f"{'Mean':>10} {'Stdev':>10} {'p50':>10} {'p95':>10} {'p99':>10} {'ops/s':>12}"
    )
    lines = [header, "-" * len(header)]
    for report in reports:
        ops = f"{report.ops_per_second:.1f}" if report.ops_per_second is not None else "-"
        lines.append(
            f"{report.workload:<32} {_format_params(report.params):<32} "
            f"{report.successes:>6} {report.failures:>5} "
            f"{_ms(report.mean_ns):>10} {_ms(report.stdev_ns):>10} "
            f"{_ms(report.p50_ns):>10} {_ms(report.p95_ns):>10} {_ms(report.p99_ns):>10} "
            f"{ops:>12}"
        )
        if report.alloc_max_bytes is not None:
            lines.append(
                f"{'':<32} alloc mean={report.alloc_mean_bytes:.0f}B max={report.alloc_max_bytes}B"
            )
        for error in report.errors:
            lines.append(f"{'':<32} error: {error}")
    return "\n".join(lines)


def render_results_table(results: Iterable[RunResult]) -> str:
    """Table for a sweep, listing aborted combinations below the reports."""
    results = list(results)
    table = render_table(result.report for result in results if result.report is not None)
    aborted = [
        f"ABORTED {result.workload} {_format_params(result.params)}: "
        f"{type(result.error).__name__}: {result.error}"
        for result in results
        if result.error is not None
    ]
    return "\n".join([table, *aborted])


def render_results_json(results: Iterable[RunResult]) -> str:
    """JSON array with a report or an error object per combination."""
    payload = []
    for result in results:
        if result.report is not None:
            payload.append(result.report.to_dict())
        else:
            payload.append(
                {
                    "workload": result.workload,
                    "params": dict(result.params),
                    "error": {"type": type(result.error).__name__, "message": str(result.error)},
                }
            )
    return json.dumps(payload, indent=2)
