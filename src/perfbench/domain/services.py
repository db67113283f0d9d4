"""Domain services for logic that doesn't belong to value objects.

Services are stateless - they operate on values passed as parameters.
"""

import math
import statistics
from collections.abc import Mapping, Sequence

from perfbench.domain.value_objects import Report, Sample, Scalar

NS_PER_SECOND = 1_000_000_000

# Distinct failure messages kept on a report
MAX_REPORTED_ERRORS = 5


def percentile(sorted_data: Sequence[float], pct: float) -> float:
    """Percentile with linear interpolation between order statistics.

    Uses rank ``pct / 100 * (n - 1)`` and interpolates between the two
    neighbouring values (same as numpy's default "linear" method).

    Args:
        sorted_data: Non-empty, ascending sequence.
        pct: Percentile in [0, 100].

    Returns:
        Interpolated percentile value.

    Raises:
        ValueError: If data is empty or pct is out of range.
    """
    if not sorted_data:
        raise ValueError("percentile of empty data")
    if not 0 <= pct <= 100:
        raise ValueError(f"percentile must be within [0, 100], got {pct}")

    rank = (pct / 100) * (len(sorted_data) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_data[lower])
    fraction = rank - lower
    return sorted_data[lower] + (sorted_data[upper] - sorted_data[lower]) * fraction


class Reporter:
    """Aggregates samples into an immutable Report.

    Mean, standard deviation and percentiles are computed from successful
    samples only. Failures are counted and their first distinct messages
    kept on the report; they are never dropped.

    Example:
        >>> samples = [Sample(i, d) for i, d in enumerate([10, 20, 30])]
        >>> report = Reporter().aggregate("demo", {}, samples)
        >>> report.mean_ns, report.p50_ns
        (20.0, 20.0)
    """

    def aggregate(
        self,
        workload: str,
        params: Mapping[str, Scalar],
        samples: Sequence[Sample],
        warmup_count: int = 0,
    ) -> Report:
        ok = [s for s in samples if s.ok]
        failed = [s for s in samples if not s.ok]

        errors: list[str] = []
        for sample in failed:
            if sample.error not in errors:
                errors.append(sample.error)  # type: ignore[arg-type]
            if len(errors) >= MAX_REPORTED_ERRORS:
                break

        durations = sorted(s.duration_ns for s in ok)
        allocations = [s.allocated_bytes for s in ok if s.allocated_bytes is not None]

        if durations:
            mean = statistics.fmean(durations)
            stdev = statistics.stdev(durations) if len(durations) > 1 else 0.0
            latency = {
                "mean_ns": mean,
                "stdev_ns": stdev,
                "min_ns": durations[0],
                "max_ns": durations[-1],
                "p50_ns": percentile(durations, 50),
                "p95_ns": percentile(durations, 95),
                "p99_ns": percentile(durations, 99),
                "ops_per_second": NS_PER_SECOND / mean if mean > 0 else None,
            }
        else:
            latency = dict.fromkeys(
                ("mean_ns", "stdev_ns", "min_ns", "max_ns",
                 "p50_ns", "p95_ns", "p99_ns", "ops_per_second"),
            )

        return Report(
            workload=workload,
            params=dict(params),
            count=len(samples),
            successes=len(ok),
            failures=len(failed),
            warmup_count=warmup_count,
            alloc_mean_bytes=statistics.fmean(allocations) if allocations else None,
            alloc_max_bytes=max(allocations) if allocations else None,
            errors=tuple(errors),
            **latency,
        )
