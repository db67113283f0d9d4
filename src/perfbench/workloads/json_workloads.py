"""Serialization workloads (pydantic JSON dump/validate)."""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, TypeAdapter

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor


class Record(BaseModel):
    id: int
    name: str
    score: float
    tags: list[str]
    active: bool = True


RECORDS = TypeAdapter(list[Record])


def make_records(count: int) -> list[Record]:
    return [
        Record(id=i, name=f"record-{i}", score=i * 0.5, tags=[f"t{i % 7}", f"g{i % 3}"], active=i % 2 == 0)
        for i in range(count)
    ]


def _roundtrip_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> list[Record]:
    return make_records(int(params["records"]))


def json_roundtrip(records: list[Record]) -> int:
    """Dump to JSON bytes and validate back.

    Raises:
        ValueError: If the decoded records differ from the originals
    """
    decoded = RECORDS.validate_json(RECORDS.dump_json(records))
    if decoded != records:
        raise ValueError("JSON round trip changed the records")
    return len(decoded)


JSON_ROUNDTRIP = WorkloadDescriptor(
    name="json.roundtrip",
    setup=_roundtrip_setup,
    run=json_roundtrip,
    parameters=ParameterSpace.of(records=(10, 1_000)),
    category="json",
    description="pydantic dump_json + validate_json of a record list",
)

WORKLOADS = (JSON_ROUNDTRIP,)
