"""File I/O workloads."""

import os
import random
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor


@dataclass
class FileState:
    path: Path
    data: bytes


def _file_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> FileState:
    fd, name = tempfile.mkstemp(prefix="perfbench-", suffix=".bin")
    os.close(fd)
    return FileState(path=Path(name), data=random.Random(0).randbytes(int(params["size_kb"]) * 1024))


def file_write_read(state: FileState) -> int:
    """Write the buffer, fsync, read it back and compare.

    Raises:
        RuntimeError: If the round trip returned different bytes
    """
    with open(state.path, "wb") as f:
        f.write(state.data)
        f.flush()
        os.fsync(f.fileno())
    read_back = state.path.read_bytes()
    if read_back != state.data:
        raise RuntimeError(f"Read {len(read_back)} bytes back from {state.path}, wrote {len(state.data)}")
    return len(read_back)


def _file_teardown(state: FileState) -> None:
    state.path.unlink(missing_ok=True)


FILE_WRITE_READ = WorkloadDescriptor(
    name="io.file_write_read",
    setup=_file_setup,
    run=file_write_read,
    teardown=_file_teardown,
    parameters=ParameterSpace.of(size_kb=(4, 1024)),
    category="io",
    description="Write, fsync and read back a temporary file",
)

WORKLOADS = (FILE_WRITE_READ,)
