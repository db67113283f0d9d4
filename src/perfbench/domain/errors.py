# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain exception hierarchy.

All harness-level errors inherit from HarnessError.
This allows clean exception handling at adapter boundaries
(HTTP exception handlers, CLI exit codes).
"""


class HarnessError(Exception):
    """Base exception for all domain errors."""


class DuplicateNameError(HarnessError):
    """A workload or fixture with this name is already registered."""


class NotFoundError(HarnessError):
    """Requested workload or fixture is not registered."""


class InvalidParameterError(HarnessError):
    """Parameter combination names an unknown axis or a value outside an axis."""


class FixtureStartError(HarnessError):
    """Shared resource could not be brought up (bind failure, startup timeout)."""


class WorkloadError(HarnessError):
    """A workload call failed (setup, warmup iteration, or measured iteration)."""


class RunTimeoutError(HarnessError, TimeoutError):
    """Run exceeded its deadline; teardown and fixture release still performed."""


class ProtocolError(HarnessError):
    """Malformed or unsupported request (missing upload part, no upgrade)."""


class InvalidTransitionError(ProtocolError):
    """Connection state machine was asked for a transition it does not allow."""
