"""Run the built-in network workloads end to end through the engine."""

import pytest

from perfbench.adapters.config.settings import ServerSettings
from perfbench.adapters.outbound.echo_server_fixture import ECHO_SERVER_FIXTURE, EchoServerFixture
from perfbench.application.execution_engine import ExecutionEngine
from perfbench.application.fixture_manager import FixtureManager
from perfbench.workloads import builtin_workloads

pytestmark = pytest.mark.integration

NETWORK_WORKLOADS = [d for d in builtin_workloads() if d.category == "network"]


@pytest.fixture
def manager(server_settings: ServerSettings):
    manager = FixtureManager()
    manager.register(ECHO_SERVER_FIXTURE, EchoServerFixture(server_settings))
    yield manager
    manager.shutdown()


@pytest.mark.parametrize("descriptor", NETWORK_WORKLOADS, ids=lambda d: d.name)
def test_default_combination_succeeds(manager: FixtureManager, descriptor) -> None:
    engine = ExecutionEngine(manager)

    report = engine.run_workload(descriptor, warmup_count=1, measured_count=3, timeout_seconds=120)

    assert report.successes == 3, report.errors
    assert report.failures == 0
    assert not manager.is_live(ECHO_SERVER_FIXTURE)


def test_ws_echo_payload_sweep(manager: FixtureManager) -> None:
    ws_echo = next(d for d in NETWORK_WORKLOADS if d.name == "network.ws_echo")
    engine = ExecutionEngine(manager)

    results = engine.run_sweep(
        ws_echo,
        warmup_count=0,
        measured_count=2,
        combinations=[{"payload_bytes": size, "messages": 1} for size in (256, 4096, 65536)],
        timeout_seconds=60,
    )

    assert [r.params["payload_bytes"] for r in results] == [256, 4096, 65536]
    assert all(r.ok for r in results)
