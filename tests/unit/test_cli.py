"""Unit tests for the typer CLI (local workloads only)."""

import json

import pytest
from typer.testing import CliRunner

from perfbench import __version__
from perfbench.adapters.outbound.echo_server_fixture import ECHO_SERVER_FIXTURE
from perfbench.application.fixture_manager import FixtureManager
from perfbench.application.registry import WorkloadRegistry
from perfbench.domain.errors import InvalidParameterError
from perfbench.domain.value_objects import ParameterSpace, WorkloadDescriptor
from perfbench.entrypoints import cli
from perfbench.entrypoints.cli import app, parse_param_options, planned_fixtures, select_combinations
from tests.conftest import FakeResource

pytestmark = pytest.mark.unit

runner = CliRunner()

QUIET = ["--log-level", "ERROR"]


def _failing_registry() -> WorkloadRegistry:
    def run(state):
        raise RuntimeError("always fails")

    registry = WorkloadRegistry()
    registry.register(WorkloadDescriptor("test.failing", lambda p, f: None, run))
    return registry


class TestParamParsing:
    def test_parse(self) -> None:
        assert parse_param_options(["size=64", "mode=a=b"]) == {"size": "64", "mode": "a=b"}
        assert parse_param_options(None) == {}

    @pytest.mark.parametrize("bad", ["size", "=64"])
    def test_malformed(self, bad: str) -> None:
        with pytest.raises(InvalidParameterError):
            parse_param_options([bad])

    def test_repeated_axis(self) -> None:
        with pytest.raises(InvalidParameterError):
            parse_param_options(["size=64", "size=128"])

    def test_pinned_axes_filter_the_sweep(self) -> None:
        descriptor = WorkloadDescriptor(
            "demo",
            lambda p, f: None,
            lambda s: None,
            parameters=ParameterSpace.of(items=(1, 2), workers=(2, 4)),
        )
        assert select_combinations(descriptor, {"workers": "4"}) == [
            {"items": 1, "workers": 4},
            {"items": 2, "workers": 4},
        ]


class TestList:
    def test_lists_workloads_and_fixtures(self) -> None:
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "cpu.sha256" in result.stdout
        assert "size_kb: 64, 1024" in result.stdout
        assert "fixtures: echo_server" in result.stdout


class TestRun:
    def test_table_output(self) -> None:
        result = runner.invoke(
            app, ["run", "cpu.sha256", "--param", "size_kb=64", "--warmup", "0", "--iterations", "2", *QUIET]
        )
        assert result.exit_code == 0, result.output
        assert "cpu.sha256" in result.stdout
        assert "size_kb=64" in result.stdout

    def test_json_output(self) -> None:
        result = runner.invoke(
            app,
            ["run", "cpu.prime_sieve", "-P", "limit=10000", "-w", "0", "-n", "3", "-f", "json", *QUIET],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert len(data) == 1
        assert data[0]["workload"] == "cpu.prime_sieve"
        assert data[0]["params"] == {"limit": 10000}
        assert data[0]["successes"] == 3

    def test_unpinned_axes_are_swept(self) -> None:
        result = runner.invoke(app, ["run", "memory.sum_array", "-w", "0", "-n", "1", "-f", "json", *QUIET])
        assert result.exit_code == 0, result.output
        assert [r["params"]["size"] for r in json.loads(result.stdout)] == [1_000, 1_000_000]

    def test_unknown_workload_is_usage_error(self) -> None:
        result = runner.invoke(app, ["run", "cpu.nope", *QUIET])
        assert result.exit_code == 2

    def test_bad_param_value_is_usage_error(self) -> None:
        result = runner.invoke(app, ["run", "cpu.sha256", "--param", "size_kb=63", *QUIET])
        assert result.exit_code == 2

    def test_param_with_all_is_usage_error(self) -> None:
        result = runner.invoke(app, ["run", "all", "--param", "size=64", *QUIET])
        assert result.exit_code == 2

    def test_unknown_format_is_usage_error(self) -> None:
        result = runner.invoke(app, ["run", "cpu.sha256", "--format", "xml", *QUIET])
        assert result.exit_code == 2

    def test_failed_samples_exit_1(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "build_registry", _failing_registry)
        result = runner.invoke(app, ["run", "test.failing", "-w", "0", "-n", "5", "-f", "json", *QUIET])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data[0]["failures"] == 5
        assert data[0]["successes"] == 0


class TestSharedFixtures:
    def _patch(self, monkeypatch: pytest.MonkeyPatch, resource: FakeResource) -> None:
        registry = WorkloadRegistry()
        registry.register(
            WorkloadDescriptor(
                "test.shared",
                lambda p, f: f[ECHO_SERVER_FIXTURE],
                lambda s: None,
                parameters=ParameterSpace.of(size=(1, 2, 3)),
                fixtures=(ECHO_SERVER_FIXTURE,),
            )
        )
        registry.register(
            WorkloadDescriptor("test.also_shared", lambda p, f: None, lambda s: None, fixtures=(ECHO_SERVER_FIXTURE,))
        )

        def fixture_manager(server_settings) -> FixtureManager:
            manager = FixtureManager()
            manager.register(ECHO_SERVER_FIXTURE, resource)
            return manager

        monkeypatch.setattr(cli, "build_registry", lambda: registry)
        monkeypatch.setattr(cli, "build_fixture_manager", fixture_manager)

    def test_fixture_started_once_across_sweep(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resource = FakeResource()
        self._patch(monkeypatch, resource)

        result = runner.invoke(app, ["run", "test.shared", "-w", "0", "-n", "1", "-f", "json", *QUIET])

        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)) == 3
        assert resource.starts == 1
        assert resource.stops == 1

    def test_fixture_started_once_for_all(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resource = FakeResource()
        self._patch(monkeypatch, resource)

        result = runner.invoke(app, ["run", "all", "-w", "0", "-n", "1", "-f", "json", *QUIET])

        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)) == 4
        assert resource.starts == 1
        assert resource.stops == 1

    def test_unavailable_fixture_aborts_runs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        resource = FakeResource(fail_starts=100)
        self._patch(monkeypatch, resource)

        result = runner.invoke(app, ["run", "test.shared", "-w", "0", "-n", "1", *QUIET])

        assert result.exit_code == 1
        assert result.stdout.count("ABORTED test.shared") == 3
        assert resource.starts == 0

    def test_planned_fixtures_deduplicated(self) -> None:
        descriptors = [
            WorkloadDescriptor("a", lambda p, f: None, lambda s: None, fixtures=("db", "echo_server")),
            WorkloadDescriptor("b", lambda p, f: None, lambda s: None, fixtures=("echo_server",)),
            WorkloadDescriptor("c", lambda p, f: None, lambda s: None),
        ]
        assert planned_fixtures(descriptors) == ["db", "echo_server"]


class TestInfoCommands:
    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_config(self) -> None:
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "[Harness]" in result.stdout
        assert "[Server]" in result.stdout
