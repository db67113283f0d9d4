"""CLI entrypoint for the benchmark harness.

Usage:
    perfbench list
    perfbench run cpu.sha256 --param size_kb=1024 --iterations 50
    perfbench run all --format json
    perfbench serve --port 8765

Exit codes for ``run``: 0 when every run succeeded, 1 when any run was
aborted or reported failed samples, 2 on usage errors.
"""

from collections.abc import Iterable
from contextlib import ExitStack

import typer
import uvicorn

from perfbench import __version__
from perfbench.adapters.config.logging import configure_logging, get_logger
from perfbench.adapters.config.settings import ServerSettings, get_settings
from perfbench.adapters.outbound.echo_server_fixture import ECHO_SERVER_FIXTURE, EchoServerFixture
from perfbench.adapters.outbound.report_renderer import render_results_json, render_results_table
from perfbench.application.execution_engine import ExecutionEngine
from perfbench.application.fixture_manager import FixtureManager
from perfbench.application.registry import WorkloadRegistry
from perfbench.domain.errors import FixtureStartError, InvalidParameterError, NotFoundError
from perfbench.domain.value_objects import ParamCombination, WorkloadDescriptor
from perfbench.entrypoints.api_server import create_app
from perfbench.workloads import register_builtin_workloads

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

DEFAULT_SERVE_PORT = 8765
OUTPUT_FORMATS = ("table", "json")

app = typer.Typer(
    name="perfbench",
    help="Benchmark harness with a built-in HTTP/WebSocket echo server",
    add_completion=False,
)


def build_registry() -> WorkloadRegistry:
    return register_builtin_workloads(WorkloadRegistry())


def build_fixture_manager(server_settings: ServerSettings) -> FixtureManager:
    manager = FixtureManager()
    manager.register(ECHO_SERVER_FIXTURE, EchoServerFixture(server_settings))
    return manager


def _usage_error(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=EXIT_USAGE)


def parse_param_options(options: list[str] | None) -> dict[str, str]:
    """Split repeated ``axis=value`` options into a dict.

    Raises:
        InvalidParameterError: If an option has no '=' or repeats an axis
    """
    raw: dict[str, str] = {}
    for option in options or []:
        name, sep, value = option.partition("=")
        if not sep or not name:
            raise InvalidParameterError(f"Expected axis=value, got '{option}'")
        if name in raw:
            raise InvalidParameterError(f"Parameter '{name}' given more than once")
        raw[name] = value
    return raw


def select_combinations(
    descriptor: WorkloadDescriptor, raw: dict[str, str]
) -> list[ParamCombination]:
    """Combinations of the sweep that match every pinned axis.

    Axes not named in ``raw`` are swept over all their values.

    Raises:
        InvalidParameterError: If a name or value does not belong to the space
    """
    pinned = {name: value for name, value in descriptor.parameters.coerce(raw).items() if name in raw}
    return [
        combination
        for combination in descriptor.parameters.combinations()
        if all(combination[name] == value for name, value in pinned.items())
    ]


def planned_fixtures(descriptors: Iterable[WorkloadDescriptor]) -> list[str]:
    """Fixture names declared by any of the descriptors, in first-use order."""
    names: dict[str, None] = {}
    for descriptor in descriptors:
        for fixture_name in descriptor.fixtures:
            names.setdefault(fixture_name, None)
    return list(names)


@app.command("list")
def list_workloads() -> None:
    """List registered workloads with their fixtures and parameter axes."""
    registry = build_registry()
    for category, descriptors in registry.by_category().items():
        typer.echo(f"[{category}]")
        for descriptor in descriptors:
            typer.echo(f"  {descriptor.name:<34} {descriptor.description}")
            for axis in descriptor.parameters.axes:
                values = ", ".join(str(value) for value in axis.values)
                typer.echo(f"      {axis.name}: {values}")
            if descriptor.fixtures:
                typer.echo(f"      fixtures: {', '.join(descriptor.fixtures)}")


@app.command()
def run(
    name: str = typer.Argument(..., help="Workload name, or 'all'"),
    param: list[str] = typer.Option(
        None,
        "--param",
        "-P",
        help="Pin a parameter axis (axis=value, repeatable; single workload only)",
    ),
    warmup: int = typer.Option(
        None,
        "--warmup",
        "-w",
        min=0,
        help="Warmup iterations (default: from settings)",
    ),
    iterations: int = typer.Option(
        None,
        "--iterations",
        "-n",
        min=1,
        help="Measured iterations (default: from settings)",
    ),
    timeout: float = typer.Option(
        None,
        "--timeout",
        "-t",
        min=0.001,
        help="Deadline per combination in seconds (default: from settings)",
    ),
    output_format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table or json",
    ),
    track_allocations: bool = typer.Option(
        False,
        "--track-allocations",
        help="Record allocation peaks with tracemalloc",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: from settings)",
    ),
) -> None:
    """Run a workload (every parameter combination unless pinned).

    Example:
        $ perfbench run network.ws_echo --param payload_bytes=4096
        $ perfbench run all --iterations 5 --format json > reports.json
    """
    settings = get_settings()
    configure_logging(log_level or settings.server.log_level, json_output=False)
    logger = get_logger(__name__)

    if output_format not in OUTPUT_FORMATS:
        raise _usage_error(f"--format must be one of {', '.join(OUTPUT_FORMATS)}")

    registry = build_registry()
    try:
        raw = parse_param_options(param)
        if name == "all":
            if raw:
                raise InvalidParameterError("--param cannot be combined with 'all'")
            plan = [(descriptor, None) for descriptor in registry]
        else:
            descriptor = registry.resolve(name)
            plan = [(descriptor, select_combinations(descriptor, raw) if raw else None)]
    except (NotFoundError, InvalidParameterError) as e:
        raise _usage_error(str(e)) from e

    harness = settings.harness
    warmup_count = warmup if warmup is not None else harness.warmup_iterations
    measured_count = iterations if iterations is not None else harness.measured_iterations
    timeout_seconds = timeout if timeout is not None else harness.run_timeout_seconds

    fixtures = build_fixture_manager(settings.server)
    engine = ExecutionEngine(
        fixtures, track_allocations=track_allocations or harness.track_allocations
    )
    results = []
    try:
        with ExitStack() as held:
            # Hold every shared fixture for the whole plan so it starts once
            for fixture_name in planned_fixtures(descriptor for descriptor, _ in plan):
                try:
                    held.enter_context(fixtures.lease(fixture_name))
                except (FixtureStartError, NotFoundError) as e:
                    logger.warning("fixture_unavailable", fixture=fixture_name, error=str(e))
            for descriptor, combinations in plan:
                results.extend(
                    engine.run_sweep(
                        descriptor,
                        warmup_count=warmup_count,
                        measured_count=measured_count,
                        combinations=combinations,
                        timeout_seconds=timeout_seconds,
                    )
                )
    finally:
        fixtures.shutdown()

    if output_format == "json":
        typer.echo(render_results_json(results))
    else:
        typer.echo(render_results_table(results))

    failed = [result for result in results if not result.ok]
    logger.info("run_finished", runs=len(results), failed=len(failed))
    if failed:
        raise typer.Exit(code=EXIT_FAILED)


@app.command()
def serve(
    host: str = typer.Option(
        None,
        "--host",
        "-h",
        help="Server bind address (default: from settings)",
    ),
    port: int = typer.Option(
        None,
        "--port",
        "-p",
        help=f"Server port (default: from settings, {DEFAULT_SERVE_PORT} if unset)",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: from settings)",
    ),
) -> None:
    """Serve the echo app standalone (for external load generators).

    Example:
        $ perfbench serve --host 0.0.0.0 --port 8765
    """
    settings = get_settings()
    final_host = host or settings.server.host
    final_port = port if port is not None else (settings.server.port or DEFAULT_SERVE_PORT)
    final_log_level = (log_level or settings.server.log_level).upper()

    configure_logging(final_log_level, json_output=final_log_level != "DEBUG")
    logger = get_logger(__name__)
    logger.info("echo_server_serving", host=final_host, port=final_port)

    uvicorn.run(
        create_app(settings.server),
        host=final_host,
        port=final_port,
        log_level=final_log_level.lower(),
        ws_max_size=settings.server.ws_max_message_bytes,
        access_log=False,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"perfbench v{__version__}")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    typer.echo("=" * 60)
    typer.echo("perfbench - Configuration")
    typer.echo("=" * 60)
    typer.echo()
    typer.echo("[Harness]")
    typer.echo(f"  Warmup iterations: {settings.harness.warmup_iterations}")
    typer.echo(f"  Measured iterations: {settings.harness.measured_iterations}")
    typer.echo(f"  Run timeout: {settings.harness.run_timeout_seconds} s")
    typer.echo(f"  Track allocations: {settings.harness.track_allocations}")
    typer.echo()
    typer.echo("[Server]")
    typer.echo(f"  Host: {settings.server.host}")
    typer.echo(f"  Port: {settings.server.port}")
    typer.echo(f"  Startup timeout: {settings.server.startup_timeout_seconds} s")
    typer.echo(f"  WebSocket max message: {settings.server.ws_max_message_bytes} bytes")
    typer.echo(f"  Upload chunk: {settings.server.upload_chunk_bytes} bytes")
    typer.echo(f"  Log level: {settings.server.log_level}")
    typer.echo("=" * 60)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
