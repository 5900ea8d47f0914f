"""
Typer application for driving the Sindri cloud prover by hand.

Operators use it to check credentials and circuit availability before wiring
the prover into the SDK runtime, or to inspect a task the runtime submitted.
Every command prints the contract response as JSON and exits with status 1
when the response carries an error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import anyio
import typer

from ..adapters.api import CIRCUIT_VERSION, CloudProver
from ..adapters.base import ConfigError
from ..config import CloudProverConfig, load_config_from_env
from ..core.logging import configure_logging
from ..proving.types import CircuitType, GetVkRequest, ProveRequest, QueryTaskRequest

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Sindri cloud prover for the Scroll proving SDK.\n\n"
        "Commands:\n"
        "- vks: fetch verification keys for the configured circuits.\n"
        "- prove: submit a proof task from an input file.\n"
        "- query: show the current state of a proof task."
    ),
)

_T = TypeVar("_T")


@dataclass(slots=True)
class CLIState:
    config_path: Optional[Path]


def _build_prover(config: CloudProverConfig) -> CloudProver:
    return CloudProver(config)


def _load_config(ctx: typer.Context) -> CloudProverConfig:
    state: CLIState = ctx.obj
    try:
        return load_config_from_env(state.config_path)
    except ConfigError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc


def _run(config: CloudProverConfig, operation: Callable[[CloudProver], Awaitable[_T]]) -> _T:
    try:
        prover = _build_prover(config)
    except ConfigError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc

    async def _call() -> _T:
        async with prover:
            return await operation(prover)

    return anyio.run(_call)


def _emit(response) -> None:
    typer.echo(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))
    if response.error:
        raise typer.Exit(code=1)


def _parse_circuit_type(value: int) -> CircuitType:
    try:
        circuit_type = CircuitType(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Unknown circuit type {value}.") from exc
    if circuit_type is CircuitType.UNDEFINED:
        raise typer.BadParameter("Circuit type 0 (undefined) cannot be proved.")
    return circuit_type


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (JSON or TOML). Defaults to SINDRI_CONFIG_PATH or ./config.json.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level override, e.g. DEBUG."),
) -> None:
    configure_logging(log_level, force=log_level is not None)
    ctx.obj = CLIState(config_path=config)


@app.command("vks")
def vks_command(
    ctx: typer.Context,
    circuit_types: Optional[List[int]] = typer.Option(
        None,
        "--circuit-type",
        "-t",
        help="Circuit type (1=chunk, 2=batch, 3=bundle). Repeatable. Defaults to the configured prover circuits.",
    ),
    circuit_version: str = typer.Option(CIRCUIT_VERSION, "--circuit-version", help="Protocol version to request."),
) -> None:
    """Fetch verification keys."""

    config = _load_config(ctx)
    requested = circuit_types or config.sdk_config.prover.circuit_types or [CircuitType.CHUNK, CircuitType.BATCH, CircuitType.BUNDLE]
    request = GetVkRequest(
        circuit_types=[_parse_circuit_type(value) for value in requested],
        circuit_version=circuit_version,
    )
    _emit(_run(config, lambda prover: prover.get_vks(request)))


@app.command("prove")
def prove_command(
    ctx: typer.Context,
    circuit_type: int = typer.Option(..., "--circuit-type", "-t", help="Circuit type (1=chunk, 2=batch, 3=bundle)."),
    input_file: Path = typer.Option(..., "--input-file", "-i", help="File containing the proving task input."),
    circuit_version: str = typer.Option(CIRCUIT_VERSION, "--circuit-version", help="Protocol version of the task."),
    hard_fork_name: str = typer.Option("", "--hard-fork-name", help="Hard fork the task belongs to."),
) -> None:
    """Submit a proof task."""

    if not input_file.is_file():
        raise typer.BadParameter(f"File '{input_file}' does not exist.")
    request = ProveRequest(
        circuit_type=_parse_circuit_type(circuit_type),
        circuit_version=circuit_version,
        hard_fork_name=hard_fork_name,
        input=input_file.read_text(encoding="utf-8"),
    )
    _emit(_run(_load_config(ctx), lambda prover: prover.prove(request)))


@app.command("query")
def query_command(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Proof ID returned by 'prove'."),
) -> None:
    """Show the state of a proof task."""

    request = QueryTaskRequest(task_id=task_id)
    _emit(_run(_load_config(ctx), lambda prover: prover.query_task(request)))


if __name__ == "__main__":  # pragma: no cover
    app()
