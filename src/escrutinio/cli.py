"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/cli.py`.
Interfaz de línea de comandos de escrutinio. Cada comando arma el ledger,
el coordinador y el gateway, ejecuta una acción en un event loop propio y
traduce los errores tipados a código de salida 1.

Componentes detectados:
  - Runtime
  - build_ledger
  - open_runtime
  - main
  - list_elections
  - show
  - watch
  - create_election
  - add_candidate
  - vote
  - declare

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/cli.py`.
Escrutinio command line interface. Each command builds the ledger,
coordinator and gateway, runs one action in its own event loop and maps
typed errors to exit code 1.

Detected components:
  - Runtime
  - build_ledger
  - open_runtime
  - main
  - list_elections
  - show
  - watch
  - create_election
  - add_candidate
  - vote
  - declare

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Cli Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import typer

from .config import EscrutinioSettings, load_config
from .core.actions import ActionGateway
from .core.errors import EscrutinioError
from .core.models import Phase, RefreshReason
from .core.phase import resolve_phase, utc_now
from .core.repository import ElectionRepository
from .core.sync import SyncCoordinator
from .ledger.base import LedgerClient
from .ledger.web3_client import Web3LedgerClient
from .logging import setup_logging
from .views import ElectionRender, ElectionView, ViewStatus

app = typer.Typer(help="Escrutinio: elecciones sobre ledger / election ledger client")

T = TypeVar("T")


@dataclass
class Runtime:
    settings: EscrutinioSettings
    ledger: LedgerClient
    coordinator: SyncCoordinator
    gateway: ActionGateway


def build_ledger(settings: EscrutinioSettings) -> LedgerClient:
    return Web3LedgerClient.from_settings(settings)


@asynccontextmanager
async def open_runtime(config_path: Optional[Path]) -> AsyncIterator[Runtime]:
    """Arma ledger, coordinador y gateway y los cierra al salir.

    English: Build ledger, coordinator and gateway, and close them on exit.
    """
    settings = load_config(config_path)
    setup_logging(settings.log_level, settings.log_dir)
    ledger = build_ledger(settings)
    coordinator = SyncCoordinator(ElectionRepository(ledger), ledger)
    gateway = ActionGateway(
        ledger,
        coordinator,
        declaration_timeout_seconds=settings.declaration_event_timeout_seconds,
    )
    try:
        yield Runtime(settings=settings, ledger=ledger, coordinator=coordinator, gateway=gateway)
    finally:
        await coordinator.aclose()
        closer = getattr(ledger, "aclose", None)
        if closer is not None:
            result = closer()
            if inspect.isawaitable(result):
                await result


def _run(ctx: typer.Context, action: Callable[[Runtime], Awaitable[T]]) -> T:
    config_path = ctx.obj.get("config") if ctx.obj else None

    async def _main() -> T:
        async with open_runtime(config_path) as runtime:
            return await action(runtime)

    try:
        return asyncio.run(_main())
    except (EscrutinioError, ValueError, FileNotFoundError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _parse_time(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Not an ISO-8601 date/time: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_render(render: ElectionRender) -> str:
    snapshot = render.snapshot
    if snapshot is None:
        return f"[{render.status.value}] {render.error or 'no data'}"
    election = snapshot.election
    lines = [
        f"#{election.id} {election.name} [{render.phase.value}] "
        f"{election.start_time.isoformat()} -> {election.end_time.isoformat()} "
        f"(version {snapshot.fetched_at_version}, {render.total_votes} votes)"
    ]
    for result in render.results:
        candidate = result.candidate
        marker = " *" if result.is_winner and render.phase is Phase.DECLARED else ""
        lines.append(
            f"  {result.rank}. {candidate.name} ({candidate.party}, {candidate.area}) "
            f"{candidate.vote_count} votes {result.vote_share:.2f}%{marker}"
        )
    if render.status is ViewStatus.ERROR and render.error is not None:
        lines.append(f"  stale: {render.error}")
    return "\n".join(lines)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Ruta a escrutinio.yaml / YAML config path"),
) -> None:
    """Cliente de elecciones registradas en un ledger.

    English: Client for elections recorded on a ledger.
    """
    ctx.obj = {"config": config}


@app.command("elections")
def list_elections(ctx: typer.Context) -> None:
    """Lista elecciones con su fase actual. / List elections with their current phase."""

    async def _action(runtime: Runtime) -> None:
        elections = await runtime.coordinator.refresh_all(RefreshReason.USER_TRIGGERED)
        now = utc_now()
        if not elections:
            typer.echo("No elections.")
        for election in elections:
            typer.echo(
                f"{election.id}\t{election.name}\t{resolve_phase(now, election).value}\t"
                f"{election.start_time.isoformat()}\t{election.end_time.isoformat()}"
            )

    _run(ctx, _action)


@app.command("show")
def show(ctx: typer.Context, election_id: int = typer.Argument(..., min=1)) -> None:
    """Muestra resultados ordenados de una elección. / Show ranked results of one election."""

    async def _action(runtime: Runtime) -> None:
        view = ElectionView(runtime.coordinator, election_id, follow_ledger=False)
        try:
            render = await view.open()
        finally:
            view.close()
        if render.snapshot is None and render.error is not None:
            raise render.error
        typer.echo(_format_render(render))

    _run(ctx, _action)


@app.command("watch")
def watch(
    ctx: typer.Context,
    election_id: int = typer.Argument(..., min=1),
    max_updates: int = typer.Option(0, "--max-updates", min=0, help="0 = sin límite / unlimited"),
) -> None:
    """Sigue una elección e imprime cada snapshot publicado.

    English: Follow an election and print every published snapshot.
    """

    async def _action(runtime: Runtime) -> None:
        done = asyncio.Event()
        printed = 0

        def _print(render: ElectionRender) -> None:
            nonlocal printed
            if render.status is ViewStatus.LOADING:
                return
            typer.echo(_format_render(render))
            printed += 1
            if max_updates and printed >= max_updates:
                done.set()

        async with ElectionView(runtime.coordinator, election_id, on_change=_print):
            await done.wait()

    try:
        _run(ctx, _action)
    except KeyboardInterrupt:
        typer.echo("Stopped.")


@app.command("create-election")
def create_election(ctx: typer.Context, name: str, start: str, end: str) -> None:
    """Crea una elección (fechas ISO-8601). / Create an election (ISO-8601 dates)."""
    try:
        start_time = _parse_time(start)
        end_time = _parse_time(end)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    async def _action(runtime: Runtime) -> Any:
        return await runtime.gateway.create_election(name, start_time, end_time)

    receipt = _run(ctx, _action)
    typer.echo(f"Election created in tx {receipt.tx_hash} (block {receipt.block_number}).")


@app.command("add-candidate")
def add_candidate(
    ctx: typer.Context,
    election_id: int = typer.Argument(..., min=1),
    name: str = typer.Argument(...),
    party: str = typer.Argument(...),
    area: str = typer.Argument(...),
) -> None:
    """Agrega un candidato a una elección próxima. / Add a candidate to an upcoming election."""

    async def _action(runtime: Runtime) -> Any:
        return await runtime.gateway.add_candidate(election_id, name, party, area)

    receipt = _run(ctx, _action)
    typer.echo(f"Candidate added in tx {receipt.tx_hash} (block {receipt.block_number}).")


@app.command("vote")
def vote(
    ctx: typer.Context,
    election_id: int = typer.Argument(..., min=1),
    candidate_id: int = typer.Argument(..., min=1),
) -> None:
    """Emite un voto en una elección activa. / Cast a vote in an active election."""

    async def _action(runtime: Runtime) -> Any:
        return await runtime.gateway.cast_vote(election_id, candidate_id)

    receipt = _run(ctx, _action)
    typer.echo(f"Vote recorded in tx {receipt.tx_hash} (block {receipt.block_number}).")


@app.command("declare")
def declare(ctx: typer.Context, election_id: int = typer.Argument(..., min=1)) -> None:
    """Declara resultados de una elección terminada. / Declare results of an ended election."""

    async def _action(runtime: Runtime) -> Any:
        return await runtime.gateway.declare_results(election_id)

    notice = _run(ctx, _action)
    if notice.winner_name is None:
        typer.echo(f"Election {notice.election_id} declared with no candidates.")
    else:
        typer.echo(
            f"Election {notice.election_id} declared: {notice.winner_name} wins with {notice.max_votes} votes."
        )


if __name__ == "__main__":
    app()
