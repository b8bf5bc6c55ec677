"""Pruebas de la interfaz de línea de comandos.

Tests for the command line interface.
"""

import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import structlog
from typer.testing import CliRunner

from escrutinio import cli

runner = CliRunner()

CANDIDATES = [("Alice", "Azul", "Norte"), ("Bob", "Rojo", "Sur")]


@pytest.fixture()
def cli_ledger(ledger, clock, monkeypatch):
    """Español: Conecta la CLI al ledger en memoria con reloj real.

    English: Wires the CLI to the in-memory ledger with a real clock.
    """
    clock.now = datetime.now(timezone.utc)
    settings = SimpleNamespace(log_level="INFO", log_dir=None, declaration_event_timeout_seconds=0.05)
    monkeypatch.setattr(cli, "load_config", lambda _path=None: settings)
    monkeypatch.setattr(cli, "setup_logging", lambda *_args, **_kwargs: None)
    monkeypatch.setattr(cli, "build_ledger", lambda _settings: ledger)
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield ledger
    structlog.reset_defaults()


def test_elections_lists_phases(cli_ledger) -> None:
    """Español: ``elections`` lista id, nombre y fase.

    English: ``elections`` lists id, name and phase.
    """
    cli_ledger.upcoming("Alcaldía")
    cli_ledger.active("Congreso")

    result = runner.invoke(cli.app, ["elections"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].split("\t")[:3] == ["1", "Alcaldía", "upcoming"]
    assert lines[1].split("\t")[:3] == ["2", "Congreso", "active"]


def test_show_prints_ranked_results(cli_ledger) -> None:
    """Español: ``show`` imprime resultados ordenados con porcentaje.

    English: ``show`` prints ranked results with shares.
    """
    cli_ledger.ended(candidates=CANDIDATES, votes=[1, 3], declared=True)

    result = runner.invoke(cli.app, ["show", "1"])

    assert result.exit_code == 0, result.output
    assert "[declared]" in result.output
    assert "1. Bob (Rojo, Sur) 3 votes 75.00% *" in result.output
    assert "2. Alice (Azul, Norte) 1 votes 25.00%" in result.output


def test_show_unknown_election_exits_with_error(cli_ledger) -> None:
    """Español: Una elección inexistente termina con código 1.

    English: A missing election exits with code 1.
    """
    result = runner.invoke(cli.app, ["show", "4"])

    assert result.exit_code == 1
    assert "Error: Election 4 does not exist" in result.output


def test_second_vote_reports_already_voted(cli_ledger) -> None:
    """Español: El segundo voto muestra el mensaje de voto repetido.

    English: The second vote shows the already-voted message.
    """
    cli_ledger.active(candidates=CANDIDATES)

    first = runner.invoke(cli.app, ["vote", "1", "2"])
    second = runner.invoke(cli.app, ["vote", "1", "2"])

    assert first.exit_code == 0, first.output
    assert "Vote recorded" in first.output
    assert second.exit_code == 1
    assert "You have already voted. Please wait for the results." in second.output


def test_create_election_and_add_candidate(cli_ledger) -> None:
    """Español: Crear elección y agregar candidato desde la CLI.

    English: Create an election and add a candidate from the CLI.
    """
    start = datetime.now(timezone.utc) + timedelta(days=1)
    end = start + timedelta(hours=10)

    created = runner.invoke(cli.app, ["create-election", "Consulta", start.isoformat(), end.isoformat()])
    added = runner.invoke(cli.app, ["add-candidate", "1", "Alice", "Azul", "Norte"])

    assert created.exit_code == 0, created.output
    assert added.exit_code == 0, added.output
    assert [c.name for c in cli_ledger.candidates[1]] == ["Alice"]


def test_create_election_rejects_bad_dates(cli_ledger) -> None:
    """Español: Fechas no ISO-8601 terminan con código 1.

    English: Non ISO-8601 dates exit with code 1.
    """
    result = runner.invoke(cli.app, ["create-election", "Consulta", "mañana", "pasado"])

    assert result.exit_code == 1
    assert "ISO-8601" in result.output
    assert cli_ledger.calls == []


def test_declare_prints_winner(cli_ledger) -> None:
    """Español: ``declare`` imprime al ganador confirmado.

    English: ``declare`` prints the confirmed winner.
    """
    cli_ledger.ended(candidates=CANDIDATES, votes=[6, 2])

    result = runner.invoke(cli.app, ["declare", "1"])

    assert result.exit_code == 0, result.output
    assert "Alice wins with 6 votes" in result.output


def test_declare_while_active_is_phase_error(cli_ledger) -> None:
    """Español: Declarar una elección activa falla con código 1.

    English: Declaring an active election fails with code 1.
    """
    cli_ledger.active(candidates=CANDIDATES)

    result = runner.invoke(cli.app, ["declare", "1"])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert cli_ledger.write_calls == []


def test_watch_stops_after_max_updates(cli_ledger) -> None:
    """Español: ``watch`` imprime snapshots y libera la suscripción.

    English: ``watch`` prints snapshots and releases the subscription.
    """
    cli_ledger.active(candidates=CANDIDATES, votes=[0, 1])

    result = runner.invoke(cli.app, ["watch", "1", "--max-updates", "1"])

    assert result.exit_code == 0, result.output
    assert "#1 General [active]" in result.output
    assert cli_ledger.callbacks == []
