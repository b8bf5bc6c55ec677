"""Pruebas del adaptador de presentación.

Tests for the presentation adapter.
"""

import asyncio

from escrutinio.core.errors import LedgerUnavailable
from escrutinio.core.models import Phase, VotedEvent
from escrutinio.views import ElectionView, ViewStatus

CANDIDATES = [("Alice", "Azul", "Norte"), ("Bob", "Rojo", "Sur")]


def test_open_renders_loading_then_ready(ledger, clock, coordinator) -> None:
    """Español: Abrir muestra carga y luego resultados listos.

    English: Opening shows loading and then ready results.
    """
    election_id = ledger.active(candidates=CANDIDATES, votes=[1, 3])
    renders = []
    view = ElectionView(coordinator, election_id, clock=clock, on_change=renders.append, follow_ledger=False)

    render = asyncio.run(view.open())
    view.close()

    assert [r.status for r in renders] == [ViewStatus.LOADING, ViewStatus.READY]
    assert render.status is ViewStatus.READY
    assert render.phase is Phase.ACTIVE
    assert render.total_votes == 4
    assert [r.candidate.name for r in render.results] == ["Bob", "Alice"]
    assert render.winner is None


def test_error_without_snapshot(ledger, clock, coordinator) -> None:
    """Español: Un fallo inicial deja la vista en error sin datos.

    English: An initial failure leaves the view in error with no data.
    """
    election_id = ledger.active(candidates=CANDIDATES)
    ledger.fail_next("election_count", LedgerUnavailable("node down"))
    view = ElectionView(coordinator, election_id, clock=clock, follow_ledger=False)

    render = asyncio.run(view.open())

    assert render.status is ViewStatus.ERROR
    assert render.snapshot is None
    assert isinstance(render.error, LedgerUnavailable)


def test_error_keeps_last_snapshot(ledger, clock, coordinator) -> None:
    """Español: Un fallo posterior conserva el último snapshot.

    English: A later failure keeps the last snapshot.
    """
    election_id = ledger.active(candidates=CANDIDATES, votes=[2, 0])
    view = ElectionView(coordinator, election_id, clock=clock, follow_ledger=False)
    asyncio.run(view.open())
    ledger.fail_next("election_count", LedgerUnavailable("node down"))

    render = asyncio.run(view.refresh())

    assert render.status is ViewStatus.ERROR
    assert render.snapshot.fetched_at_version == 1
    assert render.results[0].candidate.vote_count == 2


def test_ledger_events_update_open_view(ledger, clock, coordinator) -> None:
    """Español: Los eventos del ledger re-renderizan la vista abierta.

    English: Ledger events re-render the open view.
    """
    election_id = ledger.active(candidates=CANDIDATES)
    renders = []

    async def scenario():
        async with ElectionView(coordinator, election_id, clock=clock, on_change=renders.append) as view:
            ledger.set_votes(election_id, [0, 1])
            await ledger.emit(VotedEvent(election_id=election_id))
            await coordinator.wait_idle()
            assert view.is_open
        return view

    view = asyncio.run(scenario())

    assert renders[-1].status is ViewStatus.READY
    assert renders[-1].results[0].candidate.name == "Bob"
    assert renders[-1].snapshot.fetched_at_version == 2
    assert view.is_open is False
    assert ledger.callbacks == []


def test_declared_view_exposes_winner(ledger, clock, coordinator) -> None:
    """Español: Con resultados declarados la vista expone al ganador.

    English: With declared results the view exposes the winner.
    """
    election_id = ledger.ended(candidates=CANDIDATES, votes=[7, 7], declared=True)
    view = ElectionView(coordinator, election_id, clock=clock, follow_ledger=False)

    render = asyncio.run(view.open())

    assert render.phase is Phase.DECLARED
    assert render.winner.candidate.name == "Alice"
    assert render.results[1].is_winner is False
