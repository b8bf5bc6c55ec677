"""Pruebas de resolución de fase.

Tests for phase resolution.
"""

from datetime import datetime, timedelta, timezone

import pytest

from escrutinio.core.models import Election, Phase
from escrutinio.core.phase import elections_in_phase, resolve_phase

START = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)
END = datetime(2030, 1, 1, 18, 0, tzinfo=timezone.utc)


def _election(declared: bool = False, election_id: int = 1) -> Election:
    return Election(election_id, "General", START, END, declared)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (START - timedelta(seconds=1), Phase.UPCOMING),
        (START, Phase.ACTIVE),
        (END - timedelta(seconds=1), Phase.ACTIVE),
        (END, Phase.ENDED_UNDECLARED),
        (END + timedelta(days=30), Phase.ENDED_UNDECLARED),
    ],
)
def test_resolve_phase_follows_time_bounds(now, expected) -> None:
    """Español: La fase es una función escalón sobre [inicio, fin).

    English: Phase is a step function over [start, end).
    """
    assert resolve_phase(now, _election()) is expected


@pytest.mark.parametrize("offset_hours", [-48, 0, 5, 48])
def test_declared_takes_priority_over_clock(offset_hours) -> None:
    """Español: Una elección declarada es DECLARED a cualquier hora.

    English: A declared election is DECLARED at any time.
    """
    now = START + timedelta(hours=offset_hours)
    assert resolve_phase(now, _election(declared=True)) is Phase.DECLARED


def test_elections_in_phase_keeps_ledger_order() -> None:
    """Español: El filtro conserva el orden del ledger.

    English: The filter keeps ledger order.
    """
    later = Election(2, "Later", START + timedelta(days=1), END + timedelta(days=1))
    declared = _election(declared=True, election_id=3)
    upcoming_again = Election(4, "Later too", START + timedelta(days=2), END + timedelta(days=2))
    now = START - timedelta(hours=1)

    result = elections_in_phase(now, [_election(), later, declared, upcoming_again], Phase.UPCOMING)

    assert [election.id for election in result] == [1, 2, 4]
