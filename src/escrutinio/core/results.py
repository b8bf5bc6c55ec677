# Results Module
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

"""Agregación determinista de resultados.

English:
    Deterministic results aggregation.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .errors import InvariantViolation
from .models import ElectionSnapshot, RankedResult


def total_votes(snapshot: ElectionSnapshot) -> int:
    return sum(candidate.vote_count for candidate in snapshot.candidates)


def aggregate(snapshot: ElectionSnapshot) -> List[RankedResult]:
    """Ordena candidatos por votos y marca al ganador.

    El orden es estable: a igualdad de votos se conserva el orden reportado
    por el ledger, así que el primero en aparecer gana el empate. Sin
    candidatos se devuelve una lista vacía (no hay ganador).

    Args:
        snapshot (ElectionSnapshot): Snapshot consistente de la elección.

    Returns:
        List[RankedResult]: Resultados con rango base 1.

    Raises:
        InvariantViolation: Si algún conteo de votos es negativo.

    English:
        Rank candidates by votes and flag the winner. The sort is stable:
        equal vote counts keep ledger order, so the first occurrence wins the
        tie. No candidates yields an empty list (no winner).
    """
    for candidate in snapshot.candidates:
        if candidate.vote_count < 0:
            raise InvariantViolation(
                f"Negative vote count {candidate.vote_count} for candidate {candidate.id} "
                f"in election {snapshot.election_id}"
            )

    total = total_votes(snapshot)
    ordered = sorted(snapshot.candidates, key=lambda candidate: candidate.vote_count, reverse=True)
    return [
        RankedResult(
            candidate=candidate,
            rank=position,
            is_winner=position == 1,
            vote_share=round(candidate.vote_count * 100.0 / total, 2) if total else 0.0,
        )
        for position, candidate in enumerate(ordered, start=1)
    ]


def winner(results: Sequence[RankedResult]) -> Optional[RankedResult]:
    for result in results:
        if result.is_winner:
            return result
    return None
