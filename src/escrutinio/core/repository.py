"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/repository.py`.
Repositorio de elecciones sobre el ledger. Lee elección, candidatos y
conteos y los combina en un snapshot versionado.

Componentes detectados:
  - ElectionRepository

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/core/repository.py`.
Election repository backed by the ledger. Reads election, candidates and
counts and combines them into a versioned snapshot.

Detected components:
  - ElectionRepository

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Repository Module
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
from typing import Dict, List, Mapping, Tuple, Union

import structlog

from ..ledger.base import LedgerClient
from .errors import EscrutinioError, InvariantViolation, NotFound
from .models import Candidate, Election, ElectionSnapshot

logger = structlog.get_logger(__name__)


class ElectionRepository:
    """Lee elecciones, candidatos y conteos y los empaqueta en snapshots.

    El repositorio no guarda estado autoritativo ni muta el ledger. Cada
    snapshot se arma con una lectura en dos pasos (metadatos, luego
    candidatos y conteos); si cualquiera falla no se produce snapshot parcial.

    English:
        Reads elections, candidates and tallies and packages them into
        snapshots. Holds no authoritative state and never mutates the ledger.
        Each snapshot is a two-step read (metadata, then candidates and
        tallies); if either step fails no partial snapshot is produced.
    """

    def __init__(self, ledger: LedgerClient) -> None:
        self._ledger = ledger

    async def list_elections(self) -> List[Election]:
        """Lista todas las elecciones en orden del ledger (ids 1..N).

        English: List every election in ledger order (ids 1..N).
        """
        count = await self._ledger.election_count()
        if count < 0:
            raise InvariantViolation(f"Ledger reported negative election count {count}")
        elections = await asyncio.gather(*(self._ledger.election(index) for index in range(1, count + 1)))
        logger.debug("elections_listed", count=count)
        return list(elections)

    async def load_snapshot(self, election_id: int, version: int) -> ElectionSnapshot:
        """Lee una elección completa y la etiqueta con ``version``.

        Args:
            election_id (int): Id de la elección (base 1).
            version (int): Versión asignada por el coordinador antes de leer.

        Returns:
            ElectionSnapshot: Snapshot consistente.

        Raises:
            NotFound: Si el id no existe en el ledger.
            LedgerUnavailable: Si el ledger no responde.
            InvariantViolation: Si los conteos no cuadran con los candidatos.

        English:
            Read one election end to end and tag it with ``version``.
        """
        count = await self._ledger.election_count()
        if not 1 <= election_id <= count:
            raise NotFound(f"Election {election_id} does not exist (ledger has {count}).")

        election = await self._ledger.election(election_id)
        candidates, tallies = await asyncio.gather(
            self._ledger.get_candidates(election_id),
            self._ledger.get_current_results(election_id),
        )
        merged = _merge_tallies(election_id, candidates, tallies)
        return ElectionSnapshot(election=election, candidates=merged, fetched_at_version=version)

    async def load_all_snapshots(
        self, versions: Mapping[int, int]
    ) -> Dict[int, Union[ElectionSnapshot, EscrutinioError]]:
        """Lee varios snapshots; los fallos se devuelven por elección.

        English: Read several snapshots; failures are returned per election.
        """
        ids = list(versions)
        outcomes = await asyncio.gather(
            *(self.load_snapshot(election_id, versions[election_id]) for election_id in ids),
            return_exceptions=True,
        )
        results: Dict[int, Union[ElectionSnapshot, EscrutinioError]] = {}
        for election_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, EscrutinioError):
                raise outcome
            results[election_id] = outcome
        return results


def _merge_tallies(election_id: int, candidates: List[Candidate], tallies: List[int]) -> Tuple[Candidate, ...]:
    if len(candidates) != len(tallies):
        raise InvariantViolation(
            f"Election {election_id}: {len(candidates)} candidates but {len(tallies)} tallies."
        )
    merged = []
    for candidate, votes in zip(candidates, tallies):
        if votes < 0:
            raise InvariantViolation(
                f"Election {election_id}: negative tally {votes} for candidate {candidate.id}."
            )
        merged.append(
            Candidate(
                id=candidate.id,
                name=candidate.name,
                party=candidate.party,
                area=candidate.area,
                vote_count=votes,
            )
        )
    return tuple(merged)
