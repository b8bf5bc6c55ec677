"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/models.py`.
Modelos de datos del read model electoral: elecciones, candidatos,
snapshots, eventos y recibos.

Componentes detectados:
  - Phase
  - RefreshReason
  - Election
  - Candidate
  - ElectionSnapshot
  - RankedResult
  - TransactionReceipt
  - VotedEvent
  - ResultDeclaredEvent
  - DeclarationNotice

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/core/models.py`.
Data models for the election read model: elections, candidates,
snapshots, events and receipts.

Detected components:
  - Phase
  - RefreshReason
  - Election
  - Candidate
  - ElectionSnapshot
  - RankedResult
  - TransactionReceipt
  - VotedEvent
  - ResultDeclaredEvent
  - DeclarationNotice

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Models Module
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

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union


class Phase(str, Enum):
    """Fase derivada del ciclo de vida de una elección.

    English: Derived lifecycle phase of an election.
    """

    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED_UNDECLARED = "ended_undeclared"
    DECLARED = "declared"


class RefreshReason(str, Enum):
    """Origen de una solicitud de refresco.

    English: Origin of a refresh request.
    """

    USER_TRIGGERED = "user_triggered"
    EVENT_TRIGGERED = "event_triggered"


@dataclass(frozen=True)
class Election:
    """Elección tal como la reporta el ledger.

    Attributes:
        id (int): Identificador asignado por el ledger (base 1).
        name (str): Nombre de la elección.
        start_time (datetime): Inicio de la votación (UTC).
        end_time (datetime): Fin de la votación (UTC).
        result_declared (bool): Resultado declarado; sólo pasa a True una vez.

    English:
        Election as reported by the ledger.

    Attributes:
        id (int): Ledger-assigned identifier (1-based).
        name (str): Election name.
        start_time (datetime): Voting start (UTC).
        end_time (datetime): Voting end (UTC).
        result_declared (bool): Result declared; flips to True exactly once.
    """

    id: int
    name: str
    start_time: datetime
    end_time: datetime
    result_declared: bool = False


@dataclass(frozen=True)
class Candidate:
    """Candidato de una elección con su conteo de votos.

    English: Election candidate with its vote count.
    """

    id: int
    name: str
    party: str
    area: str
    vote_count: int = 0


@dataclass(frozen=True)
class ElectionSnapshot:
    """Lectura consistente y versionada de una elección.

    Todos los campos provienen del mismo ciclo de refresco.

    English:
        Consistent, versioned read of one election. Every field comes from
        the same refresh cycle.
    """

    election: Election
    candidates: Tuple[Candidate, ...]
    fetched_at_version: int

    @property
    def election_id(self) -> int:
        return self.election.id

    def candidate(self, candidate_id: int) -> Optional[Candidate]:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None


@dataclass(frozen=True)
class RankedResult:
    """Posición de un candidato en el escrutinio.

    English: A candidate's position in the tally.
    """

    candidate: Candidate
    rank: int
    is_winner: bool
    vote_share: float = 0.0


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    status: int = 1


@dataclass(frozen=True)
class VotedEvent:
    """Evento ``Voted`` del contrato.

    ``election_id`` es None cuando no pudo resolverse desde el log.

    English:
        Contract ``Voted`` event. ``election_id`` is None when it could not
        be resolved from the log.
    """

    election_id: Optional[int]
    voter: str = ""


@dataclass(frozen=True)
class ResultDeclaredEvent:
    """Evento ``ResultDeclared`` del contrato.

    English: Contract ``ResultDeclared`` event.
    """

    election_id: Optional[int]
    max_votes: int = 0
    winner: Optional[Candidate] = None


LedgerEvent = Union[VotedEvent, ResultDeclaredEvent]


@dataclass(frozen=True)
class DeclarationNotice:
    """Confirmación de una declaración de resultados.

    English: Confirmation of a result declaration.
    """

    election_id: int
    winner_name: Optional[str]
    max_votes: int
