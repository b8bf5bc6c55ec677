"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/ledger/base.py`.
Superficie de capacidades del ledger consumida por el núcleo. Las
implementaciones devuelven tipos nativos ya normalizados.

Componentes detectados:
  - LedgerClient
  - EventCallback

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/ledger/base.py`.
Ledger capability surface consumed by the core. Implementations return
already normalized native types.

Detected components:
  - LedgerClient
  - EventCallback

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Base Module
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

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Union

from ..core.models import Candidate, Election, LedgerEvent, TransactionReceipt
from ..core.subscription import Subscription

EventCallback = Callable[[LedgerEvent], Union[None, Awaitable[Any]]]


class LedgerClient(ABC):
    """Objeto de capacidades sobre el contrato electoral.

    Las implementaciones normalizan enteros anchos y timestamps antes de
    devolverlos y clasifican los errores de transporte y de contrato en la
    taxonomía de ``escrutinio.core.errors``.

    English:
        Capability object over the election contract. Implementations
        normalize wide integers and timestamps before returning them and
        classify transport and contract failures into the
        ``escrutinio.core.errors`` taxonomy.
    """

    @abstractmethod
    async def election_count(self) -> int:
        """Total de elecciones creadas. / Total elections ever created."""

    @abstractmethod
    async def election(self, election_id: int) -> Election:
        """Metadatos de una elección (ids base 1). / Election metadata (1-based ids)."""

    @abstractmethod
    async def get_candidates(self, election_id: int) -> List[Candidate]:
        """Candidatos en el orden del ledger. / Candidates in ledger order."""

    @abstractmethod
    async def get_current_results(self, election_id: int) -> List[int]:
        """Conteos alineados al orden de candidatos. / Counts aligned to candidate order."""

    @abstractmethod
    async def is_result_declared(self, election_id: int) -> bool:
        ...

    @abstractmethod
    async def add_election(self, name: str, start_time: datetime, end_time: datetime) -> TransactionReceipt:
        ...

    @abstractmethod
    async def add_candidate(self, election_id: int, name: str, party: str, area: str) -> TransactionReceipt:
        ...

    @abstractmethod
    async def vote(self, election_id: int, candidate_id: int) -> TransactionReceipt:
        ...

    @abstractmethod
    async def declare_results(self, election_id: int) -> TransactionReceipt:
        """Dispara la declaración (``getResults`` en el contrato).

        English: Trigger the declaration (contract ``getResults``).
        """

    @abstractmethod
    def subscribe(self, callback: EventCallback) -> Subscription:
        """Registra un callback para eventos ``Voted`` y ``ResultDeclared``.

        English: Register a callback for ``Voted`` and ``ResultDeclared`` events.
        """
