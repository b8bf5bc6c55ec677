"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/phase.py`.
Resolución de la fase de una elección a partir del reloj y del indicador
de declaración.

Componentes detectados:
  - utc_now
  - resolve_phase
  - elections_in_phase

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/core/phase.py`.
Election phase resolution from the clock and the declaration flag.

Detected components:
  - utc_now
  - resolve_phase
  - elections_in_phase

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Phase Module
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

from datetime import datetime, timezone
from typing import Iterable, List

from .models import Election, Phase


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_phase(now: datetime, election: Election) -> Phase:
    """Calcula la fase a partir del reloj y del estado de declaración.

    La declaración es autoritativa y se evalúa primero; en otro caso la fase
    es una función escalón de ``now`` respecto a ``[start_time, end_time)``.
    No debe cachearse aparte del snapshot del que proviene: el reloj avanza
    aunque el ledger no cambie.

    English:
        Compute the phase from the clock and the declaration flag. Declaration
        is authoritative and checked first; otherwise the phase is a step
        function of ``now`` over ``[start_time, end_time)``. Never cache it
        apart from the snapshot it came from: the clock moves even when the
        ledger does not.
    """
    if election.result_declared:
        return Phase.DECLARED
    if now < election.start_time:
        return Phase.UPCOMING
    if now < election.end_time:
        return Phase.ACTIVE
    return Phase.ENDED_UNDECLARED


def elections_in_phase(now: datetime, elections: Iterable[Election], phase: Phase) -> List[Election]:
    """Filtra elecciones por fase conservando el orden del ledger.

    English: Filter elections by phase, keeping ledger order.
    """
    return [election for election in elections if resolve_phase(now, election) is phase]
