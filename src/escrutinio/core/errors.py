"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/errors.py`.
Taxonomía de errores del cliente de escrutinio. Todas las fallas que
cruzan el límite del núcleo heredan de EscrutinioError.

Componentes detectados:
  - EscrutinioError
  - LedgerUnavailable
  - ConfirmationTimeout
  - NotFound
  - ValidationError
  - PhaseError
  - LedgerRejected
  - AlreadyVoted
  - InvariantViolation
  - is_already_voted

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/core/errors.py`.
Error taxonomy for the tallying client. Every failure crossing the core
boundary derives from EscrutinioError.

Detected components:
  - EscrutinioError
  - LedgerUnavailable
  - ConfirmationTimeout
  - NotFound
  - ValidationError
  - PhaseError
  - LedgerRejected
  - AlreadyVoted
  - InvariantViolation
  - is_already_voted

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Errors Module
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

import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Phase

_ALREADY_VOTED_PATTERN = re.compile(r"already\s+voted", re.IGNORECASE)


class EscrutinioError(Exception):
    """Error base de escrutinio.

    English: Base escrutinio error.
    """


class LedgerUnavailable(EscrutinioError):
    """El ledger no responde o el transporte falló.

    English: The ledger is unreachable or the transport failed.
    """


class ConfirmationTimeout(LedgerUnavailable):
    """No llegó a tiempo el recibo o el evento de confirmación.

    English: A receipt or confirmation event did not arrive in time.
    """


class NotFound(EscrutinioError):
    """La elección o el candidato referido no existe en el ledger.

    English: The referenced election or candidate does not exist on the ledger.
    """


class ValidationError(EscrutinioError):
    """Entrada del usuario inválida, detectada antes de tocar la red.

    English: Invalid caller input, detected before any network call.
    """


class PhaseError(EscrutinioError):
    """Acción intentada fuera de su fase válida.

    English: Action attempted outside its valid lifecycle phase.
    """

    def __init__(self, message: str, *, phase: "Phase") -> None:
        super().__init__(message)
        self.phase = phase


class LedgerRejected(EscrutinioError):
    """El contrato revirtió la transacción.

    English: The contract reverted the transaction.
    """

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class AlreadyVoted(LedgerRejected):
    """El ledger rechazó un segundo voto de la misma cuenta.

    English: The ledger rejected a second vote from the same account.
    """

    user_message = "You have already voted. Please wait for the results."

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(self.user_message, reason=reason)


class InvariantViolation(EscrutinioError):
    """Falla de consistencia interna; el ciclo de refresco se descarta.

    English: Internal consistency failure; the refresh cycle is discarded.
    """


def is_already_voted(reason: Optional[str]) -> bool:
    """Indica si un motivo de reversión corresponde a un voto repetido.

    English: Tell whether a revert reason means a repeated vote.
    """
    return bool(reason and _ALREADY_VOTED_PATTERN.search(reason))
