# Subscription Module
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

"""Manejadores de suscripción cancelables.

English:
    Cancellable subscription handles.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional


class Subscription:
    """Handle explícito para cancelar una suscripción.

    ``unsubscribe`` es idempotente: la función de cancelación se ejecuta una
    sola vez aunque se llame varias veces.

    English:
        Explicit handle to cancel a subscription. ``unsubscribe`` is
        idempotent: the cancel function runs once even if called repeatedly.
    """

    def __init__(self, cancel: Optional[Callable[[], None]] = None) -> None:
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.unsubscribe()

    @classmethod
    def combine(cls, subscriptions: Iterable["Subscription"]) -> "Subscription":
        """Agrupa varias suscripciones bajo un único handle.

        English: Group several subscriptions under a single handle.
        """
        members: List[Subscription] = list(subscriptions)

        def _cancel_all() -> None:
            for member in members:
                member.unsubscribe()

        return cls(_cancel_all)
