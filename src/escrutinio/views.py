"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/views.py`.
Adaptador de presentación para una elección. Convierte snapshots del
coordinador en estados de vista (cargando, listo, error) con resultados
ordenados.

Componentes detectados:
  - ViewStatus
  - ElectionRender
  - ElectionView

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/views.py`.
Presentation adapter for one election. Turns coordinator snapshots into
view states (loading, ready, error) with ranked results.

Detected components:
  - ViewStatus
  - ElectionRender
  - ElectionView

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Views Module
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

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import structlog

from .core.errors import EscrutinioError
from .core.models import ElectionSnapshot, Phase, RankedResult, RefreshReason
from .core.phase import resolve_phase, utc_now
from .core.results import aggregate, total_votes, winner
from .core.subscription import Subscription
from .core.sync import SyncCoordinator

logger = structlog.get_logger(__name__)


class ViewStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ElectionRender:
    """Estado listo para mostrar de una elección.

    ``phase`` y ``results`` se derivan de ``snapshot`` en cada render; un
    error no borra el último snapshot publicado.

    English:
        Display-ready state of one election. ``phase`` and ``results`` are
        derived from ``snapshot`` on every render; an error does not clear the
        last published snapshot.
    """

    status: ViewStatus
    snapshot: Optional[ElectionSnapshot] = None
    phase: Optional[Phase] = None
    results: List[RankedResult] = field(default_factory=list)
    total_votes: int = 0
    error: Optional[EscrutinioError] = None

    @property
    def winner(self) -> Optional[RankedResult]:
        if self.phase is not Phase.DECLARED:
            return None
        return winner(self.results)


RenderListener = Callable[[ElectionRender], None]


class ElectionView:
    """Pantalla de una elección: escucha al coordinador y al ledger.

    Es dueña de su listener en el coordinador y de la suscripción a eventos
    del ledger, y las libera en ``close``. Se puede usar como context manager
    asíncrono.

    Example:
        >>> async with ElectionView(coordinator, 1) as view:
        ...     render = view.render()

    English:
        One election screen: listens to the coordinator and the ledger. Owns
        its coordinator listener and the ledger event subscription and
        releases both in ``close``. Usable as an async context manager.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        election_id: int,
        *,
        clock: Callable = utc_now,
        on_change: Optional[RenderListener] = None,
        follow_ledger: bool = True,
    ) -> None:
        self._coordinator = coordinator
        self._election_id = election_id
        self._clock = clock
        self._on_change = on_change
        self._follow_ledger = follow_ledger
        self._subscription: Optional[Subscription] = None
        self._loading = False
        self._error: Optional[EscrutinioError] = None

    @property
    def election_id(self) -> int:
        return self._election_id

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def open(self) -> ElectionRender:
        if self.is_open:
            return self.render()
        handles = [self._coordinator.subscribe(self._on_snapshot, self._election_id)]
        if self._follow_ledger:
            handles.append(self._coordinator.subscribe_to_ledger_events())
        self._subscription = Subscription.combine(handles)
        logger.debug("view_opened", election_id=self._election_id)
        return await self.refresh()

    async def refresh(self) -> ElectionRender:
        """Pide un refresco explícito y devuelve el render resultante.

        Los errores quedan en el render (estado ``ERROR``) en lugar de
        propagarse.

        English:
            Request an explicit refresh and return the resulting render.
            Errors are kept in the render (``ERROR`` status) instead of being
            raised.
        """
        self._loading = True
        self._changed()
        try:
            await self._coordinator.request_refresh(self._election_id, RefreshReason.USER_TRIGGERED)
        except EscrutinioError as exc:
            self._error = exc
            logger.warning("view_refresh_failed", election_id=self._election_id, error=str(exc))
        else:
            self._error = None
        finally:
            self._loading = False
        render = self.render()
        self._changed(render)
        return render

    def render(self) -> ElectionRender:
        snapshot = self._coordinator.snapshot(self._election_id)
        error = self._error or self._coordinator.last_error(self._election_id)
        if snapshot is None:
            status = ViewStatus.ERROR if error is not None and not self._loading else ViewStatus.LOADING
            return ElectionRender(status=status, error=error)
        if self._loading:
            status = ViewStatus.LOADING
        elif error is not None:
            status = ViewStatus.ERROR
        else:
            status = ViewStatus.READY
        return ElectionRender(
            status=status,
            snapshot=snapshot,
            phase=resolve_phase(self._clock(), snapshot.election),
            results=aggregate(snapshot),
            total_votes=total_votes(snapshot),
            error=error,
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.debug("view_closed", election_id=self._election_id)

    async def __aenter__(self) -> "ElectionView":
        await self.open()
        return self

    async def __aexit__(self, *_exc_info) -> None:
        self.close()

    def _on_snapshot(self, _snapshot: ElectionSnapshot) -> None:
        self._error = None
        if not self._loading:
            self._changed()

    def _changed(self, render: Optional[ElectionRender] = None) -> None:
        if self._on_change is None:
            return
        self._on_change(render or self.render())
