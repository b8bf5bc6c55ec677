"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/sync.py`.
Coordinación de refrescos y publicación de snapshots. Las lecturas
concurrentes de una elección se fusionan y cada resultado lleva una versión
monótona; los resultados obsoletos se descartan.

Componentes detectados:
  - SyncCoordinator

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/core/sync.py`.
Refresh coordination and snapshot publication. Concurrent reads of one
election are coalesced and each result carries a monotonic version; stale
results are discarded.

Detected components:
  - SyncCoordinator

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Sync Module
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
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

import structlog

from ..ledger.base import LedgerClient
from ..logging import bind_context
from .errors import EscrutinioError, InvariantViolation
from .models import Election, ElectionSnapshot, LedgerEvent, RefreshReason
from .repository import ElectionRepository
from .subscription import Subscription

logger = structlog.get_logger(__name__)

SnapshotListener = Callable[[ElectionSnapshot], None]
ElectionsListener = Callable[[Sequence[Election]], None]


class SyncCoordinator:
    """Autoridad única sobre el snapshot vigente de cada elección.

    Mantiene por elección un contador de versión monótono y el último
    snapshot publicado. Las solicitudes concurrentes para la misma elección
    se fusionan con la lectura en curso; un resultado con versión menor que
    la publicada se descarta. Un fallo nunca borra el snapshot publicado y
    sólo se propaga a quien espera ese refresco.

    Example:
        >>> coordinator = SyncCoordinator(ElectionRepository(ledger), ledger)
        >>> subscription = coordinator.subscribe_to_ledger_events()
        >>> snapshot = await coordinator.request_refresh(1)
        >>> subscription.unsubscribe()

    English:
        Single authority over the current snapshot of every election. Keeps a
        monotonic version counter and the last published snapshot per
        election. Concurrent requests for the same election are coalesced into
        the in-flight read; a result older than the published version is
        discarded. A failure never clears the published snapshot and is only
        raised to whoever awaits that refresh.
    """

    def __init__(self, repository: ElectionRepository, ledger: Optional[LedgerClient] = None) -> None:
        self._repository = repository
        self._ledger = ledger
        self._versions: Dict[int, int] = {}
        self._published: Dict[int, ElectionSnapshot] = {}
        self._elections: Tuple[Election, ...] = ()
        self._errors: Dict[int, EscrutinioError] = {}
        self._list_error: Optional[EscrutinioError] = None
        self._inflight: Dict[int, asyncio.Task] = {}
        self._list_inflight: Optional[asyncio.Task] = None
        self._listeners: List[Tuple[Optional[int], SnapshotListener]] = []
        self._election_listeners: List[ElectionsListener] = []
        self._event_tasks: Set[asyncio.Task] = set()
        self._ledger_subscriptions: List[Subscription] = []

    # Lectura / Reads

    def snapshot(self, election_id: int) -> Optional[ElectionSnapshot]:
        return self._published.get(election_id)

    def elections(self) -> List[Election]:
        return list(self._elections)

    def published_version(self, election_id: int) -> int:
        current = self._published.get(election_id)
        return current.fetched_at_version if current else 0

    def last_error(self, election_id: Optional[int] = None) -> Optional[EscrutinioError]:
        """Último error de refresco (por elección, o del listado si no hay id).

        English: Last refresh error (per election, or for the list when no id).
        """
        if election_id is None:
            return self._list_error
        return self._errors.get(election_id)

    def is_refreshing(self, election_id: int) -> bool:
        return election_id in self._inflight

    # Refrescos / Refreshes

    async def request_refresh(
        self, election_id: int, reason: RefreshReason = RefreshReason.USER_TRIGGERED
    ) -> ElectionSnapshot:
        """Solicita un refresco de una elección.

        Si ya hay una lectura en curso para esa elección, la solicitud se
        fusiona con ella y no se hace otra llamada de red. Si no, se asigna la
        siguiente versión antes de iniciar la lectura.

        Returns:
            ElectionSnapshot: Snapshot publicado tras completar la lectura
            (puede ser uno más nuevo si la lectura resultó obsoleta).

        Raises:
            EscrutinioError: El error de la lectura, sólo a quien espera.

        English:
            Request a refresh of one election. If a read is already in flight
            for it, the request is coalesced and no extra network call is
            made. Otherwise the next version is assigned before the read
            starts.
        """
        task = self._inflight.get(election_id)
        if task is None:
            version = self._next_version(election_id)
            task = asyncio.ensure_future(self._fetch_and_publish(election_id, version, reason))
            self._inflight[election_id] = task
            task.add_done_callback(lambda done, key=election_id: self._clear_inflight(key, done))
        else:
            logger.debug("refresh_coalesced", election_id=election_id, reason=reason.value)
        return await asyncio.shield(task)

    async def refresh_all(self, reason: RefreshReason = RefreshReason.USER_TRIGGERED) -> List[Election]:
        """Refresca el listado completo y el snapshot de cada elección.

        Sólo hay un refresco de listado en curso a la vez. Sus lecturas por
        elección llevan versión propia y pueden competir con
        ``request_refresh``; la regla de versión decide cuál se publica.

        English:
            Refresh the full list and every election's snapshot. Only one list
            refresh runs at a time. Its per-election reads carry their own
            versions and may race with ``request_refresh``; the version rule
            decides which one is published.
        """
        task = self._list_inflight
        if task is None:
            task = asyncio.ensure_future(self._refresh_all(reason))
            self._list_inflight = task
            task.add_done_callback(self._clear_list_inflight)
        else:
            logger.debug("list_refresh_coalesced", reason=reason.value)
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Espera a que terminen los refrescos disparados por eventos.

        English: Wait until event-triggered refreshes have finished.
        """
        while self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)

    def _next_version(self, election_id: int) -> int:
        version = self._versions.get(election_id, 0) + 1
        self._versions[election_id] = version
        return version

    def _clear_inflight(self, election_id: int, task: asyncio.Task) -> None:
        if self._inflight.get(election_id) is task:
            del self._inflight[election_id]
        _retrieve_exception(task)

    def _clear_list_inflight(self, task: asyncio.Task) -> None:
        if self._list_inflight is task:
            self._list_inflight = None
        _retrieve_exception(task)

    async def _fetch_and_publish(self, election_id: int, version: int, reason: RefreshReason) -> ElectionSnapshot:
        log = bind_context(logger, election_id=election_id, version=version, reason=reason.value)
        log.debug("refresh_started")
        try:
            snapshot = await self._repository.load_snapshot(election_id, version)
            return self._publish(snapshot, log)
        except EscrutinioError as exc:
            self._errors[election_id] = exc
            log.warning("refresh_failed", error=str(exc), error_type=type(exc).__name__)
            raise

    async def _refresh_all(self, reason: RefreshReason) -> List[Election]:
        log = bind_context(logger, reason=reason.value)
        log.debug("list_refresh_started")
        try:
            listed = await self._repository.list_elections()
            self._check_list(listed)
        except EscrutinioError as exc:
            self._list_error = exc
            log.warning("list_refresh_failed", error=str(exc), error_type=type(exc).__name__)
            raise

        versions = {election.id: self._next_version(election.id) for election in listed}
        outcomes = await self._repository.load_all_snapshots(versions)

        failures: List[EscrutinioError] = []
        merged: List[Election] = []
        for election in listed:
            outcome = outcomes[election.id]
            election_log = bind_context(log, election_id=election.id, version=versions[election.id])
            if isinstance(outcome, ElectionSnapshot):
                try:
                    published = self._publish(outcome, election_log)
                except InvariantViolation as exc:
                    self._errors[election.id] = exc
                    election_log.warning("refresh_failed", error=str(exc), error_type=type(exc).__name__)
                    failures.append(exc)
                    merged.append(election)
                    continue
                merged.append(published.election)
            else:
                self._errors[election.id] = outcome
                election_log.warning("refresh_failed", error=str(outcome), error_type=type(outcome).__name__)
                failures.append(outcome)
                merged.append(election)

        self._list_error = failures[0] if failures else None
        self._set_elections(tuple(merged))
        log.info("list_refresh_published", elections=len(merged), failures=len(failures))
        if failures:
            raise failures[0]
        return list(merged)

    # Publicación / Publication

    def _publish(self, snapshot: ElectionSnapshot, log) -> ElectionSnapshot:
        election_id = snapshot.election_id
        current = self._published.get(election_id)
        if current is not None and snapshot.fetched_at_version <= current.fetched_at_version:
            log.info("refresh_discarded_stale", published_version=current.fetched_at_version)
            return current
        if current is not None:
            _check_transition(current, snapshot)

        self._published[election_id] = snapshot
        self._errors.pop(election_id, None)
        log.info("refresh_published", candidates=len(snapshot.candidates))
        self._merge_election(snapshot.election)
        self._notify(snapshot)
        return snapshot

    def _check_list(self, listed: Sequence[Election]) -> None:
        known = {election.id: election for election in self._elections}
        for election in listed:
            previous = known.get(election.id)
            published = self._published.get(election.id)
            was_declared = (previous is not None and previous.result_declared) or (
                published is not None and published.election.result_declared
            )
            if was_declared and not election.result_declared:
                raise InvariantViolation(f"Election {election.id} reported undeclared after declaration.")

    def _merge_election(self, election: Election) -> None:
        elections = list(self._elections)
        for index, existing in enumerate(elections):
            if existing.id == election.id:
                if existing == election:
                    return
                elections[index] = election
                break
        else:
            elections.append(election)
            elections.sort(key=lambda item: item.id)
        self._set_elections(tuple(elections))

    def _set_elections(self, elections: Tuple[Election, ...]) -> None:
        if elections == self._elections:
            return
        self._elections = elections
        for listener in list(self._election_listeners):
            try:
                listener(list(elections))
            except Exception:
                logger.exception("elections_listener_failed")

    def _notify(self, snapshot: ElectionSnapshot) -> None:
        for election_id, listener in list(self._listeners):
            if election_id is not None and election_id != snapshot.election_id:
                continue
            try:
                listener(snapshot)
            except Exception:
                logger.exception("snapshot_listener_failed", election_id=snapshot.election_id)

    # Suscripciones / Subscriptions

    def subscribe(self, listener: SnapshotListener, election_id: Optional[int] = None) -> Subscription:
        """Escucha snapshots publicados (de una elección o de todas).

        English: Listen to published snapshots (one election or all).
        """
        entry = (election_id, listener)
        self._listeners.append(entry)
        return Subscription(lambda: self._listeners.remove(entry))

    def subscribe_elections(self, listener: ElectionsListener) -> Subscription:
        self._election_listeners.append(listener)
        return Subscription(lambda: self._election_listeners.remove(listener))

    def subscribe_to_ledger_events(self) -> Subscription:
        """Se registra en el ledger para ``Voted`` y ``ResultDeclared``.

        Cada evento refresca sólo la elección afectada; si el id no se puede
        resolver, se refresca el listado completo.

        English:
            Register with the ledger for ``Voted`` and ``ResultDeclared``.
            Each event refreshes only the affected election; when the id
            cannot be resolved the full list is refreshed instead.
        """
        if self._ledger is None:
            raise RuntimeError("SyncCoordinator was built without a ledger client.")
        ledger_subscription = self._ledger.subscribe(self._on_ledger_event)
        self._ledger_subscriptions.append(ledger_subscription)

        def _cancel() -> None:
            ledger_subscription.unsubscribe()
            if ledger_subscription in self._ledger_subscriptions:
                self._ledger_subscriptions.remove(ledger_subscription)

        logger.info("ledger_events_subscribed")
        return Subscription(_cancel)

    def _on_ledger_event(self, event: LedgerEvent) -> None:
        event_name = type(event).__name__
        if event.election_id is None:
            logger.info("ledger_event_unresolved", event_type=event_name)
            coro = self._refresh_all_from_event()
        else:
            logger.debug("ledger_event_received", event_type=event_name, election_id=event.election_id)
            coro = self._refresh_from_event(event.election_id)
        task = asyncio.get_running_loop().create_task(coro)
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def _refresh_from_event(self, election_id: int) -> None:
        try:
            await self.request_refresh(election_id, RefreshReason.EVENT_TRIGGERED)
        except EscrutinioError as exc:
            logger.warning("event_refresh_failed", election_id=election_id, error=str(exc))

    async def _refresh_all_from_event(self) -> None:
        try:
            await self.refresh_all(RefreshReason.EVENT_TRIGGERED)
        except EscrutinioError as exc:
            logger.warning("event_list_refresh_failed", error=str(exc))

    async def aclose(self) -> None:
        """Cancela las suscripciones al ledger y espera refrescos pendientes.

        English: Cancel ledger subscriptions and wait for pending refreshes.
        """
        for subscription in list(self._ledger_subscriptions):
            subscription.unsubscribe()
        self._ledger_subscriptions.clear()
        await self.wait_idle()


def _check_transition(previous: ElectionSnapshot, current: ElectionSnapshot) -> None:
    """Valida el latch de declaración y la monotonía de los conteos.

    English: Validate the declaration latch and tally monotonicity.
    """
    election_id = current.election_id
    if previous.election.result_declared and not current.election.result_declared:
        raise InvariantViolation(f"Election {election_id} reported undeclared after declaration.")

    before = {candidate.id: candidate.vote_count for candidate in previous.candidates}
    for candidate in current.candidates:
        if candidate.id not in before:
            continue
        votes_before = before[candidate.id]
        if candidate.vote_count < votes_before:
            raise InvariantViolation(
                f"Election {election_id}: candidate {candidate.id} votes went from "
                f"{votes_before} to {candidate.vote_count}."
            )
        if previous.election.result_declared and candidate.vote_count != votes_before:
            raise InvariantViolation(
                f"Election {election_id}: candidate {candidate.id} votes changed after declaration."
            )


def _retrieve_exception(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
