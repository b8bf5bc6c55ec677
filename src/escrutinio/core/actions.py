"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/actions.py`.
Envío de acciones que cambian el estado del ledger. Las entradas se validan
con esquemas Pydantic y la fase se comprueba contra un snapshot recién leído
antes de cualquier escritura.

Componentes detectados:
  - CandidateInput
  - ElectionInput
  - ActionGateway

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Ningún error de validación o de fase llega a escribir en el ledger.

======================== ENGLISH ========================
File: `src/escrutinio/core/actions.py`.
Submission of ledger state-changing actions. Input is validated with
Pydantic schemas and the phase is checked against a freshly read snapshot
before any write.

Detected components:
  - CandidateInput
  - ElectionInput
  - ActionGateway

Notes:
- Keep this header in sync with structural changes in the file.
- No validation or phase error ever reaches a ledger write.
"""

# Actions Module
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
#   - Esquemas de entrada / Input schemas
#   - Lógica principal / Core logic

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from ..ledger.base import LedgerClient
from .errors import (
    AlreadyVoted,
    ConfirmationTimeout,
    EscrutinioError,
    LedgerRejected,
    NotFound,
    PhaseError,
    ValidationError,
    is_already_voted,
)
from .models import (
    DeclarationNotice,
    ElectionSnapshot,
    LedgerEvent,
    Phase,
    RefreshReason,
    ResultDeclaredEvent,
    TransactionReceipt,
)
from .phase import resolve_phase, utc_now
from .results import aggregate, winner
from .sync import SyncCoordinator

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _strip_required(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Field cannot be empty")
    return cleaned


class CandidateInput(BaseModel):
    """Datos de un candidato nuevo.

    English: New candidate data.
    """

    name: str
    party: str
    area: str

    @field_validator("name", "party", "area")
    @classmethod
    def strip_text(cls, value: str) -> str:
        """Normaliza texto eliminando espacios y valida no vacío.

        English:
            Normalize text by trimming whitespace and validate non-empty.
        """
        return _strip_required(value)


class ElectionInput(BaseModel):
    """Datos de una elección nueva; las fechas sin zona se toman como UTC.

    English: New election data; naive dates are taken as UTC.
    """

    name: str
    start_time: datetime
    end_time: datetime

    @field_validator("name")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def end_after_start(self) -> "ElectionInput":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


def _validated(schema: Type[SchemaT], **fields: Any) -> SchemaT:
    try:
        return schema.model_validate(fields)
    except SchemaError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or schema.__name__}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(details) from exc


class ActionGateway:
    """Valida precondiciones y envía acciones al ledger.

    Los errores de validación y de fase se detectan antes de cualquier
    llamada al ledger. Tras una escritura exitosa se pide un refresco al
    coordinador; un fallo en ese refresco queda registrado en el coordinador
    y no invalida la acción ya confirmada.

    English:
        Check preconditions and submit actions to the ledger. Validation and
        phase errors are raised before any ledger call. After a successful
        write the coordinator is asked to refresh; a failure in that refresh
        is recorded by the coordinator and does not undo the confirmed action.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        coordinator: SyncCoordinator,
        *,
        clock: Clock = utc_now,
        declaration_timeout_seconds: float = 30.0,
    ) -> None:
        self._ledger = ledger
        self._coordinator = coordinator
        self._clock = clock
        self._declaration_timeout = declaration_timeout_seconds

    async def create_election(self, name: str, start_time: datetime, end_time: datetime) -> TransactionReceipt:
        election = _validated(ElectionInput, name=name, start_time=start_time, end_time=end_time)
        now = self._clock()
        if election.start_time < now or election.end_time < now:
            raise ValidationError("Election times cannot be in the past.")

        receipt = await self._ledger.add_election(election.name, election.start_time, election.end_time)
        logger.info("election_created", name=election.name, tx_hash=receipt.tx_hash)
        try:
            await self._coordinator.refresh_all(RefreshReason.USER_TRIGGERED)
        except EscrutinioError as exc:
            logger.warning("post_action_refresh_failed", action="create_election", error=str(exc))
        return receipt

    async def add_candidate(self, election_id: int, name: str, party: str, area: str) -> TransactionReceipt:
        candidate = _validated(CandidateInput, name=name, party=party, area=area)
        await self._checked_snapshot(election_id, Phase.UPCOMING, "add a candidate to")

        receipt = await self._ledger.add_candidate(election_id, candidate.name, candidate.party, candidate.area)
        logger.info("candidate_added", election_id=election_id, name=candidate.name, tx_hash=receipt.tx_hash)
        await self._resync(election_id, "add_candidate")
        return receipt

    async def cast_vote(self, election_id: int, candidate_id: int) -> TransactionReceipt:
        """Emite un voto; un voto repetido se reporta como ``AlreadyVoted``.

        No es seguro reintentar a ciegas tras ``AlreadyVoted`` o un timeout
        sin volver a comprobar la fase.

        English:
            Cast a vote; a repeated vote is reported as ``AlreadyVoted``. Do
            not retry blindly after ``AlreadyVoted`` or a timeout without
            re-checking the phase.
        """
        snapshot = await self._checked_snapshot(election_id, Phase.ACTIVE, "vote in")
        if snapshot.candidate(candidate_id) is None:
            # Candidate additions emit no event; a coalesced read may predate one.
            snapshot = await self._coordinator.request_refresh(election_id, RefreshReason.USER_TRIGGERED)
            self._require_phase(snapshot, Phase.ACTIVE, "vote in")
        if snapshot.candidate(candidate_id) is None:
            raise NotFound(f"Candidate {candidate_id} does not exist in election {election_id}.")

        try:
            receipt = await self._ledger.vote(election_id, candidate_id)
        except AlreadyVoted:
            logger.info("vote_rejected_already_voted", election_id=election_id)
            raise
        except LedgerRejected as exc:
            if is_already_voted(exc.reason) or is_already_voted(str(exc)):
                logger.info("vote_rejected_already_voted", election_id=election_id)
                raise AlreadyVoted(exc.reason or str(exc)) from exc
            raise
        logger.info("vote_cast", election_id=election_id, candidate_id=candidate_id, tx_hash=receipt.tx_hash)
        await self._resync(election_id, "cast_vote")
        return receipt

    async def declare_results(self, election_id: int) -> DeclarationNotice:
        """Declara resultados y espera la confirmación del ledger.

        Se suscribe a ``ResultDeclared`` antes de enviar, espera el recibo y
        luego el evento. Si el evento no llega a tiempo se consulta
        ``isResultDeclared`` en lugar de suponer que la escritura funcionó.

        Raises:
            PhaseError: Si la fase no es exactamente ``ENDED_UNDECLARED``.
            ConfirmationTimeout: Si el ledger no confirma la declaración.

        English:
            Declare results and wait for ledger confirmation. Subscribes to
            ``ResultDeclared`` before submitting, waits for the receipt and
            then for the event. If the event does not arrive in time,
            ``isResultDeclared`` is checked instead of assuming the write
            succeeded.
        """
        snapshot = await self._checked_snapshot(election_id, Phase.ENDED_UNDECLARED, "declare results for")

        declared: asyncio.Future = asyncio.get_running_loop().create_future()

        def _on_event(event: LedgerEvent) -> None:
            if (
                isinstance(event, ResultDeclaredEvent)
                and event.election_id == election_id
                and not declared.done()
            ):
                declared.set_result(event)

        event: Optional[ResultDeclaredEvent] = None
        with self._ledger.subscribe(_on_event):
            receipt = await self._ledger.declare_results(election_id)
            logger.info("declaration_submitted", election_id=election_id, tx_hash=receipt.tx_hash)
            try:
                event = await asyncio.wait_for(declared, timeout=self._declaration_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "declaration_event_timeout",
                    election_id=election_id,
                    timeout_seconds=self._declaration_timeout,
                )
                if not await self._ledger.is_result_declared(election_id):
                    raise ConfirmationTimeout(
                        f"Ledger did not confirm the declaration of election {election_id}."
                    ) from None

        refreshed = await self._resync(election_id, "declare_results")
        notice = self._build_notice(election_id, event, refreshed or snapshot)
        logger.info(
            "declaration_confirmed",
            election_id=election_id,
            winner=notice.winner_name,
            max_votes=notice.max_votes,
        )
        return notice

    async def _checked_snapshot(self, election_id: int, expected: Phase, action: str) -> ElectionSnapshot:
        """Comprueba la fase con el snapshot en caché y luego con uno recién leído.

        La caché sólo sirve para rechazar sin tocar la red; ninguna escritura
        se autoriza con ella.

        English:
            Check the phase against the cached snapshot, then against a freshly
            read one. The cache only rejects without touching the network; no
            write is ever authorized from it.
        """
        cached = self._coordinator.snapshot(election_id)
        if cached is not None:
            self._require_phase(cached, expected, action)
        snapshot = await self._coordinator.request_refresh(election_id, RefreshReason.USER_TRIGGERED)
        self._require_phase(snapshot, expected, action)
        return snapshot

    def _require_phase(self, snapshot: ElectionSnapshot, expected: Phase, action: str) -> None:
        phase = resolve_phase(self._clock(), snapshot.election)
        if phase is not expected:
            raise PhaseError(
                f"Cannot {action} election {snapshot.election_id} while it is {phase.value}.",
                phase=phase,
            )

    async def _resync(self, election_id: int, action: str) -> Optional[ElectionSnapshot]:
        try:
            return await self._coordinator.request_refresh(election_id, RefreshReason.USER_TRIGGERED)
        except EscrutinioError as exc:
            logger.warning("post_action_refresh_failed", action=action, election_id=election_id, error=str(exc))
            return None

    @staticmethod
    def _build_notice(
        election_id: int, event: Optional[ResultDeclaredEvent], snapshot: ElectionSnapshot
    ) -> DeclarationNotice:
        if event is not None and event.winner is not None:
            return DeclarationNotice(election_id=election_id, winner_name=event.winner.name, max_votes=event.max_votes)
        top = winner(aggregate(snapshot))
        if top is None:
            return DeclarationNotice(election_id=election_id, winner_name=None, max_votes=0)
        return DeclarationNotice(
            election_id=election_id,
            winner_name=top.candidate.name,
            max_votes=top.candidate.vote_count,
        )
