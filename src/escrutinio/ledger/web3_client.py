"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/ledger/web3_client.py`.
Cliente del contrato electoral sobre JSON-RPC (web3). Lecturas con
reintentos tenacity, escrituras firmadas con eth-account y un poller de
logs que entrega eventos a los suscriptores.

Componentes detectados:
  - extract_revert_reason
  - classify_ledger_error
  - resolve_private_key
  - decode_event
  - Web3LedgerClient

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/ledger/web3_client.py`.
Election contract client over JSON-RPC (web3). Reads retried with
tenacity, writes signed with eth-account and a log poller that delivers
events to subscribers.

Detected components:
  - extract_revert_reason
  - classify_ledger_error
  - resolve_private_key
  - decode_event
  - Web3LedgerClient

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Web3 Client Module
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
import inspect
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
import structlog
from eth_account import Account
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from ..core.errors import (
    AlreadyVoted,
    ConfirmationTimeout,
    EscrutinioError,
    InvariantViolation,
    LedgerRejected,
    LedgerUnavailable,
    NotFound,
    ValidationError,
    is_already_voted,
)
from ..core.models import (
    Candidate,
    Election,
    LedgerEvent,
    ResultDeclaredEvent,
    TransactionReceipt,
    VotedEvent,
)
from ..core.subscription import Subscription
from .abi import load_abi
from .base import EventCallback, LedgerClient
from .normalize import (
    candidate_from_raw,
    election_from_raw,
    to_int,
    to_timestamp,
    vote_counts_from_raw,
)

logger = structlog.get_logger(__name__)

PRIVATE_KEY_ENV = "ESCRUTINIO_PRIVATE_KEY"

_REVERT_PATTERN = re.compile(r"revert(?:ed)?\s*:?\s*(.+)$", re.IGNORECASE)
_NOT_FOUND_PATTERN = re.compile(
    r"(does not exist|not found|invalid (election|candidate)|out of (range|bounds))", re.IGNORECASE
)
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
_EVENT_NAMES = ("Voted", "ResultDeclared")


def extract_revert_reason(message: str) -> str:
    """Extrae el motivo de reversión de un mensaje de error del nodo.

    English: Extract the revert reason from a node error message.
    """
    match = _REVERT_PATTERN.search(message.strip())
    if match:
        return match.group(1).strip()
    return message.strip()


def classify_ledger_error(exc: BaseException) -> EscrutinioError:
    """Traduce errores de web3/transporte a la taxonomía de escrutinio.

    Args:
        exc (BaseException): Error crudo del proveedor o del contrato.

    Returns:
        EscrutinioError: Error tipado equivalente.

    English:
        Translate web3/transport errors into the escrutinio taxonomy.
    """
    if isinstance(exc, EscrutinioError):
        return exc
    if isinstance(exc, ContractLogicError):
        raw_message = getattr(exc, "message", None) or str(exc)
        reason = extract_revert_reason(str(raw_message))
        if is_already_voted(reason):
            return AlreadyVoted(reason)
        if _NOT_FOUND_PATTERN.search(reason):
            return NotFound(reason)
        return LedgerRejected(f"Ledger rejected the call: {reason}", reason=reason)
    if isinstance(exc, TimeExhausted):
        return ConfirmationTimeout(f"Timed out waiting for the ledger: {exc}")
    if isinstance(exc, (Web3Exception,) + _TRANSPORT_ERRORS):
        return LedgerUnavailable(f"Ledger unavailable: {exc}")
    return LedgerUnavailable(f"Unexpected ledger failure: {exc!r}")


def resolve_private_key(raw_value: Optional[str] = None) -> Optional[str]:
    """Resuelve la clave privada desde ``ESCRUTINIO_PRIVATE_KEY``.

    El valor que venga de archivos de configuración se ignora y sólo se
    advierte en el log.

    English:
        Resolve the private key from ``ESCRUTINIO_PRIVATE_KEY``. Values coming
        from config files are ignored and only produce a log warning.
    """
    env_key = os.getenv(PRIVATE_KEY_ENV, "").strip()
    if env_key:
        return env_key
    if raw_value and str(raw_value).strip() not in {"", "0x...", "REPLACE_ME"}:
        logger.warning("private_key_in_config_ignored", env_var=PRIVATE_KEY_ENV)
    return None


def decode_event(log: Any) -> Optional[LedgerEvent]:
    """Convierte un log decodificado por web3 en un evento del núcleo.

    Raises:
        InvariantViolation: Si el log no tiene la forma esperada.

    English:
        Convert a web3-decoded log into a core event. Raises
        ``InvariantViolation`` when the log is malformed.
    """
    try:
        name = log["event"]
        args = log["args"]
    except (KeyError, TypeError) as exc:
        raise InvariantViolation(f"Malformed event log {log!r}") from exc
    try:
        election_id: Optional[int] = to_int(args["electionId"])
    except (KeyError, EscrutinioError):
        election_id = None

    if name == "Voted":
        return VotedEvent(election_id=election_id, voter=str(args.get("voter", "")))
    if name == "ResultDeclared":
        winner: Optional[Candidate] = None
        raw_winner = args.get("winner")
        if raw_winner is not None:
            try:
                winner = candidate_from_raw(raw_winner)
            except (KeyError, IndexError, TypeError, EscrutinioError):
                logger.warning("result_declared_winner_undecodable", election_id=election_id)
        return ResultDeclaredEvent(
            election_id=election_id,
            max_votes=to_int(args.get("maxVotes", 0)),
            winner=winner,
        )
    return None


class Web3LedgerClient(LedgerClient):
    """Implementación de ``LedgerClient`` con ``AsyncWeb3``.

    Las lecturas se reintentan con backoff exponencial ante fallos de
    transporte; las escrituras se firman localmente y esperan su recibo. Los
    eventos se obtienen consultando logs periódicamente desde una tarea
    ``asyncio`` que vive mientras haya suscriptores.

    English:
        ``LedgerClient`` implementation on ``AsyncWeb3``. Reads are retried
        with exponential backoff on transport failures; writes are signed
        locally and wait for their receipt. Events are obtained by polling
        logs from an ``asyncio`` task that lives while there are subscribers.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        contract_address: str,
        *,
        abi: Optional[List[Dict[str, Any]]] = None,
        private_key: Optional[str] = None,
        receipt_timeout_seconds: float = 120.0,
        event_poll_interval_seconds: float = 2.0,
        read_retries: int = 3,
    ) -> None:
        self._web3 = web3
        self._address = AsyncWeb3.to_checksum_address(contract_address)
        self._contract = web3.eth.contract(address=self._address, abi=abi or load_abi())
        self._private_key = private_key
        self._receipt_timeout = receipt_timeout_seconds
        self._poll_interval = event_poll_interval_seconds
        self._read_retries = max(1, read_retries)
        self._callbacks: List[EventCallback] = []
        self._poller: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Any) -> "Web3LedgerClient":
        web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(str(settings.rpc_url)))
        return cls(
            web3,
            settings.contract_address,
            abi=load_abi(settings.contract_abi_path),
            private_key=settings.private_key or resolve_private_key(),
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
            event_poll_interval_seconds=settings.event_poll_interval_seconds,
            read_retries=settings.read_retries,
        )

    # Lecturas / Reads

    async def _read(self, function_name: str, *args: Any) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(LedgerUnavailable),
            stop=stop_after_attempt(self._read_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            reraise=True,
        ):
            with attempt:
                try:
                    return await getattr(self._contract.functions, function_name)(*args).call()
                except Exception as exc:
                    error = classify_ledger_error(exc)
                    logger.debug("ledger_read_failed", function=function_name, error=str(error))
                    raise error from exc

    async def election_count(self) -> int:
        return to_int(await self._read("electionCount"))

    async def election(self, election_id: int) -> Election:
        raw, declared = await asyncio.gather(
            self._read("elections", election_id),
            self._read("isResultDeclared", election_id),
        )
        return election_from_raw(raw, result_declared=bool(declared))

    async def get_candidates(self, election_id: int) -> List[Candidate]:
        raw = await self._read("getCandidates", election_id)
        return [candidate_from_raw(entry) for entry in raw]

    async def get_current_results(self, election_id: int) -> List[int]:
        raw = await self._read("getCurrentResults", election_id)
        return vote_counts_from_raw(raw)

    async def is_result_declared(self, election_id: int) -> bool:
        return bool(await self._read("isResultDeclared", election_id))

    # Escrituras / Writes

    async def _transact(self, function_name: str, *args: Any) -> TransactionReceipt:
        if not self._private_key:
            raise ValidationError(f"Ledger writes require a private key; set {PRIVATE_KEY_ENV}.")
        account = Account.from_key(self._private_key)
        function = getattr(self._contract.functions, function_name)(*args)

        async with self._write_lock:
            try:
                nonce = await self._web3.eth.get_transaction_count(account.address)
                tx = await function.build_transaction(
                    {
                        "from": account.address,
                        "nonce": nonce,
                        "chainId": await self._web3.eth.chain_id,
                        "gasPrice": await self._web3.eth.gas_price,
                    }
                )
                signed = Account.sign_transaction(tx, self._private_key)
                tx_hash = await self._web3.eth.send_raw_transaction(signed.raw_transaction)
                logger.info("ledger_tx_sent", function=function_name, tx_hash=self._web3.to_hex(tx_hash))
                receipt = await self._web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
            except Exception as exc:
                error = classify_ledger_error(exc)
                logger.warning("ledger_tx_failed", function=function_name, error=str(error))
                raise error from exc

        result = TransactionReceipt(
            tx_hash=self._web3.to_hex(tx_hash),
            block_number=to_int(receipt["blockNumber"]),
            status=to_int(receipt["status"]),
        )
        if result.status != 1:
            raise LedgerRejected(f"Transaction {result.tx_hash} reverted in block {result.block_number}.")
        logger.info("ledger_tx_confirmed", function=function_name, tx_hash=result.tx_hash, block=result.block_number)
        return result

    async def add_election(self, name: str, start_time: datetime, end_time: datetime) -> TransactionReceipt:
        return await self._transact("addElection", name, to_timestamp(start_time), to_timestamp(end_time))

    async def add_candidate(self, election_id: int, name: str, party: str, area: str) -> TransactionReceipt:
        return await self._transact("addCandidate", election_id, name, party, area)

    async def vote(self, election_id: int, candidate_id: int) -> TransactionReceipt:
        return await self._transact("vote", election_id, candidate_id)

    async def declare_results(self, election_id: int) -> TransactionReceipt:
        return await self._transact("getResults", election_id)

    # Eventos / Events

    def subscribe(self, callback: EventCallback) -> Subscription:
        """Registra un callback; debe llamarse con un event loop en marcha.

        English: Register a callback; must be called with a running event loop.
        """
        self._callbacks.append(callback)
        if self._poller is None or self._poller.done():
            self._poller = asyncio.get_running_loop().create_task(self._poll_events())
            logger.info("event_poller_started", interval_seconds=self._poll_interval)

        def _cancel() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks:
                self._stop_poller()

        return Subscription(_cancel)

    def _stop_poller(self) -> None:
        if self._poller is not None and not self._poller.done():
            self._poller.cancel()
            logger.info("event_poller_stopped")
        self._poller = None

    async def _poll_events(self) -> None:
        from_block: Optional[int] = None
        try:
            while True:
                try:
                    latest = to_int(await self._web3.eth.block_number)
                    if from_block is None:
                        from_block = latest + 1
                        logs: Sequence[Any] = []
                    elif latest < from_block:
                        logs = []
                    else:
                        logs = await self._fetch_logs(from_block, latest)
                        from_block = latest + 1
                except (Web3Exception,) + _TRANSPORT_ERRORS as exc:
                    logger.warning("event_poll_failed", error=str(exc))
                    logs = []

                for log in logs:
                    try:
                        event = decode_event(log)
                    except EscrutinioError as exc:
                        logger.warning("event_decode_failed", error=str(exc))
                        continue
                    if event is not None:
                        await self._dispatch(event)
                await asyncio.sleep(self._poll_interval)
        except Exception:
            logger.exception("event_poller_crashed")
            raise

    async def _fetch_logs(self, from_block: int, to_block: int) -> List[Any]:
        logs: List[Any] = []
        for event_name in _EVENT_NAMES:
            event = getattr(self._contract.events, event_name)
            logs.extend(await event.get_logs(from_block=from_block, to_block=to_block))
        logs.sort(key=lambda entry: (entry["blockNumber"], entry["logIndex"]))
        return logs

    async def _dispatch(self, event: LedgerEvent) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("event_callback_failed", event_type=type(event).__name__)

    async def aclose(self) -> None:
        self._callbacks.clear()
        poller = self._poller
        self._stop_poller()
        if poller is not None:
            await asyncio.gather(poller, return_exceptions=True)
        disconnect = getattr(self._web3.provider, "disconnect", None)
        if disconnect is not None:
            result = disconnect()
            if inspect.isawaitable(result):
                await result
