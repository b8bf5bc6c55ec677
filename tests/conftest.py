"""Fixtures compartidas: ledger en memoria, reloj fijo y núcleo armado.

English:
    Shared fixtures: in-memory ledger, fixed clock and wired core.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from escrutinio.core.actions import ActionGateway
from escrutinio.core.errors import EscrutinioError, LedgerRejected, NotFound
from escrutinio.core.models import (
    Candidate,
    Election,
    LedgerEvent,
    ResultDeclaredEvent,
    TransactionReceipt,
    VotedEvent,
)
from escrutinio.core.repository import ElectionRepository
from escrutinio.core.subscription import Subscription
from escrutinio.core.sync import SyncCoordinator
from escrutinio.ledger.base import EventCallback, LedgerClient

BASE_TIME = datetime(2030, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Reloj controlable para fases deterministas.

    English: Controllable clock for deterministic phases.
    """

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class FakeLedgerClient(LedgerClient):
    """Ledger en memoria con registro de llamadas, fallos y compuertas.

    ``hold(method)`` hace que la próxima llamada a ``method`` espere hasta que
    el evento devuelto se active; los datos se capturan antes de esperar, como
    una respuesta que ya salió del nodo pero llega tarde.

    English:
        In-memory ledger with a call log, injected failures and gates.
        ``hold(method)`` makes the next call to ``method`` wait until the
        returned event is set; data is captured before waiting, like a
        response that left the node but arrives late.
    """

    def __init__(self, clock: FixedClock) -> None:
        self.clock = clock
        self.account = "0x00000000000000000000000000000000000000aa"
        self.elections: List[Election] = []
        self.candidates: Dict[int, List[Candidate]] = {}
        self.voters: Dict[int, set] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, List[EscrutinioError]] = {}
        self.holds: Dict[str, List[asyncio.Event]] = {}
        self.callbacks: List[EventCallback] = []
        self.emit_declared_event = True
        self.declaration_takes_effect = True
        self._block = 100

    # Preparación / Setup

    def seed_election(
        self,
        name: str,
        start: datetime,
        end: datetime,
        candidates: Sequence[Tuple[str, str, str]] = (),
        votes: Sequence[int] = (),
        declared: bool = False,
    ) -> int:
        election_id = len(self.elections) + 1
        self.elections.append(Election(election_id, name, start, end, declared))
        counts = list(votes) or [0] * len(candidates)
        self.candidates[election_id] = [
            Candidate(index, cand_name, party, area, counts[index - 1])
            for index, (cand_name, party, area) in enumerate(candidates, start=1)
        ]
        self.voters[election_id] = set()
        return election_id

    def upcoming(self, name: str = "Municipal", **kwargs) -> int:
        now = self.clock()
        return self.seed_election(name, now + timedelta(hours=1), now + timedelta(hours=2), **kwargs)

    def active(self, name: str = "General", **kwargs) -> int:
        now = self.clock()
        return self.seed_election(name, now - timedelta(hours=1), now + timedelta(hours=1), **kwargs)

    def ended(self, name: str = "Consulta", **kwargs) -> int:
        now = self.clock()
        return self.seed_election(name, now - timedelta(hours=2), now - timedelta(hours=1), **kwargs)

    def set_votes(self, election_id: int, votes: Sequence[int]) -> None:
        self.candidates[election_id] = [
            _with_votes(candidate, count) for candidate, count in zip(self.candidates[election_id], votes)
        ]

    def fail_next(self, method: str, error: EscrutinioError) -> None:
        self.failures.setdefault(method, []).append(error)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.holds.setdefault(method, []).append(gate)
        return gate

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    @property
    def write_calls(self) -> List[str]:
        writes = {"add_election", "add_candidate", "vote", "declare_results"}
        return [name for name, _ in self.calls if name in writes]

    async def emit(self, event: LedgerEvent) -> None:
        for callback in list(self.callbacks):
            result = callback(event)
            if inspect.isawaitable(result):
                await result

    @staticmethod
    async def settle(rounds: int = 50) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    async def _wait_gate(self, method: str) -> None:
        gates = self.holds.get(method)
        if gates:
            await gates.pop(0).wait()

    def _receipt(self) -> TransactionReceipt:
        self._block += 1
        return TransactionReceipt(tx_hash=f"0x{self._block:064x}", block_number=self._block)

    def _election_or_raise(self, election_id: int) -> Election:
        if not 1 <= election_id <= len(self.elections):
            raise NotFound(f"Election {election_id} does not exist.")
        return self.elections[election_id - 1]

    # Lecturas / Reads

    async def election_count(self) -> int:
        await self._enter("election_count")
        return len(self.elections)

    async def election(self, election_id: int) -> Election:
        await self._enter("election", election_id)
        election = self._election_or_raise(election_id)
        await self._wait_gate("election")
        return election

    async def get_candidates(self, election_id: int) -> List[Candidate]:
        await self._enter("get_candidates", election_id)
        self._election_or_raise(election_id)
        candidates = list(self.candidates[election_id])
        await self._wait_gate("get_candidates")
        return candidates

    async def get_current_results(self, election_id: int) -> List[int]:
        await self._enter("get_current_results", election_id)
        self._election_or_raise(election_id)
        counts = [candidate.vote_count for candidate in self.candidates[election_id]]
        await self._wait_gate("get_current_results")
        return counts

    async def is_result_declared(self, election_id: int) -> bool:
        await self._enter("is_result_declared", election_id)
        return self._election_or_raise(election_id).result_declared

    # Escrituras / Writes

    async def add_election(self, name: str, start_time: datetime, end_time: datetime) -> TransactionReceipt:
        await self._enter("add_election", name, start_time, end_time)
        self.seed_election(name, start_time, end_time)
        return self._receipt()

    async def add_candidate(self, election_id: int, name: str, party: str, area: str) -> TransactionReceipt:
        await self._enter("add_candidate", election_id, name, party, area)
        self._election_or_raise(election_id)
        roster = self.candidates[election_id]
        roster.append(Candidate(len(roster) + 1, name, party, area, 0))
        return self._receipt()

    async def vote(self, election_id: int, candidate_id: int) -> TransactionReceipt:
        await self._enter("vote", election_id, candidate_id)
        self._election_or_raise(election_id)
        if self.account in self.voters[election_id]:
            raise LedgerRejected(
                "execution reverted: You have already voted",
                reason="You have already voted",
            )
        self.voters[election_id].add(self.account)
        roster = self.candidates[election_id]
        roster[candidate_id - 1] = _with_votes(roster[candidate_id - 1], roster[candidate_id - 1].vote_count + 1)
        receipt = self._receipt()
        await self.emit(VotedEvent(election_id=election_id, voter=self.account))
        return receipt

    async def declare_results(self, election_id: int) -> TransactionReceipt:
        await self._enter("declare_results", election_id)
        election = self._election_or_raise(election_id)
        receipt = self._receipt()
        if not self.declaration_takes_effect:
            return receipt
        self.elections[election_id - 1] = Election(
            election.id, election.name, election.start_time, election.end_time, True
        )
        if self.emit_declared_event:
            roster = self.candidates[election_id]
            top: Optional[Candidate] = None
            for candidate in roster:
                if top is None or candidate.vote_count > top.vote_count:
                    top = candidate
            await self.emit(
                ResultDeclaredEvent(
                    election_id=election_id,
                    max_votes=top.vote_count if top else 0,
                    winner=top,
                )
            )
        return receipt

    def subscribe(self, callback: EventCallback) -> Subscription:
        self.callbacks.append(callback)

        def _cancel() -> None:
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return Subscription(_cancel)


def _with_votes(candidate: Candidate, votes: int) -> Candidate:
    return Candidate(candidate.id, candidate.name, candidate.party, candidate.area, votes)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def ledger(clock: FixedClock) -> FakeLedgerClient:
    return FakeLedgerClient(clock)


@pytest.fixture()
def repository(ledger: FakeLedgerClient) -> ElectionRepository:
    return ElectionRepository(ledger)


@pytest.fixture()
def coordinator(repository: ElectionRepository, ledger: FakeLedgerClient) -> SyncCoordinator:
    return SyncCoordinator(repository, ledger)


@pytest.fixture()
def gateway(ledger: FakeLedgerClient, coordinator: SyncCoordinator, clock: FixedClock) -> ActionGateway:
    return ActionGateway(ledger, coordinator, clock=clock, declaration_timeout_seconds=0.05)
