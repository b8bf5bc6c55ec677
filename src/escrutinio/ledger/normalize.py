"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/ledger/normalize.py`.
Normalización de valores crudos del ledger a tipos nativos. Es el único punto
de conversión: los enteros anchos (uint256 y envoltorios similares) y los
timestamps en segundos se validan aquí con esquemas Pydantic antes de entrar
al núcleo. Un payload inválido se reporta como ``InvariantViolation``.

Componentes detectados:
  - to_int
  - ElectionPayload
  - CandidatePayload
  - TallyPayload
  - election_from_raw
  - candidate_from_raw
  - vote_counts_from_raw

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Ningún ``ValidationError`` de Pydantic sale de este módulo.

======================== ENGLISH ========================
File: `src/escrutinio/ledger/normalize.py`.
Normalization of raw ledger values into native types. Single conversion
point: wide integers (uint256 and similar wrappers) and second-based
timestamps are validated here with Pydantic schemas before entering the
core. An invalid payload is reported as ``InvariantViolation``.

Detected components:
  - to_int
  - ElectionPayload
  - CandidatePayload
  - TallyPayload
  - election_from_raw
  - candidate_from_raw
  - vote_counts_from_raw

Notes:
- Keep this header in sync with structural changes in the file.
- No Pydantic ``ValidationError`` leaves this module.
"""

# Normalize Module
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
#   - Enteros anchos / Wide integers
#   - Esquemas de payload / Payload schemas
#   - Conversión / Conversion

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.errors import InvariantViolation
from ..core.models import Candidate, Election

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# 9999-12-31T23:59:59Z, the last second datetime can represent.
MAX_TIMESTAMP = 253402300799


def to_int(value: Any) -> int:
    """Convierte un entero ancho a ``int``.

    Acepta ``int``, cadenas decimales o hex y objetos con ``__int__`` o
    ``toNumber``/``to_int``. Los booleanos se rechazan.

    English:
        Convert a wide integer into ``int``. Accepts ``int``, decimal or hex
        strings and objects exposing ``__int__`` or ``toNumber``/``to_int``.
        Booleans are rejected.
    """
    if isinstance(value, bool):
        raise InvariantViolation(f"Expected integer, got bool {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        try:
            return int(text, 16) if text.startswith("0x") else int(text)
        except ValueError as exc:
            raise InvariantViolation(f"Expected integer, got {value!r}") from exc
    for method_name in ("toNumber", "to_int"):
        method = getattr(value, method_name, None)
        if callable(method):
            return int(method())
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvariantViolation(f"Expected integer, got {value!r}") from exc


def to_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _unwrap_wide_int(value: Any) -> int:
    try:
        return to_int(value)
    except InvariantViolation as exc:
        raise ValueError(str(exc)) from exc


class ElectionPayload(BaseModel):
    """Esquema del struct ``Election`` del contrato.

    English: Schema of the contract ``Election`` struct.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    name: str
    start_time: int = Field(ge=0, le=MAX_TIMESTAMP)
    end_time: int = Field(ge=0, le=MAX_TIMESTAMP)
    result_declared: bool = False

    @field_validator("id", "start_time", "end_time", mode="before")
    @classmethod
    def unwrap_wide_int(cls, value: Any) -> int:
        return _unwrap_wide_int(value)

    def to_election(self) -> Election:
        return Election(
            id=self.id,
            name=self.name,
            start_time=datetime.fromtimestamp(self.start_time, tz=timezone.utc),
            end_time=datetime.fromtimestamp(self.end_time, tz=timezone.utc),
            result_declared=self.result_declared,
        )


class CandidatePayload(BaseModel):
    """Esquema del struct ``Candidate``; los votos nunca son negativos.

    English: Schema of the ``Candidate`` struct; votes are never negative.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    name: str
    party: str
    area: str
    vote_count: int = Field(ge=0)

    @field_validator("id", "vote_count", mode="before")
    @classmethod
    def unwrap_wide_int(cls, value: Any) -> int:
        return _unwrap_wide_int(value)

    def to_candidate(self) -> Candidate:
        return Candidate(
            id=self.id,
            name=self.name,
            party=self.party,
            area=self.area,
            vote_count=self.vote_count,
        )


class TallyPayload(BaseModel):
    """Conteos de ``getCurrentResults`` en orden de candidato.

    English: ``getCurrentResults`` counts in candidate order.
    """

    counts: List[int]

    @field_validator("counts", mode="before")
    @classmethod
    def unwrap_entries(cls, value: Any) -> List[int]:
        try:
            entries = [_tally_entry(entry) for entry in value]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"malformed tally entry: {exc!r}") from exc
        return [_unwrap_wide_int(entry) for entry in entries]

    @field_validator("counts")
    @classmethod
    def non_negative(cls, value: List[int]) -> List[int]:
        if any(count < 0 for count in value):
            raise ValueError("vote counts cannot be negative")
        return value


def _tally_entry(entry: Any) -> Any:
    if isinstance(entry, (int, str)) and not isinstance(entry, bool):
        return entry
    if isinstance(entry, Mapping) or hasattr(entry, "voteCount"):
        return _field(entry, "voteCount", 1)
    return entry[-1]


def _field(raw: Any, name: str, index: int) -> Any:
    if isinstance(raw, Mapping):
        return raw[name]
    if hasattr(raw, name):
        return getattr(raw, name)
    return raw[index]


def _extract(raw: Any, fields: Dict[str, tuple]) -> Dict[str, Any]:
    try:
        return {key: _field(raw, name, index) for key, (name, index) in fields.items()}
    except (KeyError, IndexError, TypeError) as exc:
        raise InvariantViolation(f"Malformed ledger payload {raw!r}: missing {exc}") from exc


def _validate(schema: Type[PayloadT], data: Dict[str, Any]) -> PayloadT:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise InvariantViolation(f"Invalid {schema.__name__}: {exc}") from exc


def election_from_raw(raw: Any, *, result_declared: Optional[bool] = None) -> Election:
    """Construye una ``Election`` desde la tupla o struct del contrato.

    English: Build an ``Election`` from the contract tuple or struct.
    """
    fields = {"id": ("id", 0), "name": ("name", 1), "start_time": ("startTime", 2), "end_time": ("endTime", 3)}
    if result_declared is None:
        fields["result_declared"] = ("resultDeclared", 4)
    data = _extract(raw, fields)
    if result_declared is not None:
        data["result_declared"] = result_declared
    return _validate(ElectionPayload, data).to_election()


def candidate_from_raw(raw: Any) -> Candidate:
    fields = {
        "id": ("id", 0),
        "name": ("name", 1),
        "party": ("party", 2),
        "area": ("area", 3),
        "vote_count": ("voteCount", 4),
    }
    return _validate(CandidatePayload, _extract(raw, fields)).to_candidate()


def vote_counts_from_raw(raw: Sequence[Any]) -> List[int]:
    """Extrae ``voteCount`` de cada entrada de ``getCurrentResults``.

    English: Extract ``voteCount`` from each ``getCurrentResults`` entry.
    """
    return _validate(TallyPayload, {"counts": raw}).counts
