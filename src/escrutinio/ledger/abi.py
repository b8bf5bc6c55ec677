# Abi Module
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

"""ABI del contrato electoral.

English:
    Election contract ABI.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

_CANDIDATE_COMPONENTS = [
    {"internalType": "uint256", "name": "id", "type": "uint256"},
    {"internalType": "string", "name": "name", "type": "string"},
    {"internalType": "string", "name": "party", "type": "string"},
    {"internalType": "string", "name": "area", "type": "string"},
    {"internalType": "uint256", "name": "voteCount", "type": "uint256"},
]


def _uint(name: str) -> Dict[str, str]:
    return {"internalType": "uint256", "name": name, "type": "uint256"}


def _string(name: str) -> Dict[str, str]:
    return {"internalType": "string", "name": name, "type": "string"}


ELECTION_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "electionCount",
        "outputs": [_uint("")],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_uint("")],
        "name": "elections",
        "outputs": [_uint("id"), _string("name"), _uint("startTime"), _uint("endTime")],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId")],
        "name": "getCandidates",
        "outputs": [
            {
                "components": _CANDIDATE_COMPONENTS,
                "internalType": "struct Election.Candidate[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId")],
        "name": "getCurrentResults",
        "outputs": [
            {
                "components": [_string("name"), _uint("voteCount")],
                "internalType": "struct Election.Result[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId")],
        "name": "isResultDeclared",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_string("_name"), _uint("_startTime"), _uint("_endTime")],
        "name": "addElection",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId"), _string("_name"), _string("_party"), _string("_area")],
        "name": "addCandidate",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId"), _uint("_candidateId")],
        "name": "vote",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [_uint("_electionId")],
        "name": "getResults",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "electionId", "type": "uint256"},
            {"indexed": True, "internalType": "address", "name": "voter", "type": "address"},
        ],
        "name": "Voted",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "electionId", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "maxVotes", "type": "uint256"},
            {
                "components": _CANDIDATE_COMPONENTS,
                "indexed": False,
                "internalType": "struct Election.Candidate",
                "name": "winner",
                "type": "tuple",
            },
        ],
        "name": "ResultDeclared",
        "type": "event",
    },
]


def load_abi(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Carga el ABI desde un JSON o devuelve el ABI incorporado.

    Acepta tanto una lista ABI como un artefacto de compilación con clave
    ``abi``.

    English:
        Load the ABI from a JSON file or return the bundled ABI. Accepts
        either a bare ABI list or a build artifact with an ``abi`` key.
    """
    if path is None:
        return ELECTION_ABI
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("abi")
    if not isinstance(raw, list):
        raise ValueError(f"{path} does not contain a contract ABI list.")
    return raw
