"""Configuración raíz de pytest: ruta ``src`` y bloqueo de red.

English:
    Root pytest configuration: ``src`` path and network blocking.
"""

from __future__ import annotations

from pathlib import Path
import socket
import sys
from typing import Any

import pytest

SRC_ROOT = Path(__file__).resolve().parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    Los sockets locales que usa ``asyncio`` para su self-pipe se crean con
    ``socketpair`` y no pasan por ``connect``.

    English:
        Prevents real network connections in tests. The local sockets asyncio
        uses for its self-pipe come from ``socketpair`` and never call
        ``connect``.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)
