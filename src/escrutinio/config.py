"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/config.py`.
Configuración segura y validada de escrutinio. Combina YAML, variables
de entorno con prefijo ESCRUTINIO_ y valores por defecto; la clave privada
nunca se lee desde archivos.

Componentes detectados:
  - EscrutinioSettings
  - load_config

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/config.py`.
Secure and validated escrutinio configuration. Merges YAML, environment
variables prefixed with ESCRUTINIO_ and defaults; the private key is never
read from files.

Detected components:
  - EscrutinioSettings
  - load_config

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Config Module
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

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import AnyUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "ESCRUTINIO_"
CONFIG_ENV = "ESCRUTINIO_CONFIG"
DEFAULT_CONFIG_PATH = Path("escrutinio.yaml")

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

logger = structlog.get_logger(__name__)


class EscrutinioSettings(BaseSettings):
    """Variables de entorno, ``.env`` y YAML para escrutinio.

    English: Environment variables, ``.env`` and YAML for escrutinio.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: AnyUrl
    contract_address: str
    private_key: Optional[str] = None
    contract_abi_path: Optional[Path] = None
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    event_poll_interval_seconds: float = Field(default=2.0, gt=0)
    receipt_timeout_seconds: float = Field(default=120.0, gt=0)
    declaration_event_timeout_seconds: float = Field(default=30.0, gt=0)
    read_retries: int = Field(default=3, ge=1, le=10)

    @field_validator("contract_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        cleaned = value.strip()
        if not _ADDRESS_PATTERN.match(cleaned):
            raise ValueError("contract_address must be 0x followed by 40 hex characters")
        return cleaned

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def validate_paths(self) -> None:
        """Valida que el ABI configurado exista. / Validate that the configured ABI exists."""
        if self.contract_abi_path is not None and not self.contract_abi_path.is_file():
            raise ValueError(f"contract_abi_path does not exist: {self.contract_abi_path}")


def _load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """Carga la sección ``ledger`` de un YAML o lanza un error legible.

    English: Load the ``ledger`` section of a YAML file or raise a readable error.
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"{path.name} has YAML syntax errors.") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} must be a YAML mapping.")
    section = raw.get("ledger", raw)
    if not isinstance(section, dict):
        raise ValueError(f"{path.name}: 'ledger' must be a mapping.")
    return section


def _resolve_config_path(config_path: Optional[Path]) -> Optional[Path]:
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Missing {config_path.as_posix()}.")
        return config_path
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        path = Path(env_path)
        if not path.exists():
            raise FileNotFoundError(f"Missing {path.as_posix()} (from {CONFIG_ENV}).")
        return path
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def load_config(config_path: Optional[Path] = None) -> EscrutinioSettings:
    """Carga y valida configuración, fallando con detalle.

    Orden de precedencia: variables de entorno (y ``.env``/``.env.local``)
    sobre el YAML. La clave privada nunca se toma del YAML.

    English:
        Load and validate configuration, failing with details. Environment
        variables (and ``.env``/``.env.local``) take precedence over YAML.
        The private key is never taken from YAML.
    """
    load_dotenv(_ENV_PATH, override=False)
    load_dotenv(_ENV_LOCAL_PATH, override=False)

    file_values: Dict[str, Any] = {}
    path = _resolve_config_path(config_path)
    if path is not None:
        file_values = _load_yaml_mapping(path)
    yaml_key = file_values.pop("private_key", None)
    if yaml_key and str(yaml_key).strip() not in {"", "0x...", "REPLACE_ME"}:
        logger.warning("private_key_in_config_ignored", env_var=f"{ENV_PREFIX}PRIVATE_KEY")
    defaults = {
        key: value for key, value in file_values.items() if f"{ENV_PREFIX}{key}".upper() not in os.environ
    }

    try:
        settings = EscrutinioSettings(**defaults)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
    settings.validate_paths()
    return settings
