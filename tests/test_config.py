"""Pruebas de carga y validación de configuración.

Tests for configuration loading and validation.
"""

import pytest

from escrutinio.config import load_config

yaml = pytest.importorskip("yaml")

ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Español: Aísla cwd y variables ESCRUTINIO_ de cada prueba.

    English: Isolates cwd and ESCRUTINIO_ variables for each test.
    """
    monkeypatch.chdir(tmp_path)
    for name in (
        "ESCRUTINIO_RPC_URL",
        "ESCRUTINIO_CONTRACT_ADDRESS",
        "ESCRUTINIO_PRIVATE_KEY",
        "ESCRUTINIO_LOG_LEVEL",
        "ESCRUTINIO_CONFIG",
        "ESCRUTINIO_READ_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, payload, name="escrutinio.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_load_config_reads_ledger_section(tmp_path) -> None:
    """Español: Lee la sección ``ledger`` del YAML por defecto.

    English: Reads the ``ledger`` section of the default YAML.
    """
    _write(
        tmp_path,
        {
            "ledger": {
                "rpc_url": "http://127.0.0.1:8545",
                "contract_address": ADDRESS,
                "log_level": "debug",
                "read_retries": 5,
            }
        },
    )

    settings = load_config()

    assert str(settings.rpc_url).startswith("http://127.0.0.1:8545")
    assert settings.contract_address == ADDRESS
    assert settings.log_level == "DEBUG"
    assert settings.read_retries == 5
    assert settings.private_key is None


def test_env_overrides_yaml(tmp_path, monkeypatch) -> None:
    """Español: Las variables de entorno ganan sobre el YAML.

    English: Environment variables win over YAML.
    """
    path = _write(tmp_path, {"rpc_url": "http://yaml:8545", "contract_address": ADDRESS}, name="custom.yaml")
    monkeypatch.setenv("ESCRUTINIO_CONFIG", str(path))
    monkeypatch.setenv("ESCRUTINIO_RPC_URL", "http://env:8545")

    settings = load_config()

    assert str(settings.rpc_url).startswith("http://env:8545")


def test_private_key_in_yaml_is_ignored(tmp_path, monkeypatch) -> None:
    """Español: La clave privada del YAML se ignora; sólo vale la del entorno.

    English: The YAML private key is ignored; only the environment one counts.
    """
    path = _write(
        tmp_path,
        {"rpc_url": "http://127.0.0.1:8545", "contract_address": ADDRESS, "private_key": "0xfromyaml"},
    )

    assert load_config(path).private_key is None

    monkeypatch.setenv("ESCRUTINIO_PRIVATE_KEY", "0xfromenv")
    assert load_config(path).private_key == "0xfromenv"


@pytest.mark.parametrize(
    "overrides",
    [
        {"contract_address": "0x1234"},
        {"log_level": "LOUD"},
        {"event_poll_interval_seconds": 0},
        {"read_retries": 0},
        {"rpc_url": "not a url"},
    ],
)
def test_invalid_values_raise_value_error(tmp_path, overrides) -> None:
    """Español: Valores inválidos fallan con ValueError detallado.

    English: Invalid values fail with a detailed ValueError.
    """
    payload = {"rpc_url": "http://127.0.0.1:8545", "contract_address": ADDRESS}
    payload.update(overrides)
    path = _write(tmp_path, payload)

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)


def test_missing_abi_file_is_rejected(tmp_path) -> None:
    """Español: Un ABI configurado que no existe se rechaza.

    English: A configured ABI that does not exist is rejected.
    """
    path = _write(
        tmp_path,
        {"rpc_url": "http://127.0.0.1:8545", "contract_address": ADDRESS, "contract_abi_path": "missing.json"},
    )

    with pytest.raises(ValueError, match="contract_abi_path"):
        load_config(path)


def test_missing_explicit_config_file(tmp_path) -> None:
    """Español: Una ruta explícita inexistente es FileNotFoundError.

    English: A missing explicit path is FileNotFoundError.
    """
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_yaml_syntax_error_is_readable(tmp_path) -> None:
    """Español: Errores de sintaxis YAML se reportan de forma legible.

    English: YAML syntax errors are reported readably.
    """
    path = tmp_path / "escrutinio.yaml"
    path.write_text("ledger: [unclosed", encoding="utf-8")

    with pytest.raises(ValueError, match="YAML syntax"):
        load_config(path)
