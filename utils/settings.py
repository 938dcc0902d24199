"""
Process-level configuration: .env loading, secrets and logging.

Environment variables always win. `.env` files never override them, and Key
Vault is only consulted for names the environment does not provide.
"""
import logging
import os
from pathlib import Path

from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient
from dotenv import find_dotenv, load_dotenv

PROD_DB_NAME = "EOffice_KPI"
DEFAULT_DB_NAME = PROD_DB_NAME

# Simple in-process cache for secrets
_SECRET_CACHE: dict[str, str] = {}
_BOOTSTRAPPED = False

NOISY_LOGGERS = (
    "pymongo",
    "pymongo.pool",
    "pymongo.topology",
    "pymongo.server",
    "pymongo.monitoring",
    "azure",
    "azure.identity",
    "azure.core",
    "urllib3",
    "google",
    "grpc",
)


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def app_env() -> str:
    return os.getenv("APP_ENV", "dev").strip().lower()


def is_production() -> bool:
    return app_env() == "prod" or os.getenv("AZURE_FUNCTIONS_ENVIRONMENT") == "Production"


def db_name() -> str:
    return os.getenv("KPI_DB_NAME", os.getenv("DB_NAME", DEFAULT_DB_NAME))


def key_vault_url() -> str | None:
    return os.getenv("KEY_VAULT_URL") or None


def get_secret(name: str, default: str | None = None) -> str | None:
    """
    Return secret value from environment if present; otherwise fetch from Azure Key Vault.
    Falls back to `default` if neither source is available. Values are cached per-process.
    Supports KV names that disallow underscores by trying hyphenated variants.
    """
    if os.environ.get(name):
        return os.environ[name]

    if name in _SECRET_CACHE:
        return _SECRET_CACHE[name]

    vault_url = key_vault_url()
    if vault_url:
        lookup_names = [name]
        # Azure KV secret names cannot contain underscores
        if "_" in name:
            lookup_names.append(name.replace("_", "-"))
        try:
            client = SecretClient(vault_url=vault_url, credential=DefaultAzureCredential())
            for _nm in lookup_names:
                try:
                    secret = client.get_secret(_nm)
                except Exception as e:
                    logging.debug(f"[Settings] Key Vault lookup '{_nm}' failed: {e}")
                    continue
                if isinstance(secret.value, str):
                    _SECRET_CACHE[name] = secret.value
                    return secret.value
        except Exception as e:
            logging.warning("[Settings] Failed to fetch '%s' from Key Vault: %s", name, e)

    return default


def load_dotenvs() -> list[str]:
    """Load .env files in a predictable order without overriding the environment:
    1) Paths provided via KPI_ENV_PATH or KPI_ENV_PATHS (os.pathsep separated)
    2) Project-local candidates near this package and the working directory
    3) CWD-based auto discovery via find_dotenv(usecwd=True)
    """
    explicit_paths: list[str] = []
    if os.getenv("KPI_ENV_PATH"):
        explicit_paths.append(os.getenv("KPI_ENV_PATH", ""))
    if os.getenv("KPI_ENV_PATHS"):
        explicit_paths.extend(p.strip() for p in os.getenv("KPI_ENV_PATHS", "").split(os.pathsep) if p.strip())

    here = Path(__file__).resolve()
    candidates = [
        here.parent.parent / ".env",  # function app root
        Path.cwd() / ".env",
    ]
    search_list = [Path(p).expanduser().resolve() for p in explicit_paths] + candidates

    loaded_from: list[str] = []
    for p in search_list:
        if str(p) in loaded_from or not p.is_file():
            continue
        load_dotenv(dotenv_path=str(p), override=False)
        logging.info(f"[Settings] Loaded .env from: {p}")
        loaded_from.append(str(p))

    if not loaded_from:
        auto = find_dotenv(usecwd=True)
        if auto:
            load_dotenv(dotenv_path=auto, override=False)
            logging.info(f"[Settings] Loaded .env via find_dotenv: {auto}")
            loaded_from.append(auto)

    if not loaded_from and not env_flag("SUPPRESS_ENV_WARNING"):
        logging.debug("[Settings] No .env file found; relying on process environment.")
    return loaded_from


def _level_from_env() -> int:
    level_env = os.getenv("KPI_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_env)
    if isinstance(level, int):
        return level
    try:
        return int(level_env)
    except ValueError:
        return logging.INFO


def configure_logging() -> int:
    """
    Let the Azure Functions worker own the handlers. Only when none exist
    (CLI tools, tests) a basic stream handler is installed.
    """
    level = _level_from_env()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - [%(name)s] %(message)s")
    else:
        root.setLevel(level)

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
    return level


def bootstrap() -> None:
    """Idempotent startup hook for function entry points and tools."""
    global _BOOTSTRAPPED
    if _BOOTSTRAPPED:
        return
    load_dotenvs()
    level = configure_logging()
    logging.info(f"[Log] Level set to {logging.getLevelName(level)} (APP_ENV={app_env()}, DB={db_name()})")
    _BOOTSTRAPPED = True
