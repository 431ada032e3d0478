# envpocket: Configuration
#
# Settings come from ENVPOCKET_* variables. The process environment wins;
# a .env file found from the working directory fills in the rest. Only
# ENVPOCKET_* names are read from that file and it is never copied into
# os.environ, since the .env next to a project usually holds that
# project's own secrets.

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values, find_dotenv

DEFAULT_ENTRY_PREFIX = "envpocket:"
DEFAULT_HISTORY_PREFIX = "envpocket-history:"

BACKEND_SQLITE = "sqlite"
BACKEND_MEMORY = "memory"
BACKENDS = (BACKEND_SQLITE, BACKEND_MEMORY)

ENV_VAR_PREFIX = "ENVPOCKET_"


@dataclass
class EnvPocketConfig:
    """Resolved envpocket settings."""
    home: Path
    db_path: Path
    key_path: Path
    audit_dir: Path
    backend: str = BACKEND_SQLITE
    entry_prefix: str = DEFAULT_ENTRY_PREFIX
    history_prefix: str = DEFAULT_HISTORY_PREFIX


def _read_settings(env_file: Optional[str]) -> Dict[str, str]:
    path = env_file or find_dotenv(usecwd=True)
    settings: Dict[str, str] = {}
    if path:
        for name, value in dotenv_values(path).items():
            if name.startswith(ENV_VAR_PREFIX) and value is not None:
                settings[name] = value
    for name, value in os.environ.items():
        if name.startswith(ENV_VAR_PREFIX):
            settings[name] = value
    return settings


def load_config(env_file: Optional[str] = None) -> EnvPocketConfig:
    """
    Build the configuration from the environment.

    Args:
        env_file: Explicit dotenv file. When None, python-dotenv searches
                  upward from the working directory.

    Raises:
        ValueError: If ENVPOCKET_BACKEND names an unknown backend or the
                    prefixes collide.
    """
    settings = _read_settings(env_file)

    home = Path(settings.get("ENVPOCKET_HOME", "~/.envpocket")).expanduser()
    db_path = Path(settings.get("ENVPOCKET_DB_PATH", home / "vault.db")).expanduser()
    key_path = Path(settings.get("ENVPOCKET_KEY_PATH", home / "vault.key")).expanduser()
    audit_dir = Path(settings.get("ENVPOCKET_AUDIT_DIR", home / "audit_logs")).expanduser()

    backend = settings.get("ENVPOCKET_BACKEND", BACKEND_SQLITE).strip().lower()
    if backend not in BACKENDS:
        raise ValueError(
            f"Unknown ENVPOCKET_BACKEND '{backend}' (expected one of: {', '.join(BACKENDS)})"
        )

    entry_prefix = settings.get("ENVPOCKET_ENTRY_PREFIX", DEFAULT_ENTRY_PREFIX)
    history_prefix = settings.get("ENVPOCKET_HISTORY_PREFIX", DEFAULT_HISTORY_PREFIX)
    if not entry_prefix or not history_prefix or entry_prefix == history_prefix:
        raise ValueError("Entry and history prefixes must be non-empty and distinct")

    return EnvPocketConfig(
        home=home,
        db_path=db_path,
        key_path=key_path,
        audit_dir=audit_dir,
        backend=backend,
        entry_prefix=entry_prefix,
        history_prefix=history_prefix,
    )


def build_store(config: EnvPocketConfig):
    """Instantiate the attribute store selected by the configuration."""
    if config.backend == BACKEND_MEMORY:
        from ..store.memory import InMemoryAttributeStore

        return InMemoryAttributeStore()

    from ..store.sqlite_store import SQLiteAttributeStore

    return SQLiteAttributeStore(db_path=config.db_path, key_path=config.key_path)
