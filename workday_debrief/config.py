"""
Environment configuration.

Values come from the process environment (a .env file is loaded by main.py
and the scheduler entry point). Nothing here is cached so tests can patch
os.environ freely.
"""

import os
from pathlib import Path
from typing import Optional

import pytz

DEFAULT_DATA_DIR = "~/.workday-debrief"
DEFAULT_OLLAMA_URL = "http://localhost:11434"


def get_data_dir() -> Path:
    """Directory holding the database, the vault and the master key."""
    path = Path(os.getenv("DEBRIEF_DATA_DIR", DEFAULT_DATA_DIR)).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_database_path() -> Path:
    return get_data_dir() / "debrief.db"


def get_vault_path() -> Path:
    return get_data_dir() / "secrets.enc"


def get_master_key_path() -> Path:
    return get_data_dir() / "master.key"


def get_ollama_base_url() -> str:
    return os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_URL).rstrip("/")


def get_timezone() -> Optional[pytz.BaseTzInfo]:
    """
    Configured timezone, or None for the machine's local time.

    Raises:
        pytz.UnknownTimeZoneError: If DEBRIEF_TIMEZONE names no known zone
    """
    name = os.getenv("DEBRIEF_TIMEZONE")
    if not name:
        return None
    return pytz.timezone(name)


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
