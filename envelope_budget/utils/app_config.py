"""Pre-DB bootstrap configuration. Zero imports from the rest of the app besides constants.

Stores settings that must be known before opening the DB (db_path, timeouts, log level).
Config lives in ~/.envelope_budget/config.json; environment variables win over the file.
"""
import json
import os
from pathlib import Path

from envelope_budget.utils.constants import BUSY_TIMEOUT_SECONDS, DB_FILE

CONFIG_DIR = Path.home() / ".envelope_budget"
CONFIG_FILE = CONFIG_DIR / "config.json"

ENV_DB_PATH = "ENVELOPE_BUDGET_DB_PATH"
ENV_LOG_LEVEL = "ENVELOPE_BUDGET_LOG_LEVEL"


def load_config(config_file: Path | None = None) -> dict:
    """Returns {} on a missing or corrupt file; never raises."""
    try:
        with open(config_file or CONFIG_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict, config_file: Path | None = None) -> None:
    """Creates the config dir if needed; atomic write via .tmp + os.replace()."""
    target = Path(config_file or CONFIG_FILE)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def get_db_path(config: dict | None = None) -> str:
    """Environment override, then config["db_path"], then DB_FILE in the CWD."""
    config = load_config() if config is None else config
    return os.getenv(ENV_DB_PATH) or config.get("db_path") or DB_FILE


def set_db_path(path: str | None) -> None:
    """Update db_path in config and save."""
    config = load_config()
    if path is None:
        config.pop("db_path", None)
    else:
        config["db_path"] = path
    save_config(config)


def get_busy_timeout(config: dict | None = None) -> float:
    config = load_config() if config is None else config
    try:
        return float(config.get("busy_timeout_seconds", BUSY_TIMEOUT_SECONDS))
    except (TypeError, ValueError):
        return BUSY_TIMEOUT_SECONDS


def get_log_level(config: dict | None = None) -> str:
    config = load_config() if config is None else config
    return (os.getenv(ENV_LOG_LEVEL) or config.get("log_level") or "INFO").upper()
