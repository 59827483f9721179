"""Global constants for the journal bot engine."""

import os
from pathlib import Path

# Directory paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_DIR = Path(os.getenv("BOT_DATA_DIR", str(PROJECT_ROOT / "data")))

# Bundled default bots (one directory per bot, each with a plugin.json)
BUNDLED_BOTS_DIR = Path(os.getenv("BUNDLED_BOTS_DIR", str(PROJECT_ROOT / "plugins" / "bundled")))

# Scratch directory for package / git / url fetches
BOT_WORK_DIR = Path(os.getenv("BOT_WORK_DIR", str(DATA_DIR / "bots")))

# JSON file backing the durable installation store
BOT_STORE_FILE = Path(os.getenv("BOT_STORE_FILE", str(DATA_DIR / "bot_store.json")))

# Domain used for synthesized bot service-identity addresses
BOT_USER_EMAIL_DOMAIN = os.getenv("BOT_USER_EMAIL_DOMAIN", "journal.bot")

# Conventional file names inside a bot directory
PLUGIN_MANIFEST_FILE = "plugin.json"
DEFAULT_CONFIG_FILE = "default-config.yaml"
DEFAULT_ENTRY_POINT = "plugin"

DEFAULT_EXECUTION_TIMEOUT_MS = 30000


def get_execution_timeout_ms() -> int:
    """Per-invocation timeout, read at call time so it can be changed without restart."""
    raw = os.getenv("BOT_EXECUTION_TIMEOUT", "")
    if not raw:
        return DEFAULT_EXECUTION_TIMEOUT_MS
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_EXECUTION_TIMEOUT_MS


def get_upload_dir() -> Path:
    """Upload directory for files written by installation hooks."""
    return Path(os.getenv("BOT_CONFIG_UPLOAD_DIR", "./uploads/bot-config"))


def auto_install_default_bots() -> bool:
    return os.getenv("AUTO_INSTALL_DEFAULT_BOTS", "true").lower() in ("true", "1", "yes", "on")
