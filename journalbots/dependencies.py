"""Process-wide engine for the HTTP surface (created lazily, resettable in tests)."""

import logging
from typing import Optional

from journalbots.engine import BotEngine

logger = logging.getLogger(__name__)

_engine_instance: Optional[BotEngine] = None


def get_engine() -> BotEngine:
    """Get the bot engine (singleton), backed by the JSON file store."""
    global _engine_instance
    if _engine_instance is None:
        from journalbots.constants import BOT_STORE_FILE
        from journalbots.plugins.store import JsonFileBotStore

        _engine_instance = BotEngine(store=JsonFileBotStore(BOT_STORE_FILE))
        logger.info(f"Created BotEngine instance (store: {BOT_STORE_FILE})")
    return _engine_instance


def set_engine(engine: BotEngine) -> None:
    """Install a pre-built engine (tests, embedding applications)."""
    global _engine_instance
    _engine_instance = engine


# Test utility function (resets the singleton)
def reset_engine():
    """Reset the engine instance (only for testing)."""
    global _engine_instance
    _engine_instance = None
    logger.info("Reset bot engine instance")
