"""Bot engine - one explicitly constructed value owning executor, loader and manager."""

import logging
from pathlib import Path
from typing import List, Optional

from journalbots.constants import BOT_WORK_DIR, BUNDLED_BOTS_DIR
from journalbots.errors import BotPluginError
from journalbots.framework.executor import BotExecutor
from journalbots.framework.types import BotContext, BotResponse
from journalbots.plugins.loader import PluginLoader
from journalbots.plugins.manager import BotManager
from journalbots.plugins.store import BotStore, InMemoryBotStore

logger = logging.getLogger(__name__)


class BotEngine:
    """Composes the command pipeline with durable bot lifecycle.

    Args:
        store: Durable installation store (in-memory if omitted)
        bundled_dir: Directory of bundled default bots
        work_dir: Scratch directory for fetched plugin sources
        upload_dir: Directory for installation-hook file uploads
        timeout_ms: Per-invocation execution timeout
    """

    def __init__(
        self,
        store: Optional[BotStore] = None,
        bundled_dir: Optional[Path] = None,
        work_dir: Optional[Path] = None,
        upload_dir: Optional[Path] = None,
        timeout_ms: Optional[int] = None,
    ):
        self.store = store or InMemoryBotStore()
        self.executor = BotExecutor(timeout_ms=timeout_ms)
        self.loader = PluginLoader(work_dir=work_dir or BOT_WORK_DIR)
        self.manager = BotManager(
            loader=self.loader,
            executor=self.executor,
            store=self.store,
            bundled_dir=bundled_dir or BUNDLED_BOTS_DIR,
            upload_dir=upload_dir,
        )

    async def start(self, install_defaults: bool = True) -> List[str]:
        """Install bundled bots (optionally) and rebuild executor state from the store.

        Returns:
            Ids of the bots active in the executor
        """
        if install_defaults:
            installed = await self.manager.install_defaults()
            logger.info(f"Installed {len(installed)} default bot(s)")
        await self.manager.reload_all_bots()
        active = [bot_id for bot_id, _, _ in self.executor.get_installed_bots()]
        logger.info(f"Bot engine started with {len(active)} active bot(s): {', '.join(active) or 'none'}")
        return active

    async def stop(self) -> None:
        """Unload every loaded plugin."""
        for plugin in self.loader.get_loaded_plugins():
            try:
                await self.loader.unload(plugin.id)
            except BotPluginError as e:
                logger.error(f"Error unloading plugin {plugin.id}: {e.message}")
        logger.info("Bot engine stopped")

    async def process_message(self, text: str, context: BotContext) -> List[BotResponse]:
        return await self.executor.process_message(text, context)
