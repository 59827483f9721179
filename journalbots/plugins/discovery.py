"""Bundled-bot discovery - scans a directory for bot plugin folders."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from journalbots.constants import PLUGIN_MANIFEST_FILE
from journalbots.plugins.manifest import BotPluginManifest
from journalbots.plugins.sources import LocalSource

logger = logging.getLogger(__name__)


@dataclass
class DiscoveredBot:
    """A bot directory found on disk, not yet loaded."""

    bot_id: str
    path: Path
    manifest: Optional[BotPluginManifest] = None

    @property
    def source(self) -> LocalSource:
        return LocalSource(path=str(self.path))


class BotDiscovery:
    """Discovers bundled bots by scanning for ``plugin.json`` files.

    The bot id comes from the manifest's ``platform.botId`` when it can be
    read, otherwise from the directory name.
    """

    def __init__(self, search_path: Path):
        self.search_path = Path(search_path)

    def discover_all(self) -> List[DiscoveredBot]:
        """Discover every bot directory under the search path (sorted, first id wins)."""
        if not self.search_path.exists():
            logger.debug(f"Bot search path does not exist: {self.search_path}")
            return []

        discovered = []
        seen_ids = set()
        for item in sorted(self.search_path.iterdir()):
            if not item.is_dir() or not (item / PLUGIN_MANIFEST_FILE).exists():
                continue

            bot = self.discover_single(item)
            if bot.bot_id in seen_ids:
                logger.warning(
                    f"Duplicate bot ID '{bot.bot_id}' found at {bot.path}, skipping (first-found wins)"
                )
                continue
            seen_ids.add(bot.bot_id)
            discovered.append(bot)

        logger.info(f"Discovered {len(discovered)} bundled bot(s) in {self.search_path}")
        return discovered

    def discover_single(self, bot_path: Path) -> DiscoveredBot:
        manifest = self._load_manifest(bot_path)
        return DiscoveredBot(
            bot_id=manifest.bot_id if manifest else bot_path.name,
            path=bot_path.resolve(),
            manifest=manifest,
        )

    def _load_manifest(self, bot_path: Path) -> Optional[BotPluginManifest]:
        manifest_file = bot_path / PLUGIN_MANIFEST_FILE
        if not manifest_file.exists():
            return None
        try:
            with open(manifest_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            data.pop("entry_point", None)
            data.pop("entryPoint", None)
            return BotPluginManifest.model_validate(data)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {manifest_file}: {e}")
        except ValidationError as e:
            logger.error(f"Invalid manifest in {manifest_file}: {e}")
        return None
