"""Loaded-plugin registry - tracks every bot plugin the loader currently holds."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from journalbots.framework.types import CommandBot
from journalbots.plugins.manifest import BotPluginManifest

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    LOADED = "loaded"
    ACTIVE = "active"


@dataclass
class BotPlugin:
    """A loaded bot plugin: manifest, bot definition and optional lifecycle hooks."""

    manifest: BotPluginManifest
    bot: CommandBot
    activate: Optional[Callable[[], Any]] = field(default=None, repr=False)
    deactivate: Optional[Callable[[], Any]] = field(default=None, repr=False)
    path: Optional[Path] = None
    state: PluginState = PluginState.LOADED
    module_names: List[str] = field(default_factory=list, repr=False)

    @property
    def id(self) -> str:
        return self.bot.id


class PluginRegistry:
    """Bot id -> loaded plugin."""

    def __init__(self):
        self._plugins: Dict[str, BotPlugin] = {}

    def register(self, plugin: BotPlugin) -> None:
        if plugin.id in self._plugins:
            logger.warning(f"Plugin '{plugin.id}' already loaded, overwriting")
        self._plugins[plugin.id] = plugin
        logger.info(f"Registered plugin: {plugin.id} ({plugin.path})")

    def get(self, bot_id: str) -> Optional[BotPlugin]:
        return self._plugins.get(bot_id)

    def get_all(self) -> List[BotPlugin]:
        return list(self._plugins.values())

    def remove(self, bot_id: str) -> Optional[BotPlugin]:
        return self._plugins.pop(bot_id, None)
