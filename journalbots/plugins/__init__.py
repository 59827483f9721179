"""Bot plugin system: manifests, sources, loading, durable store and lifecycle.

Imports are lazy so lightweight pieces (manifest, sources, config utilities)
can be used without pulling in aiohttp or the executor.
"""

__all__ = [
    "BotPluginManifest",
    "create_bot_manifest",
    "parse_source",
    "validate_bot_plugin",
    "BotPlugin",
    "PluginRegistry",
    "PluginState",
    "PluginLoader",
    "BotDiscovery",
    "BotStore",
    "InMemoryBotStore",
    "JsonFileBotStore",
    "BotInstallation",
    "BotInstallationContext",
    "BotManager",
]


def __getattr__(name):
    if name in ("BotPluginManifest", "create_bot_manifest"):
        from journalbots.plugins import manifest
        return getattr(manifest, name)
    if name == "parse_source":
        from journalbots.plugins.sources import parse_source
        return parse_source
    if name == "validate_bot_plugin":
        from journalbots.plugins.validation import validate_bot_plugin
        return validate_bot_plugin
    if name in ("BotPlugin", "PluginRegistry", "PluginState"):
        from journalbots.plugins import registry
        return getattr(registry, name)
    if name == "PluginLoader":
        from journalbots.plugins.loader import PluginLoader
        return PluginLoader
    if name == "BotDiscovery":
        from journalbots.plugins.discovery import BotDiscovery
        return BotDiscovery
    if name in ("BotStore", "InMemoryBotStore", "JsonFileBotStore", "BotInstallation"):
        from journalbots.plugins import store
        return getattr(store, name)
    if name == "BotInstallationContext":
        from journalbots.plugins.hooks import BotInstallationContext
        return BotInstallationContext
    if name == "BotManager":
        from journalbots.plugins.manager import BotManager
        return BotManager
    raise AttributeError(f"module 'journalbots.plugins' has no attribute {name!r}")
