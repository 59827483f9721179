"""Structural validation of loaded bot plugins."""

from typing import Any

from pydantic import ValidationError

from journalbots.framework.types import ValidationResult
from journalbots.plugins.manifest import BotPluginManifest


def _manifest_errors(manifest: Any) -> list[str]:
    if isinstance(manifest, BotPluginManifest):
        return []
    if manifest is None:
        return ["Plugin must export a manifest"]
    try:
        BotPluginManifest.model_validate(manifest)
    except ValidationError as e:
        return [
            f"Manifest {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
    return []


def _manifest_bot_id(manifest: Any) -> Any:
    if isinstance(manifest, BotPluginManifest):
        return manifest.bot_id
    if isinstance(manifest, dict):
        platform = manifest.get("platform") or {}
        return platform.get("botId") or platform.get("bot_id")
    return None


def validate_bot_plugin(plugin: Any) -> ValidationResult:
    """Check a plugin's manifest schema and bot shape.

    Never raises; returns every violation found.
    """
    manifest = getattr(plugin, "manifest", None)
    errors = _manifest_errors(manifest)

    bot = getattr(plugin, "bot", None)
    if bot is None:
        errors.append("Plugin must export a bot property")
    else:
        bot_id = getattr(bot, "id", None)
        if not bot_id:
            errors.append("Bot must have an id")
        elif bot_id != _manifest_bot_id(manifest):
            errors.append("Bot ID must match manifest platform.botId")

        if not getattr(bot, "name", None):
            errors.append("Bot must have a name")
        if not getattr(bot, "version", None):
            errors.append("Bot must have a version")

        commands = getattr(bot, "commands", None)
        if not isinstance(commands, list) or not commands:
            errors.append("Bot must have at least one command")
            commands = commands if isinstance(commands, list) else []

        for i, command in enumerate(commands):
            if not getattr(command, "name", None):
                errors.append(f"Command {i}: name is required")
            if not getattr(command, "description", None):
                errors.append(f"Command {i}: description is required")
            if not callable(getattr(command, "execute", None)):
                errors.append(f"Command {i}: execute must be a function")

    for hook in ("activate", "deactivate"):
        value = getattr(plugin, hook, None)
        if value is not None and not callable(value):
            errors.append(f"{hook} must be a function if provided")

    return ValidationResult.from_errors(errors)
