"""YAML configuration utilities for bot installations.

Effective configuration is layered, later layers winning:
shipped default-config.yaml < stored install config < per-call override.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, Union

import yaml
from pydantic import BaseModel, ValidationError

from journalbots.constants import DEFAULT_CONFIG_FILE
from journalbots.errors import BotPluginError, PluginErrorCode

logger = logging.getLogger(__name__)

ConfigInput = Union[Dict[str, Any], str, None]


def parse_yaml_config(text: str) -> Dict[str, Any]:
    """Parse a YAML document into a dict (empty document -> {}).

    Raises:
        BotPluginError: VALIDATION_FAILED if the YAML is malformed or not a mapping
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise BotPluginError(f"Invalid YAML configuration: {e}", PluginErrorCode.VALIDATION_FAILED, e) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BotPluginError(
            "YAML configuration must be a mapping of keys to values",
            PluginErrorCode.VALIDATION_FAILED,
        )
    return data


def stringify_yaml_config(config: Dict[str, Any]) -> str:
    return yaml.safe_dump(config, indent=2, width=80, sort_keys=False, allow_unicode=True)


def load_default_config(plugin_dir: Optional[Path]) -> Tuple[Dict[str, Any], str]:
    """Read a bot's default-config.yaml.

    Returns:
        (parsed config, raw YAML text with comments); ({}, "") when absent or unreadable
    """
    if plugin_dir is None:
        return {}, ""

    config_path = Path(plugin_dir) / DEFAULT_CONFIG_FILE
    if not config_path.exists():
        logger.info(f"No {DEFAULT_CONFIG_FILE} found at {config_path}, using empty defaults")
        return {}, ""

    try:
        raw = config_path.read_text(encoding="utf-8")
        return parse_yaml_config(raw), raw
    except (OSError, BotPluginError) as e:
        logger.error(f"Error loading {config_path}: {e}")
        return {}, ""


def normalize_config(config: ConfigInput) -> Tuple[Dict[str, Any], Optional[str]]:
    """Split caller config into (parsed dict, raw YAML if the caller sent text)."""
    if config is None:
        return {}, None
    if isinstance(config, str):
        return parse_yaml_config(config), config
    return dict(config), None


def merge_config(*layers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow-merge config layers, later layers winning."""
    merged: Dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def validate_config(bot_id: str, config: Dict[str, Any], config_model: Optional[Type[BaseModel]]) -> None:
    """Validate effective config against a bot's declared pydantic model, if any.

    Raises:
        BotPluginError: VALIDATION_FAILED listing every violation
    """
    if config_model is None:
        return
    try:
        config_model.model_validate(config)
    except ValidationError as e:
        violations = [
            f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
            for error in e.errors()
        ]
        raise BotPluginError(
            f"Invalid configuration for bot {bot_id}: {'; '.join(violations)}",
            PluginErrorCode.VALIDATION_FAILED,
            violations,
        ) from e
