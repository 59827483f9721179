"""Command framework: types, parser, help generator and executor."""

from journalbots.framework.commands import CommandParser
from journalbots.framework.context import create_bot_context
from journalbots.framework.executor import BotExecutor
from journalbots.framework.help_system import generate_bot_help
from journalbots.framework.types import (
    BotAction,
    BotCommand,
    BotCommandParameter,
    BotContext,
    BotEventName,
    BotHelp,
    BotResponse,
    BotTrigger,
    CommandBot,
    ParsedCommand,
)

__all__ = [
    "BotAction",
    "BotCommand",
    "BotCommandParameter",
    "BotContext",
    "BotEventName",
    "BotExecutor",
    "BotHelp",
    "BotResponse",
    "BotTrigger",
    "CommandBot",
    "CommandParser",
    "ParsedCommand",
    "create_bot_context",
    "generate_bot_help",
]
