"""Command parser - turns chat text into structured bot invocations.

Grammar handled here:

- ``@bot command rest-of-line`` mentions, where the rest runs to the end of the
  line or to the next ``@name`` that addresses a registered bot
- bare ``@bot`` mentions, answered with the bot's help command
- keyword triggers, answered with the bot's ``auto-trigger`` command
- ``key=value`` (optionally quoted) and positional parameters, where a
  positional token starting with ``@`` extends to the next ``key=value``
  boundary or the end of the text
"""

import logging
import re
from typing import Any, Dict, List, Optional

from journalbots.framework.coercion import convert_value, validate_parameters
from journalbots.framework.help_system import generate_bot_help, inject_help_command
from journalbots.framework.types import (
    BotCommand,
    BotCommandParameter,
    CommandBot,
    ParsedCommand,
    ValidationResult,
)

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"(?<!\w)@([a-zA-Z0-9-]+)\s+([a-zA-Z0-9-]+)")
BARE_MENTION_PATTERN = re.compile(r"(?<!\w)@([a-zA-Z0-9-]+)(?![\s\w-])")
BOT_TOKEN_PATTERN = re.compile(r"(?<!\w)@([a-zA-Z0-9-]+)")
KEY_VALUE_PATTERN = re.compile(r"(?<!\S)(\w+)=(\"[^\"]*\"|'[^']*'|\S+)")
TOKEN_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'|\S+")

UNRECOGNIZED_TEXT_KEY = "original_text"
AUTO_TRIGGER_COMMAND = "auto-trigger"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


class CommandParser:
    """Registry of command bots plus the message parser that addresses them."""

    def __init__(self):
        self._bots: Dict[str, CommandBot] = {}

    def register_bot(self, bot: CommandBot) -> CommandBot:
        """Register a bot (help command injected), replacing any bot with the same id.

        Returns:
            The help-augmented bot that was stored
        """
        if bot.id in self._bots:
            logger.warning(f"Bot '{bot.id}' already registered with parser, overwriting")
        augmented = inject_help_command(bot)
        self._bots[bot.id] = augmented
        return augmented

    def unregister_bot(self, bot_id: str) -> Optional[CommandBot]:
        return self._bots.pop(bot_id, None)

    def get_bot(self, bot_id: str) -> Optional[CommandBot]:
        return self._bots.get(bot_id)

    def get_all_bots(self) -> List[CommandBot]:
        return list(self._bots.values())

    # ------------------------------------------------------------------
    # Message parsing
    # ------------------------------------------------------------------

    def parse_message(self, text: str) -> List[ParsedCommand]:
        """Parse a chat message into bot invocations, in scan order.

        Never raises: unknown bots are skipped and unknown commands come back
        flagged ``is_unrecognized``.
        """
        commands: List[ParsedCommand] = []
        consumed: List[tuple[int, int]] = []

        pos = 0
        while True:
            match = MENTION_PATTERN.search(text, pos)
            if match is None:
                break

            bot = self.find_bot_by_name(match.group(1))
            if bot is None:
                pos = match.end()
                continue

            command_name = match.group(2)
            rest_end = self._find_rest_end(text, match.end())
            param_text = text[match.end():rest_end].strip()
            raw_text = text[match.start():rest_end].rstrip()
            consumed.append((match.start(), rest_end))
            pos = rest_end

            command = bot.get_command(command_name)
            if command is not None:
                commands.append(ParsedCommand(
                    bot_id=bot.id,
                    command=command_name,
                    parameters=self.parse_parameters(param_text, command.parameters),
                    raw_text=raw_text,
                ))
            else:
                commands.append(ParsedCommand(
                    bot_id=bot.id,
                    command=command_name,
                    parameters={UNRECOGNIZED_TEXT_KEY: param_text},
                    raw_text=raw_text,
                    is_unrecognized=True,
                ))

        for match in BARE_MENTION_PATTERN.finditer(text):
            if any(start <= match.start() < end for start, end in consumed):
                continue
            bot = self.find_bot_by_name(match.group(1))
            if bot is None:
                continue
            commands.append(ParsedCommand(
                bot_id=bot.id,
                command="help",
                parameters={},
                raw_text=match.group(0),
            ))

        lowered = text.lower()
        for bot in self._bots.values():
            auto_command = bot.get_command(AUTO_TRIGGER_COMMAND)
            if auto_command is None:
                continue
            for keyword in bot.keywords:
                if keyword.lower() in lowered:
                    commands.append(ParsedCommand(
                        bot_id=bot.id,
                        command=AUTO_TRIGGER_COMMAND,
                        parameters={"keyword": keyword, "full_text": text},
                        raw_text=keyword,
                    ))

        return commands

    def _find_rest_end(self, text: str, start: int) -> int:
        """End of a command's parameter text: newline or the next mention of a registered bot."""
        newline = text.find("\n", start)
        end = len(text) if newline == -1 else newline
        for token in BOT_TOKEN_PATTERN.finditer(text, start, end):
            if self.find_bot_by_name(token.group(1)) is not None:
                return token.start()
        return end

    def parse_parameters(self, text: str, param_defs: List[BotCommandParameter]) -> Dict[str, Any]:
        """Parse the free-text remainder of a command into typed parameter values."""
        params: Dict[str, Any] = {}

        if not text.strip():
            self._backfill_defaults(params, param_defs)
            return params

        # Help-command shape: "help status" means command=status
        if len(param_defs) == 1 and param_defs[0].name == "command":
            params["command"] = text.split()[0]
            return params

        by_name = {param.name: param for param in param_defs}
        tokens: List[str] = []
        last = 0
        for match in KEY_VALUE_PATTERN.finditer(text):
            tokens.extend(self._split_positional(text[last:match.start()]))
            last = match.end()

            key, raw_value = match.group(1), match.group(2)
            param = by_name.get(key)
            if param is None:
                tokens.append(match.group(0))
                continue
            value = convert_value(_unquote(raw_value), param)
            if value is not None:
                params[key] = value
        tokens.extend(self._split_positional(text[last:]))

        positional_params = [param for param in param_defs if param.name not in params]
        for param, token in zip(positional_params, tokens):
            value = convert_value(token, param)
            if value is not None:
                params[param.name] = value

        self._backfill_defaults(params, param_defs)
        return params

    @staticmethod
    def _split_positional(segment: str) -> List[str]:
        tokens = []
        for match in TOKEN_PATTERN.finditer(segment):
            token = match.group(0)
            if token.startswith("@"):
                tokens.append(segment[match.start():].strip())
                break
            tokens.append(_unquote(token))
        return tokens

    @staticmethod
    def _backfill_defaults(params: Dict[str, Any], param_defs: List[BotCommandParameter]) -> None:
        for param in param_defs:
            if param.name not in params and not param.required and param.has_default:
                params[param.name] = param.default_value

    # ------------------------------------------------------------------
    # Lookup, validation, help
    # ------------------------------------------------------------------

    def find_bot_by_name(self, name: str) -> Optional[CommandBot]:
        """Resolve a mention to a bot.

        Tries, in order: exact id, display name with spaces as hyphens,
        first word of the display name, id prefix ("editorial" -> "editorial-bot").
        """
        by_id = self._bots.get(name)
        if by_id is not None:
            return by_id

        lower_name = name.lower()
        for bot in self._bots.values():
            display_name = bot.name.lower()
            if re.sub(r"\s+", "-", display_name) == lower_name:
                return bot
            words = display_name.split()
            if words and words[0] == lower_name:
                return bot
            if bot.id.lower().startswith(f"{lower_name}-"):
                return bot
        return None

    def validate_parameters(self, parameters: Dict[str, Any], command: BotCommand) -> ValidationResult:
        return validate_parameters(parameters, command)

    def generate_bot_help(self, bot_id: str, command_name: Optional[str] = None) -> str:
        bot = self._bots.get(bot_id)
        if bot is None:
            return "Bot not found"
        return generate_bot_help(bot, command_name=command_name)
