"""Bot executor - resolves parsed commands to command bodies and runs them.

Execution failures (validation, timeouts, exceptions raised by command
bodies) are always converted into a BotResponse carrying ``errors``; they
never propagate to the message-processing loop.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from journalbots.constants import get_execution_timeout_ms
from journalbots.errors import BotExecutionError, BotTimeoutError
from journalbots.framework.commands import CommandParser
from journalbots.framework.types import (
    ActionHandlerContext,
    ActionHandlerResult,
    BotCommand,
    BotContext,
    BotResponse,
    CommandBot,
    ParsedCommand,
)

logger = logging.getLogger(__name__)


@dataclass
class InstalledBot:
    """Executor-side installation entry for a registered bot."""

    config: Dict[str, Any] = field(default_factory=dict)
    is_enabled: bool = True


def _event_key(name: Any) -> str:
    return name.value if isinstance(name, Enum) else str(name)


def _discard_late_result(task: asyncio.Task) -> None:
    """Observe the outcome of a task that lost the timeout race."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Timed-out bot task finished later with error: {error}")


class BotExecutor:
    """Holds registered bots and their installations, and executes their commands."""

    def __init__(self, timeout_ms: Optional[int] = None):
        """
        Args:
            timeout_ms: Per-invocation timeout; defaults to BOT_EXECUTION_TIMEOUT (30000ms)
        """
        self.timeout_ms = timeout_ms
        self._command_bots: Dict[str, CommandBot] = {}
        self._installations: Dict[str, InstalledBot] = {}
        self._bot_user_ids: Dict[str, str] = {}
        self._parser = CommandParser()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_command_bot(self, bot: CommandBot) -> None:
        augmented = self._parser.register_bot(bot)
        self._command_bots[bot.id] = augmented
        logger.info(f"Registered command bot: {bot.id} ({len(augmented.commands)} commands)")

    def unregister_bot(self, bot_id: str) -> None:
        self._parser.unregister_bot(bot_id)
        self._command_bots.pop(bot_id, None)
        self._installations.pop(bot_id, None)
        self._bot_user_ids.pop(bot_id, None)
        logger.info(f"Unregistered command bot: {bot_id}")

    def set_bot_user_id(self, bot_id: str, user_id: str) -> None:
        self._bot_user_ids[bot_id] = user_id

    def get_bot_user_id(self, bot_id: str) -> Optional[str]:
        return self._bot_user_ids.get(bot_id)

    def install_bot(self, bot_id: str, config: Optional[Dict[str, Any]] = None) -> None:
        if bot_id not in self._command_bots:
            raise BotExecutionError(f"Bot {bot_id} is not registered")
        self._installations[bot_id] = InstalledBot(config=dict(config or {}), is_enabled=True)

    def uninstall_bot(self, bot_id: str) -> None:
        self._installations.pop(bot_id, None)

    def is_registered(self, bot_id: str) -> bool:
        return bot_id in self._command_bots

    def is_installed(self, bot_id: str) -> bool:
        installation = self._installations.get(bot_id)
        return installation is not None and installation.is_enabled

    def get_installation_config(self, bot_id: str) -> Optional[Dict[str, Any]]:
        installation = self._installations.get(bot_id)
        return dict(installation.config) if installation else None

    def get_installed_bots(self) -> List[Tuple[str, CommandBot, Dict[str, Any]]]:
        return [
            (bot_id, self._command_bots[bot_id], dict(installation.config))
            for bot_id, installation in self._installations.items()
            if bot_id in self._command_bots
        ]

    def get_command_bots(self) -> List[CommandBot]:
        return list(self._command_bots.values())

    def get_bot(self, bot_id: str) -> Optional[CommandBot]:
        return self._command_bots.get(bot_id)

    @property
    def command_parser(self) -> CommandParser:
        return self._parser

    def get_bot_help(self, bot_id: str) -> Optional[str]:
        if bot_id not in self._command_bots:
            return None
        return self._parser.generate_bot_help(bot_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _resolve_timeout_ms(self) -> int:
        return self.timeout_ms if self.timeout_ms is not None else get_execution_timeout_ms()

    async def _race_timeout(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` but give up after the execution timeout.

        The losing task is cancelled without being awaited, so the caller is
        unblocked even if the body ignores cancellation.
        """
        task = asyncio.ensure_future(awaitable)
        try:
            done, _ = await asyncio.wait({task}, timeout=self._resolve_timeout_ms() / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            if task.cancelled():
                raise BotExecutionError("Bot execution cancelled")
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_late_result)
        raise BotTimeoutError()

    async def _invoke(self, func, *args) -> Any:
        result = func(*args)
        if inspect.isawaitable(result):
            return await self._race_timeout(result)
        return result

    async def execute_command_bot(
        self,
        parsed_command: ParsedCommand,
        context: BotContext,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> BotResponse:
        """Execute one parsed command.

        Raises:
            BotExecutionError: The bot is not registered, or not installed/enabled
        """
        bot_id = parsed_command.bot_id
        bot = self._command_bots.get(bot_id)
        if bot is None:
            raise BotExecutionError(f"Command bot {bot_id} is not registered")

        installation = self._installations.get(bot_id)
        if installation is None or not installation.is_enabled:
            raise BotExecutionError(f"Bot {bot_id} is not installed or is disabled")

        command = None if parsed_command.is_unrecognized else bot.get_command(parsed_command.command)
        if command is None:
            return self._unrecognized_command_response(bot, parsed_command.command)

        validation = self._parser.validate_parameters(parsed_command.parameters, command)
        if not validation.is_valid:
            return BotResponse(
                bot_id=bot_id,
                messages=[{"content": self._format_validation_errors(command, validation.errors)}],
                errors=validation.errors,
            )

        enhanced_context = replace(
            context,
            config={**context.config, **installation.config, **(config_overrides or {})},
        )

        try:
            result = await self._invoke(command.execute, parsed_command.parameters, enhanced_context)
            response = BotResponse.from_value(result)
        except BotTimeoutError as e:
            logger.warning(f"Command bot {bot_id} '{command.name}' timed out")
            return BotResponse(bot_id=bot_id, errors=[str(e)])
        except Exception as e:
            logger.error(f"Command bot {bot_id} execution failed: {e}", exc_info=True)
            return BotResponse(bot_id=bot_id, errors=[str(e) or "Unknown error occurred"])

        response.bot_id = bot_id
        return response

    async def process_message(self, message_content: str, context: BotContext) -> List[BotResponse]:
        """Parse a message and execute each resulting command in order, isolating failures."""
        responses = []
        for parsed_command in self._parser.parse_message(message_content):
            try:
                responses.append(await self.execute_command_bot(parsed_command, context))
            except Exception as e:
                logger.error(f"Failed to execute command bot {parsed_command.bot_id}: {e}")
                responses.append(BotResponse(
                    bot_id=parsed_command.bot_id,
                    errors=[str(e) or "Unknown error occurred"],
                ))
        return responses

    async def execute_action_handler(
        self,
        bot_id: str,
        action_name: str,
        params: Dict[str, Any],
        context: ActionHandlerContext,
    ) -> ActionHandlerResult:
        """Invoke a named action handler (button/callback follow-ups)."""
        bot = self._command_bots.get(bot_id)
        if bot is None:
            return ActionHandlerResult(success=False, error=f"Bot {bot_id} is not registered")

        handler = bot.action_handlers.get(action_name)
        if handler is None:
            return ActionHandlerResult(
                success=False,
                error=f"Bot {bot_id} has no handler for action {action_name}",
            )

        try:
            result = await self._invoke(handler, params, context)
            if isinstance(result, ActionHandlerResult):
                return result
            return ActionHandlerResult.model_validate(result)
        except Exception as e:
            logger.error(f"Action handler {bot_id}/{action_name} failed: {e}", exc_info=True)
            return ActionHandlerResult(success=False, error=str(e) or "Unknown error")

    async def dispatch_event(
        self,
        event_name: Any,
        context: BotContext,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[BotResponse]:
        """Run the lifecycle-event handler of every installed, enabled bot subscribed to ``event_name``."""
        key = _event_key(event_name)
        responses = []

        for bot_id, bot in list(self._command_bots.items()):
            if not self.is_installed(bot_id):
                continue
            handlers = {_event_key(name): handler for name, handler in bot.events.items()}
            handler = handlers.get(key)
            if handler is None:
                continue

            enhanced_context = replace(
                context,
                config={**context.config, **self._installations[bot_id].config},
            )
            try:
                result = await self._invoke(handler, enhanced_context, dict(payload or {}))
            except Exception as e:
                logger.error(f"Event handler {bot_id}/{key} failed: {e}", exc_info=not isinstance(e, BotTimeoutError))
                responses.append(BotResponse(bot_id=bot_id, errors=[str(e) or "Unknown error occurred"]))
                continue

            if result is None:
                continue
            response = BotResponse.from_value(result)
            response.bot_id = bot_id
            responses.append(response)

        return responses

    # ------------------------------------------------------------------
    # Response formatting
    # ------------------------------------------------------------------

    @staticmethod
    def _format_validation_errors(command: BotCommand, errors: List[str]) -> str:
        message = f"❌ **Invalid Parameters for `{command.name}`**\n\n"
        for error in errors:
            message += f"- {error}\n"
        message += f"\n**Usage:** `{command.usage}`\n"
        if command.examples:
            message += "\n**Examples:**\n"
            for example in command.examples[:3]:
                message += f"- `{example}`\n"
        return message

    @staticmethod
    def _unrecognized_command_response(bot: CommandBot, unrecognized_command: str) -> BotResponse:
        message = f"❌ **Unrecognized Command:** `{unrecognized_command}`\n\n"
        message += f"I don't recognize the command `{unrecognized_command}` for **{bot.name}**.\n\n"

        if unrecognized_command.lower() == "bot":
            message += (
                f"💡 **Tip:** It looks like you might have typed the bot name with spaces. "
                f"Use `@{bot.id}` instead of `@{bot.name}`.\n\n"
            )

        message += "**Available Commands:**\n"
        for command in bot.commands:
            message += f"• `{command.name}` - {command.description}\n"

        message += "\n**Usage Examples:**\n"
        for command in bot.commands[:3]:
            if command.examples:
                message += f"• `{command.examples[0]}`\n"

        message += f"\n💡 **Need more help?** Try `@{bot.id} help` for detailed documentation."

        return BotResponse(bot_id=bot.id, messages=[{"content": message}])
