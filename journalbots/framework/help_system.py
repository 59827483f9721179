"""Help generation for command bots.

One generator serves both the chat ``help`` command and the admin help view.
Bots that do not declare a ``help`` command get a default one injected at
registration time.
"""

from dataclasses import replace
from typing import Literal, Optional

from journalbots.framework.types import BotCommand, BotCommandParameter, BotResponse, CommandBot

HelpFormat = Literal["markdown", "text"]

VALID_SECTION_POSITIONS = ("before", "after")


class _Markup:
    """Markup tokens for the requested output format."""

    def __init__(self, fmt: HelpFormat):
        markdown = fmt == "markdown"
        self.h1 = "# " if markdown else ""
        self.h2 = "## " if markdown else ""
        self.bold = "**" if markdown else ""
        self.code = "`" if markdown else ""


def generate_bot_help(
    bot: CommandBot,
    command_name: Optional[str] = None,
    include_metadata: bool = True,
    fmt: HelpFormat = "markdown",
) -> str:
    """Generate general help for a bot, or detailed help for one of its commands.

    Args:
        bot: Bot to describe
        command_name: If set, describe only this command
        include_metadata: Include the version line in general help
        fmt: "markdown" or "text"

    Returns:
        Help text (trimmed)
    """
    if command_name:
        return _generate_command_help(bot, command_name, fmt)
    return _generate_general_help(bot, include_metadata, fmt)


def _describe_parameter(param: BotCommandParameter, m: _Markup) -> str:
    requirement = "required" if param.required else "optional"
    text = f"- {m.code}{param.name}{m.code} ({param.type}, {requirement})"
    if param.default_value is not None:
        text += f" - Default: {m.code}{param.default_value}{m.code}"
    text += f"\n  {param.description}\n"
    if param.enum_values:
        text += f"  Valid values: {', '.join(f'{m.code}{v}{m.code}' for v in param.enum_values)}\n"
    if param.examples:
        text += f"  Examples: {', '.join(f'{m.code}{v}{m.code}' for v in param.examples)}\n"
    return text


def _generate_command_help(bot: CommandBot, command_name: str, fmt: HelpFormat) -> str:
    command = bot.get_command(command_name)
    if command is None:
        return (
            f"❌ Command '{command_name}' not found. "
            f"Use `@{bot.id} help` to see all available commands."
        )

    m = _Markup(fmt)
    text = f"{m.h1}Help: {command.name}\n\n"

    if command.help:
        text += f"{command.help}\n\n"
        return text.strip()

    text += f"{command.description}\n\n"
    text += f"{m.bold}Usage:{m.bold} {m.code}{command.usage}{m.code}\n\n"

    if command.parameters:
        text += f"{m.h2}Parameters\n\n"
        for param in command.parameters:
            text += _describe_parameter(param, m)
        text += "\n"

    if command.examples:
        text += f"{m.h2}Examples\n\n"
        for example in command.examples:
            text += f"- {m.code}{example}{m.code}\n"
        text += "\n"

    if command.permissions:
        text += f"{m.h2}Required Permissions\n\n"
        text += "\n".join(f"- {p}" for p in command.permissions) + "\n\n"

    return text.strip()


def _generate_general_help(bot: CommandBot, include_metadata: bool, fmt: HelpFormat) -> str:
    m = _Markup(fmt)
    text = f"{m.h1}{bot.name}\n\n{bot.description}\n\n"

    if include_metadata:
        text += f"{m.bold}Version:{m.bold} {bot.version}\n\n"

    for section in bot.custom_help_sections:
        if section.position == "before":
            text += f"{m.h2}{section.title}\n\n{section.content}\n\n"

    if bot.help.overview:
        text += f"{m.h2}Overview\n\n{bot.help.overview}\n\n"
    if bot.help.quick_start:
        text += f"{m.h2}Quick Start\n\n{bot.help.quick_start}\n\n"

    text += f"{m.h2}Available Commands\n\n"
    for command in bot.commands:
        text += f"{m.bold}{command.name}{m.bold} - {command.description}\n"
        text += f"Usage: {m.code}{command.usage}{m.code}\n\n"

    if bot.keywords:
        keywords = ", ".join(f"{m.code}{k}{m.code}" for k in bot.keywords)
        text += f"{m.h2}Keywords\n\nThis bot also responds to these keywords: {keywords}\n\n"

    if bot.help.examples:
        text += f"{m.h2}Complete Examples\n\n"
        for example in bot.help.examples:
            text += f"{m.code}{example}{m.code}\n\n"

    for section in bot.custom_help_sections:
        if section.position == "after":
            text += f"{m.h2}{section.title}\n\n{section.content}\n\n"

    text += f"{m.h2}Getting Detailed Help\n\n"
    text += f"Use {m.code}@{bot.id} help <command-name>{m.code} for detailed help on specific commands."
    return text.strip()


def create_default_help_command(bot: CommandBot) -> BotCommand:
    """Build the ``help [command-name]`` command injected into bots without one."""
    other_commands = [cmd.name for cmd in bot.commands if cmd.name != "help"]

    async def execute(params, context):
        help_content = generate_bot_help(bot, command_name=params.get("command"))
        return BotResponse(messages=[{"content": help_content}])

    return BotCommand(
        name="help",
        description="Show help information for this bot",
        usage=f"@{bot.id} help [command-name]",
        parameters=[
            BotCommandParameter(
                name="command",
                description="Optional: Get detailed help for a specific command",
                type="string",
                required=False,
                examples=other_commands,
            )
        ],
        examples=[f"@{bot.id} help"] + [f"@{bot.id} help {name}" for name in other_commands[:2]],
        permissions=[],
        execute=execute,
    )


def has_help_command(bot: CommandBot) -> bool:
    return any(cmd.name == "help" for cmd in bot.commands)


def inject_help_command(bot: CommandBot) -> CommandBot:
    """Return a copy of ``bot`` with a default help command appended if it lacks one."""
    if has_help_command(bot):
        return bot
    return replace(bot, commands=[*bot.commands, create_default_help_command(bot)])


def validate_bot_help(bot: CommandBot) -> tuple[bool, list[str]]:
    """Check custom help sections and per-command help for obvious mistakes.

    Returns:
        (is_valid, warnings)
    """
    warnings = []

    for section in bot.custom_help_sections:
        if not section.title.strip():
            warnings.append("Custom help section has empty title")
        if not section.content.strip():
            warnings.append(f"Custom help section '{section.title}' has empty content")
        if section.position not in VALID_SECTION_POSITIONS:
            warnings.append(f"Custom help section '{section.title}' has invalid position: {section.position}")

    for command in bot.commands:
        if command.help and len(command.help.strip()) < 10:
            warnings.append(f"Command '{command.name}' has very short help content")

    return not warnings, warnings
