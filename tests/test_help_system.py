"""Tests for help generation."""

import asyncio

from journalbots.framework.help_system import (
    create_default_help_command,
    generate_bot_help,
    inject_help_command,
    validate_bot_help,
)
from journalbots.framework.types import (
    BotCommand,
    BotCommandParameter,
    BotCustomHelpSection,
    BotHelp,
    CommandBot,
)


async def _noop(params, context):
    return None


def _documented_bot(custom_help_sections=None):
    if custom_help_sections is None:
        custom_help_sections = [
            BotCustomHelpSection(title="Before Section", content="Shown first", position="before"),
            BotCustomHelpSection(title="After Section", content="Shown last"),
        ]
    return CommandBot(
        id="docs-bot",
        name="Docs Bot",
        description="A well documented bot",
        version="2.1.0",
        keywords=["docs"],
        help=BotHelp(overview="Explains things.", quick_start="Say hi.", examples=["@docs-bot explain x"]),
        custom_help_sections=custom_help_sections,
        commands=[
            BotCommand(
                name="explain",
                description="Explain a topic",
                usage="@docs-bot explain <topic>",
                execute=_noop,
                parameters=[
                    BotCommandParameter(
                        name="topic", description="Topic to explain", required=True, examples=["peer-review"]
                    ),
                    BotCommandParameter(
                        name="depth",
                        description="How deep",
                        type="enum",
                        enum_values=["short", "long"],
                        default_value="short",
                    ),
                ],
                examples=["@docs-bot explain peer-review"],
                permissions=["read_manuscript"],
            ),
        ],
    )


class TestGeneralHelp:
    """Tests for bot-level help."""

    def test_sections_in_order(self):
        text = generate_bot_help(_documented_bot())
        assert text.startswith("# Docs Bot")
        assert "**Version:** 2.1.0" in text
        order = [
            "## Before Section",
            "## Overview",
            "## Quick Start",
            "## Available Commands",
            "## Keywords",
            "## Complete Examples",
            "## After Section",
            "## Getting Detailed Help",
        ]
        positions = [text.index(heading) for heading in order]
        assert positions == sorted(positions)

    def test_without_metadata(self):
        text = generate_bot_help(_documented_bot(), include_metadata=False)
        assert "Version" not in text

    def test_text_format_has_no_markup(self):
        text = generate_bot_help(_documented_bot(), fmt="text")
        assert "#" not in text
        assert "**" not in text
        assert "`" not in text

    def test_lists_commands(self):
        text = generate_bot_help(_documented_bot())
        assert "**explain** - Explain a topic" in text
        assert "Usage: `@docs-bot explain <topic>`" in text


class TestCommandHelp:
    """Tests for command-level help."""

    def test_parameters_examples_permissions(self):
        text = generate_bot_help(_documented_bot(), command_name="explain")
        assert text.startswith("# Help: explain")
        assert "- `topic` (string, required)" in text
        assert "- `depth` (enum, optional) - Default: `short`" in text
        assert "Valid values: `short`, `long`" in text
        assert "## Examples" in text
        assert "## Required Permissions" in text
        assert "- read_manuscript" in text

    def test_custom_command_help_replaces_generated(self):
        bot = _documented_bot()
        bot.commands[0].help = "Hand-written explanation of explain."
        text = generate_bot_help(bot, command_name="explain")
        assert text == "# Help: explain\n\nHand-written explanation of explain."

    def test_unknown_command(self):
        text = generate_bot_help(_documented_bot(), command_name="missing")
        assert text.startswith("❌ Command 'missing' not found.")
        assert "@docs-bot help" in text


class TestHelpCommand:
    """Tests for the injected help command."""

    def test_injected_once(self):
        bot = inject_help_command(_documented_bot())
        assert [c.name for c in bot.commands] == ["explain", "help"]
        assert inject_help_command(bot) is bot

    def test_original_bot_untouched(self):
        original = _documented_bot()
        inject_help_command(original)
        assert [c.name for c in original.commands] == ["explain"]

    def test_help_command_shape(self):
        command = create_default_help_command(_documented_bot())
        assert command.usage == "@docs-bot help [command-name]"
        assert command.parameters[0].name == "command"
        assert command.parameters[0].examples == ["explain"]
        assert command.examples == ["@docs-bot help", "@docs-bot help explain"]

    def test_help_command_executes(self):
        command = create_default_help_command(_documented_bot())
        response = asyncio.run(command.execute({"command": "explain"}, None))
        assert response.messages[0].content.startswith("# Help: explain")


class TestValidateBotHelp:
    def test_valid(self):
        assert validate_bot_help(_documented_bot()) == (True, [])

    def test_warnings(self):
        bot = _documented_bot(custom_help_sections=[BotCustomHelpSection(title=" ", content="")])
        bot.commands[0].help = "short"
        is_valid, warnings = validate_bot_help(bot)
        assert not is_valid
        assert "Custom help section has empty title" in warnings
        assert "Command 'explain' has very short help content" in warnings
