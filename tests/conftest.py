"""
Pytest configuration and shared fixtures for journal bot tests.
"""

import json
import sys
from pathlib import Path

import pytest

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from journalbots.framework.context import create_bot_context
from journalbots.framework.types import BotCommand, BotCommandParameter, BotResponse, CommandBot


PLUGIN_TEMPLATE = '''
from journalbots.framework.types import BotCommand, BotCommandParameter, CommandBot

VERSION = "__VERSION__"


async def greet(params, context):
    greeting = context.config.get("greeting", "Hello")
    return {"messages": [{"content": f"{greeting} {params.get('name', 'world')} (v{VERSION})"}]}


bot = CommandBot(
    id="__BOT_ID__",
    name="Greeter",
    description="Greets people",
    version=VERSION,
    commands=[
        BotCommand(
            name="greet",
            description="Say hello",
            usage="@__BOT_ID__ greet [name]",
            execute=greet,
            parameters=[BotCommandParameter(name="name", description="Who to greet")],
            examples=["@__BOT_ID__ greet alice"],
        ),
    ],
)
'''


@pytest.fixture
def make_context():
    """Factory for bot contexts with test defaults."""
    def _make(**overrides):
        values = {
            "conversation_id": "conversation-1",
            "manuscript_id": "manuscript-1",
            "message_id": "message-1",
            "user_id": "user-1",
            "user_role": "EDITOR",
        }
        values.update(overrides)
        return create_bot_context(**values)
    return _make


@pytest.fixture
def make_bot():
    """Factory for a small in-process command bot.

    The ``echo`` command returns its ``text`` parameter and the effective config.
    """
    def _make(bot_id="echo-bot", name="Echo Bot", commands=None, **kwargs):
        async def echo(params, context):
            return BotResponse(
                messages=[{"content": params.get("text", "")}],
                actions=[{"type": "ECHO", "data": {"config": dict(context.config)}}],
            )

        default_commands = [
            BotCommand(
                name="echo",
                description="Echo the text back",
                usage=f"@{bot_id} echo <text>",
                execute=echo,
                parameters=[BotCommandParameter(name="text", description="Text to echo", required=True)],
                examples=[f"@{bot_id} echo hello"],
            ),
        ]
        return CommandBot(
            id=bot_id,
            name=name,
            description="Echoes messages",
            version="1.0.0",
            commands=commands if commands is not None else default_commands,
            **kwargs,
        )
    return _make


@pytest.fixture
def plugin_factory(tmp_path):
    """Write a plugin directory (plugin.json + plugin.py) and return its path.

    ``extra`` is appended to plugin.py, e.g. to attach hooks to ``bot``.
    """
    def _write(bot_id="greeter-bot", version="1.0.0", extra="", default_config=None,
               manifest_overrides=None, directory=None):
        plugin_dir = tmp_path / "plugins" / (directory or bot_id)
        plugin_dir.mkdir(parents=True, exist_ok=True)

        manifest = {
            "name": bot_id,
            "version": version,
            "description": "Test greeter bot",
            "author": {"name": "Test Author"},
            "platform": {"botId": bot_id},
        }
        manifest.update(manifest_overrides or {})
        (plugin_dir / "plugin.json").write_text(json.dumps(manifest), encoding="utf-8")

        source = PLUGIN_TEMPLATE.replace("__BOT_ID__", bot_id).replace("__VERSION__", version)
        (plugin_dir / "plugin.py").write_text(source + extra, encoding="utf-8")

        if default_config is not None:
            (plugin_dir / "default-config.yaml").write_text(default_config, encoding="utf-8")
        return plugin_dir
    return _write


@pytest.fixture
def engine_factory(tmp_path):
    """Build a BotEngine over an in-memory store with tmp directories."""
    from journalbots.engine import BotEngine
    from journalbots.plugins.store import InMemoryBotStore

    def _make(bundled_dir=None, store=None, timeout_ms=None):
        return BotEngine(
            store=store or InMemoryBotStore(),
            bundled_dir=bundled_dir or (tmp_path / "bundled"),
            work_dir=tmp_path / "work",
            upload_dir=tmp_path / "uploads",
            timeout_ms=timeout_ms,
        )
    return _make


@pytest.fixture
def bundled_bots_dir():
    """The repository's bundled bot directory."""
    return project_root / "plugins" / "bundled"
