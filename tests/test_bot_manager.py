"""Tests for BotManager lifecycle operations."""

import asyncio

import pytest

from journalbots.errors import BotPluginError, PluginErrorCode
from journalbots.plugins.store import InMemoryBotStore


HOOK_EXTRA = '''

async def on_install(installation):
    await installation.upload_file("letter.md", b"Dear author", "text/markdown", description="Letter")

bot.on_install = on_install
'''

FAILING_HOOK_EXTRA = '''

async def on_install(installation):
    raise RuntimeError("upload service down")

bot.on_install = on_install
'''

CONFIG_MODEL_EXTRA = '''

from pydantic import BaseModel


class GreeterConfig(BaseModel):
    greeting: str = "Hello"
    repeat: int = 1


bot.config_model = GreeterConfig
'''

ACTIVATION_LOG_EXTRA = '''

from pathlib import Path


def activate():
    with open(Path(__file__).with_name("activations.log"), "a", encoding="utf-8") as f:
        f.write("activate\\n")
'''


def _local(path):
    return {"type": "local", "path": str(path)}


def _greet(engine, make_context, bot_id="greeter-bot", name="alice"):
    responses = asyncio.run(engine.process_message(f"@{bot_id} greet {name}", make_context()))
    assert len(responses) == 1
    return responses[0]


class TestInstall:
    """Tests for BotManager.install."""

    def test_install_local(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        path = plugin_factory(default_config="# Greeting used by greet\ngreeting: Howdy\n")

        installation = asyncio.run(engine.manager.install(_local(path), installed_by="admin-1"))

        assert installation.bot_id == "greeter-bot"
        assert installation.version == "1.0.0"
        assert installation.package_name == "greeter-bot"
        assert installation.is_enabled
        assert not installation.is_default
        assert installation.config == {"greeting": "Howdy"}
        assert installation.yaml_config == "# Greeting used by greet\ngreeting: Howdy\n"
        assert installation.source == {"type": "local", "path": str(path)}
        assert installation.installed_by == "admin-1"

        assert engine.executor.is_installed("greeter-bot")
        assert engine.executor.get_bot_user_id("greeter-bot") == "bot-greeter-bot"
        assert asyncio.run(engine.store.get_bot_definition("greeter-bot")).version == "1.0.0"

        response = _greet(engine, make_context)
        assert response.messages[0].content == "Howdy alice (v1.0.0)"

    def test_caller_config_merged_over_defaults(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory(default_config="greeting: Howdy\npunctuation: '!'\n")

        installation = asyncio.run(engine.manager.install(_local(path), {"greeting": "Hi"}))

        assert installation.config == {"greeting": "Hi", "punctuation": "!"}
        assert installation.yaml_config == "greeting: Hi\npunctuation: '!'\n"

    def test_caller_yaml_kept_verbatim(self, engine_factory, plugin_factory):
        engine = engine_factory()
        yaml_text = "# Friendly\ngreeting: Hey\n"

        installation = asyncio.run(engine.manager.install(_local(plugin_factory()), yaml_text))

        assert installation.config == {"greeting": "Hey"}
        assert installation.yaml_config == yaml_text

    def test_already_installed_leaves_record_unchanged(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory()
        original = asyncio.run(engine.manager.install(_local(path), {"greeting": "Hi"}))

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.install(_local(path), {"greeting": "Changed"}))

        assert exc_info.value.code == PluginErrorCode.ALREADY_INSTALLED
        assert asyncio.run(engine.manager.get("greeter-bot")) == original
        assert engine.executor.is_installed("greeter-bot")

    def test_duplicate_local_install_skips_activation(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory(extra=ACTIVATION_LOG_EXTRA)
        asyncio.run(engine.manager.install(_local(path)))

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.install(_local(path)))

        assert exc_info.value.code == PluginErrorCode.ALREADY_INSTALLED
        assert (path / "activations.log").read_text(encoding="utf-8") == "activate\n"
        assert engine.executor.is_installed("greeter-bot")

    def test_invalid_plugin_leaves_no_trace(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory(manifest_overrides={"platform": {"botId": "someone-else"}})

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.install(_local(path)))

        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED
        assert asyncio.run(engine.manager.list()) == []
        assert engine.loader.get_loaded_plugins() == []

    def test_config_model_violation(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory(extra=CONFIG_MODEL_EXTRA)

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.install(_local(path), {"repeat": "many"}))

        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED
        assert any(v.startswith("repeat:") for v in exc_info.value.details)
        assert asyncio.run(engine.manager.get("greeter-bot")) is None
        assert engine.loader.get_loaded_plugin("greeter-bot") is None

    def test_on_install_hook_uploads_file(self, tmp_path, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory(extra=HOOK_EXTRA))))

        files = asyncio.run(engine.store.list_config_files("greeter-bot"))
        assert len(files) == 1
        assert files[0].filename == "letter.md"
        assert files[0].uploaded_by == "bot-greeter-bot"
        assert (tmp_path / "uploads" / files[0].stored_name).read_bytes() == b"Dear author"

    def test_failing_hook_does_not_fail_install(self, engine_factory, plugin_factory):
        engine = engine_factory()
        installation = asyncio.run(engine.manager.install(_local(plugin_factory(extra=FAILING_HOOK_EXTRA))))
        assert installation.bot_id == "greeter-bot"
        assert engine.executor.is_installed("greeter-bot")

    def test_bad_source_descriptor(self, engine_factory):
        engine = engine_factory()
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.install({"type": "local"}))
        assert exc_info.value.code == PluginErrorCode.INSTALL_FAILED


class TestUninstall:
    """Tests for BotManager.uninstall."""

    def test_uninstall(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))

        asyncio.run(engine.manager.uninstall("greeter-bot"))

        assert asyncio.run(engine.manager.get("greeter-bot")) is None
        assert asyncio.run(engine.store.get_bot_definition("greeter-bot")) is None
        assert not engine.executor.is_registered("greeter-bot")
        assert engine.loader.get_loaded_plugin("greeter-bot") is None
        assert asyncio.run(engine.process_message("@greeter-bot greet bob", make_context())) == []

    def test_uninstall_unknown(self, engine_factory):
        engine = engine_factory()
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.uninstall("ghost-bot"))
        assert exc_info.value.code == PluginErrorCode.NOT_INSTALLED


class TestEnableDisable:
    """Tests for enable/disable."""

    def test_disable_is_idempotent(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))

        asyncio.run(engine.manager.disable("greeter-bot"))
        first = asyncio.run(engine.manager.get("greeter-bot"))
        asyncio.run(engine.manager.disable("greeter-bot"))
        second = asyncio.run(engine.manager.get("greeter-bot"))

        assert not second.is_enabled
        assert first.updated_at == second.updated_at
        assert not engine.executor.is_installed("greeter-bot")

        response = _greet(engine, make_context)
        assert response.errors == ["Bot greeter-bot is not installed or is disabled"]

    def test_enable_restores_execution(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory()), {"greeting": "Hi"}))
        asyncio.run(engine.manager.disable("greeter-bot"))

        asyncio.run(engine.manager.enable("greeter-bot"))

        assert asyncio.run(engine.manager.get("greeter-bot")).is_enabled
        assert _greet(engine, make_context).messages[0].content == "Hi alice (v1.0.0)"

    def test_enable_after_restart_activates(self, engine_factory, plugin_factory, make_context):
        store = InMemoryBotStore()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(plugin_factory())))
        asyncio.run(first.manager.disable("greeter-bot"))

        second = engine_factory(store=store)
        asyncio.run(second.manager.enable("greeter-bot"))

        assert second.executor.is_installed("greeter-bot")
        assert second.executor.get_bot_user_id("greeter-bot") == "bot-greeter-bot"

    def test_failed_enable_leaves_bot_disabled(self, engine_factory, plugin_factory, make_context):
        store = InMemoryBotStore()
        path = plugin_factory()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(path)))
        asyncio.run(first.manager.disable("greeter-bot"))

        plugin_file = path / "plugin.py"
        original = plugin_file.read_text(encoding="utf-8")
        plugin_file.write_text("def broken(:\n", encoding="utf-8")

        second = engine_factory(store=store)
        with pytest.raises(BotPluginError):
            asyncio.run(second.manager.enable("greeter-bot"))

        assert not asyncio.run(second.manager.get("greeter-bot")).is_enabled
        assert not second.executor.is_registered("greeter-bot")

        plugin_file.write_text(original, encoding="utf-8")
        asyncio.run(second.manager.enable("greeter-bot"))

        assert asyncio.run(second.manager.get("greeter-bot")).is_enabled
        assert _greet(second, make_context).messages[0].content == "Hello alice (v1.0.0)"

    def test_enable_rejects_invalid_stored_config(self, engine_factory, plugin_factory):
        store = InMemoryBotStore()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(plugin_factory(extra=CONFIG_MODEL_EXTRA))))
        asyncio.run(first.manager.disable("greeter-bot"))
        asyncio.run(store.update_installation("greeter-bot", config={"repeat": "often"}))

        second = engine_factory(store=store)
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(second.manager.enable("greeter-bot"))

        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED
        assert not asyncio.run(second.manager.get("greeter-bot")).is_enabled
        assert not second.executor.is_registered("greeter-bot")
        assert second.loader.get_loaded_plugins() == []

    def test_enable_unknown(self, engine_factory):
        engine = engine_factory()
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.enable("ghost-bot"))
        assert exc_info.value.code == PluginErrorCode.NOT_INSTALLED


class TestConfigure:
    """Tests for BotManager.configure."""

    def test_yaml_config_applies_to_next_invocation(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))
        yaml_text = "# Be formal\ngreeting: Good day\n"

        updated = asyncio.run(engine.manager.configure("greeter-bot", yaml_text))

        assert updated.config == {"greeting": "Good day"}
        assert updated.yaml_config == yaml_text
        assert _greet(engine, make_context).messages[0].content == "Good day alice (v1.0.0)"

    def test_dict_config_is_stringified(self, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))
        updated = asyncio.run(engine.manager.configure("greeter-bot", {"greeting": "Yo"}))
        assert updated.yaml_config == "greeting: Yo\n"

    def test_invalid_yaml_rejected(self, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory()), {"greeting": "Hi"}))

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.configure("greeter-bot", "greeting: [unclosed"))

        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED
        assert asyncio.run(engine.manager.get("greeter-bot")).config == {"greeting": "Hi"}
        assert engine.executor.get_installation_config("greeter-bot") == {"greeting": "Hi"}

    def test_config_model_checked(self, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory(extra=CONFIG_MODEL_EXTRA))))
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.configure("greeter-bot", {"repeat": "lots"}))
        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED

    def test_config_model_checked_when_bot_not_active(self, engine_factory, plugin_factory):
        store = InMemoryBotStore()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(plugin_factory(extra=CONFIG_MODEL_EXTRA))))
        asyncio.run(first.manager.disable("greeter-bot"))

        second = engine_factory(store=store)
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(second.manager.configure("greeter-bot", {"repeat": "not-a-number"}))

        assert exc_info.value.code == PluginErrorCode.VALIDATION_FAILED
        assert asyncio.run(second.manager.get("greeter-bot")).config == {}
        assert second.loader.get_loaded_plugins() == []

        updated = asyncio.run(second.manager.configure("greeter-bot", {"repeat": 2}))
        assert updated.config == {"repeat": 2}
        assert second.loader.get_loaded_plugins() == []

    def test_configure_disabled_bot_stays_disabled(self, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))
        asyncio.run(engine.manager.disable("greeter-bot"))

        asyncio.run(engine.manager.configure("greeter-bot", {"greeting": "Yo"}))

        assert not engine.executor.is_installed("greeter-bot")

    def test_configure_unknown(self, engine_factory):
        engine = engine_factory()
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.configure("ghost-bot", {}))
        assert exc_info.value.code == PluginErrorCode.NOT_INSTALLED


class TestUpdate:
    """Tests for BotManager.update."""

    def test_update_keeps_config(self, engine_factory, plugin_factory, make_context):
        engine = engine_factory()
        path = plugin_factory(version="1.0.0")
        asyncio.run(engine.manager.install(_local(path), {"greeting": "Hi"}))

        plugin_factory(version="1.10.0")
        updated = asyncio.run(engine.manager.update("greeter-bot"))

        assert updated.version == "1.10.0"
        assert updated.config == {"greeting": "Hi"}
        assert _greet(engine, make_context).messages[0].content == "Hi alice (v1.10.0)"

    def test_update_failure_is_wrapped(self, engine_factory, plugin_factory):
        engine = engine_factory()
        path = plugin_factory()
        asyncio.run(engine.manager.install(_local(path)))
        (path / "plugin.py").unlink()

        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.update("greeter-bot"))

        assert exc_info.value.code == PluginErrorCode.UPDATE_FAILED
        assert asyncio.run(engine.manager.get("greeter-bot")) is None

    def test_update_unknown(self, engine_factory):
        engine = engine_factory()
        with pytest.raises(BotPluginError) as exc_info:
            asyncio.run(engine.manager.update("ghost-bot"))
        assert exc_info.value.code == PluginErrorCode.NOT_INSTALLED


class TestBulkOperations:
    """Tests for install_defaults, reload_all_bots and help."""

    def test_install_defaults(self, tmp_path, engine_factory, plugin_factory):
        plugin_factory(bot_id="alpha-bot")
        plugin_factory(bot_id="beta-bot")
        broken = plugin_factory(bot_id="gamma-bot")
        (broken / "plugin.py").write_text("raise ImportError('missing dependency')\n", encoding="utf-8")

        engine = engine_factory(bundled_dir=tmp_path / "plugins")
        installed = asyncio.run(engine.manager.install_defaults())

        assert sorted(i.bot_id for i in installed) == ["alpha-bot", "beta-bot"]
        assert asyncio.run(engine.manager.install_defaults()) == []

    def test_reload_all_bots_after_restart(self, engine_factory, plugin_factory, make_context):
        store = InMemoryBotStore()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(plugin_factory(bot_id="alpha-bot")), {"greeting": "Hi"}))
        asyncio.run(first.manager.install(_local(plugin_factory(bot_id="beta-bot"))))
        asyncio.run(first.manager.disable("beta-bot"))

        second = engine_factory(store=store)
        active = asyncio.run(second.start(install_defaults=False))

        assert active == ["alpha-bot"]
        assert second.executor.get_installation_config("alpha-bot") == {"greeting": "Hi"}
        assert not second.executor.is_registered("beta-bot")
        response = _greet(second, make_context, bot_id="alpha-bot")
        assert response.messages[0].content == "Hi alice (v1.0.0)"

    def test_help_from_executor(self, engine_factory, plugin_factory):
        engine = engine_factory()
        asyncio.run(engine.manager.install(_local(plugin_factory())))
        help_text = asyncio.run(engine.manager.get_bot_help("greeter-bot"))
        assert help_text.startswith("# Greeter")
        assert "**greet** - Say hello" in help_text

    def test_help_loads_transiently(self, engine_factory, plugin_factory):
        store = InMemoryBotStore()
        first = engine_factory(store=store)
        asyncio.run(first.manager.install(_local(plugin_factory())))

        second = engine_factory(store=store)
        help_text = asyncio.run(second.manager.get_bot_help("greeter-bot"))

        assert "**greet** - Say hello" in help_text
        assert second.loader.get_loaded_plugin("greeter-bot") is None

    def test_help_for_unknown_bot(self, engine_factory):
        engine = engine_factory()
        assert asyncio.run(engine.manager.get_bot_help("ghost-bot")) is None
