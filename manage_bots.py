#!/usr/bin/env python3
"""Bot management CLI tool."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from journalbots.constants import BOT_STORE_FILE, BUNDLED_BOTS_DIR, PLUGIN_MANIFEST_FILE
from journalbots.engine import BotEngine
from journalbots.errors import BotPluginError
from journalbots.framework.context import create_bot_context
from journalbots.plugins.discovery import BotDiscovery
from journalbots.plugins.store import JsonFileBotStore


def get_engine() -> BotEngine:
    """Create an engine over the JSON file store."""
    return BotEngine(store=JsonFileBotStore(BOT_STORE_FILE))


def build_source(args) -> dict:
    if args.path:
        return {"type": "local", "path": str(Path(args.path).resolve())}
    if args.package:
        return {"type": "npm", "packageName": args.package, "version": args.version}
    if args.git:
        return {"type": "git", "url": args.git, "ref": args.ref}
    return {"type": "url", "url": args.url}


def read_config_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


async def cmd_list(engine: BotEngine, args):
    """List installed bots."""
    installations = await engine.manager.list()
    if not installations:
        print("No bots installed.")
        return

    print(f"{'ID':<25} {'Version':<10} {'Enabled':<8} {'Default':<8} {'Package'}")
    print("-" * 80)
    for i in installations:
        enabled = "Yes" if i.is_enabled else "No"
        default = "Yes" if i.is_default else "No"
        print(f"{i.bot_id:<25} {i.version:<10} {enabled:<8} {default:<8} {i.package_name}")


async def cmd_info(engine: BotEngine, args):
    """Show an installation record."""
    installation = await engine.manager.get(args.bot_id)
    if installation is None:
        print(f"Bot '{args.bot_id}' is not installed.")
        sys.exit(1)

    print(f"Bot: {installation.bot_id}")
    print(f"  Package:     {installation.package_name}")
    print(f"  Version:     {installation.version}")
    print(f"  Enabled:     {installation.is_enabled}")
    print(f"  Default:     {installation.is_default}")
    print(f"  Source:      {json.dumps(installation.source)}")
    print(f"  Installed:   {installation.installed_at.isoformat()}")
    print(f"  Updated:     {installation.updated_at.isoformat()}")
    if installation.yaml_config:
        print("  Config:")
        for line in installation.yaml_config.splitlines():
            print(f"    {line}")


async def cmd_install(engine: BotEngine, args):
    """Install a bot."""
    config = read_config_file(args.config) if args.config else None
    installation = await engine.manager.install(build_source(args), config)
    print(f"Bot '{installation.bot_id}' v{installation.version} installed.")


async def cmd_uninstall(engine: BotEngine, args):
    await engine.manager.uninstall(args.bot_id)
    print(f"Bot '{args.bot_id}' uninstalled.")


async def cmd_enable(engine: BotEngine, args):
    await engine.manager.enable(args.bot_id)
    print(f"Bot '{args.bot_id}' enabled.")


async def cmd_disable(engine: BotEngine, args):
    await engine.manager.disable(args.bot_id)
    print(f"Bot '{args.bot_id}' disabled.")


async def cmd_configure(engine: BotEngine, args):
    """Replace a bot's configuration from a YAML file."""
    await engine.manager.configure(args.bot_id, read_config_file(args.config))
    print(f"Configuration updated for bot '{args.bot_id}'.")


async def cmd_update(engine: BotEngine, args):
    installation = await engine.manager.update(args.bot_id, args.version)
    print(f"Bot '{args.bot_id}' updated to v{installation.version}.")


async def cmd_help(engine: BotEngine, args):
    help_text = await engine.manager.get_bot_help(args.bot_id)
    if help_text is None:
        print(f"No help available for bot '{args.bot_id}'.")
        sys.exit(1)
    print(help_text)


async def cmd_install_defaults(engine: BotEngine, args):
    installations = await engine.manager.install_defaults()
    if not installations:
        print("No new default bots installed.")
    for i in installations:
        print(f"Installed default bot '{i.bot_id}' v{i.version}")


async def cmd_send(engine: BotEngine, args):
    """Parse and execute a message against the installed bots."""
    await engine.start(install_defaults=False)
    context = create_bot_context(
        conversation_id=args.conversation,
        manuscript_id=args.manuscript,
        message_id="cli",
        user_id=args.user,
        user_role=args.role,
    )
    responses = await engine.process_message(args.text, context)
    if not responses:
        print("No bot was addressed by this message.")
    for response in responses:
        print(f"--- {response.bot_id} ---")
        for message in response.messages:
            print(message.content)
        for action in response.actions or []:
            print(f"[action] {action.type} {json.dumps(action.data)}")
        for error in response.errors or []:
            print(f"[error] {error}")
    await engine.stop()


async def cmd_doctor(engine: BotEngine, args):
    """Run health checks on bundled bots and the store."""
    issues = []

    if not BUNDLED_BOTS_DIR.exists():
        issues.append(f"Bundled bots directory missing: {BUNDLED_BOTS_DIR}")

    if BOT_STORE_FILE.exists():
        try:
            with open(BOT_STORE_FILE) as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Bot store file has invalid JSON: {e}")

    discovered = BotDiscovery(BUNDLED_BOTS_DIR).discover_all()
    for bot in discovered:
        if bot.manifest is None:
            issues.append(f"Bot '{bot.bot_id}': {PLUGIN_MANIFEST_FILE} is missing or invalid")
        try:
            plugin = await engine.loader.load(bot.source)
            await engine.loader.unload(plugin.id)
        except BotPluginError as e:
            issues.append(f"Bot '{bot.bot_id}': {e.code.value}: {e.message}")

    installations = await engine.manager.list()
    for i in installations:
        if i.source and i.source.get("type") == "local" and not Path(i.source["path"]).exists():
            issues.append(f"Installed bot '{i.bot_id}': source path missing: {i.source['path']}")

    if issues:
        print(f"Found {len(issues)} issue(s):")
        for n, issue in enumerate(issues, 1):
            print(f"  {n}. {issue}")
        sys.exit(1)
    else:
        print(f"All checks passed. {len(discovered)} bundled bot(s), {len(installations)} installed.")


def main():
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Journal Bot Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List installed bots")

    # bot-id commands
    for name, help_text in (
        ("info", "Show installation details"),
        ("uninstall", "Uninstall a bot"),
        ("enable", "Enable a bot"),
        ("disable", "Disable a bot"),
        ("help", "Show a bot's help text"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("bot_id", help="Bot ID")

    # install
    install_parser = subparsers.add_parser("install", help="Install a bot")
    source_group = install_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--path", help="Local bot directory")
    source_group.add_argument("--package", help="Package name on the package index")
    source_group.add_argument("--git", help="Git repository URL")
    source_group.add_argument("--url", help="Archive URL (.tar.gz, .tgz, .zip)")
    install_parser.add_argument("--version", help="Package version (with --package)")
    install_parser.add_argument("--ref", help="Branch or tag (with --git)")
    install_parser.add_argument("--config", help="YAML config file")

    # configure
    configure_parser = subparsers.add_parser("configure", help="Replace a bot's configuration")
    configure_parser.add_argument("bot_id", help="Bot ID")
    configure_parser.add_argument("config", help="YAML config file")

    # update
    update_parser = subparsers.add_parser("update", help="Reinstall a bot keeping its configuration")
    update_parser.add_argument("bot_id", help="Bot ID")
    update_parser.add_argument("--version", help="Package version")

    # install-defaults
    subparsers.add_parser("install-defaults", help="Install bundled bots")

    # send
    send_parser = subparsers.add_parser("send", help="Execute a chat message locally")
    send_parser.add_argument("text", help="Message text, e.g. '@editorial-bot status'")
    send_parser.add_argument("--manuscript", default="manuscript-1", help="Manuscript ID")
    send_parser.add_argument("--conversation", default="conversation-1", help="Conversation ID")
    send_parser.add_argument("--user", default="cli-user", help="User ID")
    send_parser.add_argument("--role", default="EDITOR", help="User role")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "install": cmd_install,
        "uninstall": cmd_uninstall,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "configure": cmd_configure,
        "update": cmd_update,
        "help": cmd_help,
        "install-defaults": cmd_install_defaults,
        "send": cmd_send,
        "doctor": cmd_doctor,
    }

    try:
        asyncio.run(commands[args.command](get_engine(), args))
    except BotPluginError as e:
        print(f"Error ({e.code.value}): {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
