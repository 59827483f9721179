"""Bot manager - durable bot lifecycle on top of the plugin loader and executor.

Installation state machine:

    absent --install--> enabled <--enable/disable--> disabled
    enabled/disabled --uninstall--> absent

``update`` passes through absent internally (uninstall then reinstall with
the preserved config). ``configure`` on an enabled bot hot-swaps the
executor's config; invocations already running keep the config they started
with.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

from journalbots.constants import BOT_USER_EMAIL_DOMAIN, BUNDLED_BOTS_DIR, PLUGIN_MANIFEST_FILE, get_upload_dir
from journalbots.errors import BotPluginError, PluginErrorCode
from journalbots.framework.commands import CommandParser
from journalbots.framework.executor import BotExecutor
from journalbots.framework.types import CommandBot
from journalbots.plugins.config import (
    ConfigInput,
    load_default_config,
    merge_config,
    normalize_config,
    stringify_yaml_config,
    validate_config,
)
from journalbots.plugins.discovery import BotDiscovery
from journalbots.plugins.hooks import BotInstallationContext
from journalbots.plugins.loader import PluginLoader
from journalbots.plugins.registry import BotPlugin
from journalbots.plugins.sources import (
    GitSource,
    InstallationSource,
    LocalSource,
    PackageSource,
    UrlSource,
    parse_source,
)
from journalbots.plugins.store import (
    BotDefinitionRecord,
    BotInstallation,
    BotStore,
    ServiceUserRecord,
)

logger = logging.getLogger(__name__)


def package_name_from_source(source: InstallationSource) -> str:
    if isinstance(source, PackageSource):
        return source.package_name
    if isinstance(source, GitSource):
        return source.url.rstrip("/").split("/")[-1].removesuffix(".git") or "unknown"
    if isinstance(source, LocalSource):
        return Path(source.path).name or "unknown"
    if isinstance(source, UrlSource):
        return source.url.rstrip("/").split("/")[-1] or "unknown"
    return "unknown"


def describe_source(source: InstallationSource) -> str:
    return f"{source.type}:{source.describe()}"


class BotManager:
    """Installs, configures, enables/disables, updates and reloads bots."""

    def __init__(
        self,
        loader: PluginLoader,
        executor: BotExecutor,
        store: BotStore,
        bundled_dir: Optional[Path] = None,
        upload_dir: Optional[Path] = None,
        email_domain: Optional[str] = None,
    ):
        self.loader = loader
        self.executor = executor
        self.store = store
        self.bundled_dir = Path(bundled_dir) if bundled_dir else BUNDLED_BOTS_DIR
        self.upload_dir = Path(upload_dir) if upload_dir else None
        self.email_domain = email_domain or BOT_USER_EMAIL_DOMAIN

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list(self) -> List[BotInstallation]:
        return await self.store.list_installations()

    async def get(self, bot_id: str) -> Optional[BotInstallation]:
        return await self.store.get_installation(bot_id)

    async def _require(self, bot_id: str) -> BotInstallation:
        installation = await self.get(bot_id)
        if installation is None:
            raise BotPluginError(f"Bot {bot_id} is not installed", PluginErrorCode.NOT_INSTALLED)
        return installation

    # ------------------------------------------------------------------
    # Install / uninstall / update
    # ------------------------------------------------------------------

    async def install(
        self,
        source: Any,
        config: ConfigInput = None,
        installed_by: Optional[str] = None,
    ) -> BotInstallation:
        """Load a plugin, persist its installation and activate it in the executor.

        Args:
            source: Installation source descriptor (dict or source model)
            config: Config dict or YAML text, merged over the bot's default-config.yaml

        Raises:
            BotPluginError: ALREADY_INSTALLED, VALIDATION_FAILED, a loader code,
                or INSTALL_FAILED for anything unexpected
        """
        plugin: Optional[BotPlugin] = None
        try:
            source = parse_source(source)
            await self._reject_if_installed(source)
            plugin = await self.loader.load(source)
            manifest, bot = plugin.manifest, plugin.bot

            if await self.get(bot.id) is not None:
                raise BotPluginError(f"Bot {bot.id} is already installed", PluginErrorCode.ALREADY_INSTALLED)

            default_config, default_yaml = load_default_config(plugin.path)
            caller_config, caller_yaml = normalize_config(config)
            final_config = merge_config(default_config, caller_config)
            validate_config(bot.id, final_config, bot.config_model)

            if caller_yaml is not None:
                final_yaml = caller_yaml
            elif not caller_config and default_yaml:
                final_yaml = default_yaml
            else:
                final_yaml = stringify_yaml_config(final_config)

            bot_user = await self._ensure_service_user(bot)

            await self.store.upsert_bot_definition(BotDefinitionRecord(
                id=bot.id,
                name=bot.name,
                description=bot.description,
                version=bot.version,
                author=manifest.author.name,
                supports_file_uploads=bot.supports_file_uploads or manifest.platform.supports_file_uploads,
            ))
            installation = await self.store.create_installation(BotInstallation(
                bot_id=bot.id,
                package_name=package_name_from_source(source),
                version=manifest.version,
                manifest=manifest.to_dict(),
                config=final_config,
                yaml_config=final_yaml,
                is_enabled=True,
                is_default=manifest.platform.is_default,
                source=source.to_dict(),
                installed_by=installed_by,
            ))

            self.executor.register_command_bot(bot)
            self.executor.set_bot_user_id(bot.id, bot_user.id)
            self.executor.install_bot(bot.id, final_config)

            if bot.on_install is not None:
                await self._call_installation_hook(bot, bot_user.id, final_config)

            logger.info(f"Installed bot {bot.name} ({bot.id}) v{manifest.version} from {describe_source(source)}")
            return installation

        except BotPluginError as e:
            if e.code == PluginErrorCode.ALREADY_INSTALLED:
                logger.info(e.message)
            else:
                logger.error(f"Failed to install bot: {e.message}")
            await self._discard_unregistered(plugin)
            raise
        except Exception as e:
            logger.error(f"Failed to install bot: {e}", exc_info=True)
            await self._discard_unregistered(plugin)
            raise BotPluginError(f"Installation failed: {e}", PluginErrorCode.INSTALL_FAILED, e) from e

    async def uninstall(self, bot_id: str) -> None:
        """Unload, unregister and delete a bot's installation.

        Raises:
            BotPluginError: NOT_INSTALLED, or UNINSTALL_FAILED
        """
        await self._require(bot_id)

        try:
            try:
                await self.loader.unload(bot_id)
            except BotPluginError as e:
                if e.code != PluginErrorCode.NOT_LOADED:
                    raise

            self.executor.unregister_bot(bot_id)
            await self.store.delete_installation(bot_id)

            if await self.store.count_installations(bot_id) == 0:
                await self.store.delete_bot_definition(bot_id)

            logger.info(f"Uninstalled bot {bot_id}")
        except Exception as e:
            raise BotPluginError(
                f"Failed to uninstall bot {bot_id}: {e}",
                PluginErrorCode.UNINSTALL_FAILED,
                e,
            ) from e

    async def update(self, bot_id: str, version: Optional[str] = None) -> BotInstallation:
        """Reinstall a bot (optionally at another package version), keeping its config.

        Not atomic: if the reinstall fails the bot stays uninstalled.

        Raises:
            BotPluginError: NOT_INSTALLED, or UPDATE_FAILED wrapping the inner failure
        """
        installation = await self._require(bot_id)

        try:
            source = self._source_for(installation)
            if version:
                if isinstance(source, PackageSource):
                    source = source.model_copy(update={"version": version})
                else:
                    logger.warning(f"Ignoring version {version} for {source.type} source of bot {bot_id}")

            current_config = installation.config

            await self.uninstall(bot_id)
            updated = await self.install(source, current_config, installed_by=installation.installed_by)
            logger.info(f"Updated bot {bot_id} to version {updated.version}")
            return updated
        except Exception as e:
            raise BotPluginError(
                f"Failed to update bot {bot_id}: {e}",
                PluginErrorCode.UPDATE_FAILED,
                e,
            ) from e

    # ------------------------------------------------------------------
    # Enable / disable / configure
    # ------------------------------------------------------------------

    async def enable(self, bot_id: str) -> None:
        installation = await self._require(bot_id)
        if installation.is_enabled:
            return

        if self.executor.is_registered(bot_id):
            self.executor.install_bot(bot_id, installation.config)
        else:
            await self._activate(installation)

        try:
            await self.store.update_installation(bot_id, is_enabled=True)
        except Exception:
            self.executor.uninstall_bot(bot_id)
            raise
        logger.info(f"Enabled bot {bot_id}")

    async def disable(self, bot_id: str) -> None:
        installation = await self._require(bot_id)
        if not installation.is_enabled:
            return

        await self.store.update_installation(bot_id, is_enabled=False)
        self.executor.uninstall_bot(bot_id)
        logger.info(f"Disabled bot {bot_id}")

    async def configure(self, bot_id: str, config: ConfigInput) -> BotInstallation:
        """Replace a bot's configuration (dict or YAML text).

        Raises:
            BotPluginError: NOT_INSTALLED, or VALIDATION_FAILED for bad YAML / config
        """
        installation = await self._require(bot_id)

        parsed, raw_yaml = normalize_config(config)
        await self._validate_installed_config(installation, parsed)

        updated = await self.store.update_installation(
            bot_id,
            config=parsed,
            yaml_config=raw_yaml if raw_yaml is not None else stringify_yaml_config(parsed),
        )

        if installation.is_enabled and self.executor.is_registered(bot_id):
            self.executor.uninstall_bot(bot_id)
            self.executor.install_bot(bot_id, parsed)

        logger.info(f"Configured bot {bot_id}")
        return updated

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def install_defaults(self) -> List[BotInstallation]:
        """Install every bundled bot not yet installed; individual failures are logged, not raised."""
        installations = []

        for discovered in BotDiscovery(self.bundled_dir).discover_all():
            source = discovered.source
            try:
                if await self.get(discovered.bot_id) is not None:
                    logger.info(f"Default bot {describe_source(source)} already installed")
                    continue
                installations.append(await self.install(source))
            except BotPluginError as e:
                if e.code == PluginErrorCode.ALREADY_INSTALLED:
                    logger.info(f"Bot {describe_source(source)} is already installed")
                else:
                    logger.error(f"Failed to install default bot {describe_source(source)}: {e.message}", exc_info=True)
            except Exception as e:
                logger.error(f"Failed to install default bot {describe_source(source)}: {e}", exc_info=True)

        return installations

    async def reload_all_bots(self) -> List[str]:
        """Rebuild executor state from the store after a restart.

        Returns:
            Ids of the bots that were re-registered
        """
        logger.info("Reloading all installed bots...")
        reloaded = []

        for installation in await self.list():
            if not installation.is_enabled:
                continue
            try:
                await self._activate(installation)
                reloaded.append(installation.bot_id)
            except Exception as e:
                logger.error(f"Failed to reload bot {installation.bot_id}: {e}", exc_info=True)

        logger.info(f"Reloaded {len(reloaded)} bot(s)")
        return reloaded

    # ------------------------------------------------------------------
    # Help
    # ------------------------------------------------------------------

    async def get_bot_help(self, bot_id: str) -> Optional[str]:
        """Help text for an installed bot, loading it transiently if it is not in the executor."""
        installation = await self.get(bot_id)
        if installation is None:
            return None

        help_text = self.executor.get_bot_help(bot_id)
        if help_text:
            return help_text

        loaded = self.loader.get_loaded_plugin(bot_id)
        try:
            plugin = loaded or await self.loader.load(self._source_for(installation))
            parser = CommandParser()
            parser.register_bot(plugin.bot)
            return parser.generate_bot_help(plugin.bot.id)
        except Exception as e:
            logger.error(f"Failed to get help for bot {bot_id}: {e}")
            return None
        finally:
            if loaded is None and self.loader.get_loaded_plugin(bot_id) is not None:
                await self._unload_quietly(bot_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _source_for(self, installation: BotInstallation) -> InstallationSource:
        if installation.source:
            return parse_source(installation.source)
        return LocalSource(path=str(self.bundled_dir / installation.bot_id))

    def _bot_email(self, bot_id: str) -> str:
        return f"{bot_id}@{self.email_domain}"

    async def _ensure_service_user(self, bot: CommandBot) -> ServiceUserRecord:
        email = self._bot_email(bot.id)
        user = await self.store.find_user_by_email(email)
        if user is None:
            user = await self.store.create_user(ServiceUserRecord(
                id=f"bot-{bot.id}",
                email=email,
                username=bot.id,
                name=bot.name,
            ))
            logger.info(f"Created service user {email}")
        return user

    async def _reject_if_installed(self, source: InstallationSource) -> None:
        """Raise ALREADY_INSTALLED before loading when a local source's plugin.json names an installed bot."""
        if not isinstance(source, LocalSource):
            return
        path = Path(source.path)
        if not (path / PLUGIN_MANIFEST_FILE).exists():
            return
        discovered = BotDiscovery(path.parent).discover_single(path)
        if discovered.manifest is not None and await self.get(discovered.bot_id) is not None:
            raise BotPluginError(
                f"Bot {discovered.bot_id} is already installed",
                PluginErrorCode.ALREADY_INSTALLED,
            )

    async def _validate_installed_config(self, installation: BotInstallation, config: dict) -> None:
        """Validate against the bot's config_model, loading the plugin transiently if needed."""
        bot = self.executor.get_bot(installation.bot_id)
        if bot is not None:
            validate_config(installation.bot_id, config, bot.config_model)
            return

        loaded = self.loader.get_loaded_plugin(installation.bot_id)
        try:
            plugin = loaded or await self.loader.load(self._source_for(installation))
            validate_config(installation.bot_id, config, plugin.bot.config_model)
        finally:
            if loaded is None and self.loader.get_loaded_plugin(installation.bot_id) is not None:
                await self._unload_quietly(installation.bot_id)

    async def _activate(self, installation: BotInstallation) -> None:
        plugin = await self.loader.load(self._source_for(installation))
        bot = plugin.bot
        try:
            validate_config(bot.id, installation.config, bot.config_model)
        except BotPluginError:
            await self._unload_quietly(bot.id)
            raise
        self.executor.register_command_bot(bot)
        self.executor.install_bot(bot.id, installation.config)

        user = await self.store.find_user_by_email(self._bot_email(bot.id))
        if user is not None:
            self.executor.set_bot_user_id(bot.id, user.id)

    async def _call_installation_hook(self, bot: CommandBot, uploaded_by: str, config: dict) -> None:
        try:
            logger.info(f"Calling on_install hook for {bot.id}")
            context = BotInstallationContext(
                bot_id=bot.id,
                config=dict(config),
                store=self.store,
                upload_dir=self.upload_dir or get_upload_dir(),
                uploaded_by=uploaded_by,
            )
            await bot.on_install(context)
            logger.info(f"Completed on_install hook for {bot.id}")
        except Exception as e:
            logger.error(f"on_install hook failed for {bot.id}: {e}", exc_info=True)

    async def _discard_unregistered(self, plugin: Optional[BotPlugin]) -> None:
        """Unload a plugin a failed install loaded, unless the executor is using it."""
        if plugin is None or self.executor.is_registered(plugin.id):
            return
        await self._unload_quietly(plugin.id)

    async def _unload_quietly(self, bot_id: str) -> None:
        try:
            await self.loader.unload(bot_id)
        except BotPluginError as e:
            logger.warning(f"Could not unload plugin {bot_id}: {e.message}")
