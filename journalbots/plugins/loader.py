"""Plugin loader - resolves installation sources to loaded, validated bot plugins.

Load sequence: fetch source -> resolve entry point -> import module fresh ->
validate manifest and bot shape -> cache by bot id -> activate().

Plugins are trusted code: they run in-process with no sandboxing.
"""

import asyncio
import inspect
import importlib.util
import itertools
import json
import logging
import re
import shutil
import sys
import tarfile
import uuid
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from journalbots.constants import BOT_WORK_DIR, DEFAULT_ENTRY_POINT, PLUGIN_MANIFEST_FILE
from journalbots.errors import BotPluginError, PluginErrorCode
from journalbots.framework.types import ValidationResult
from journalbots.plugins.manifest import BotPluginManifest
from journalbots.plugins.registry import BotPlugin, PluginRegistry, PluginState
from journalbots.plugins.sources import (
    GitSource,
    InstallationSource,
    LocalSource,
    PackageSource,
    UrlSource,
    parse_source,
)
from journalbots.plugins.validation import validate_bot_plugin

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".zip")


@dataclass
class _LoadedModule:
    """What a plugin module exported, before validation."""

    manifest: Any
    bot: Any
    activate: Any = None
    deactivate: Any = None
    module_names: List[str] = field(default_factory=list)


async def _call_hook(hook) -> None:
    result = hook()
    if inspect.isawaitable(result):
        await result


def _is_under(path: Optional[str], directory: Path) -> bool:
    if not path:
        return False
    try:
        Path(path).resolve().relative_to(directory)
        return True
    except ValueError:
        return False


class PluginLoader:
    """Loads bot plugins from local, package, git and URL sources."""

    def __init__(self, work_dir: Optional[Path] = None):
        """
        Args:
            work_dir: Scratch directory for package/git/url fetches (default BOT_WORK_DIR)
        """
        self.work_dir = Path(work_dir) if work_dir else BOT_WORK_DIR
        self.registry = PluginRegistry()
        self._load_counter = itertools.count(1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, source: Any) -> BotPlugin:
        """Load, validate and activate a plugin.

        Raises:
            BotPluginError: NPM_INSTALL_FAILED, GIT_CLONE_FAILED, URL_DOWNLOAD_FAILED,
                MODULE_LOAD_FAILED, VALIDATION_FAILED, or LOAD_FAILED for anything else
        """
        try:
            source = parse_source(source)
            plugin_path, extra_paths = await self._resolve_source(source)
            loaded = self._load_plugin_from_path(plugin_path, extra_paths)

            validation = self.validate(loaded)
            if not validation.is_valid:
                self._evict_modules(loaded.module_names)
                raise BotPluginError(
                    f"Plugin validation failed: {', '.join(validation.errors)}",
                    PluginErrorCode.VALIDATION_FAILED,
                    validation.errors,
                )

            plugin = BotPlugin(
                manifest=BotPluginManifest.model_validate(loaded.manifest),
                bot=loaded.bot,
                activate=loaded.activate,
                deactivate=loaded.deactivate,
                path=plugin_path,
                module_names=loaded.module_names,
            )

            previous = self.registry.get(plugin.id)
            if previous is not None:
                self._evict_modules([n for n in previous.module_names if n not in plugin.module_names])
            self.registry.register(plugin)

            if plugin.activate is not None:
                try:
                    await _call_hook(plugin.activate)
                except Exception:
                    self.registry.remove(plugin.id)
                    self._evict_modules(plugin.module_names)
                    raise
            plugin.state = PluginState.ACTIVE

            logger.info(f"Loaded plugin: {plugin.id} v{plugin.manifest.version} from {plugin_path}")
            return plugin

        except BotPluginError as e:
            logger.error(f"Failed to load plugin ({e.code.value}): {e.message}")
            raise
        except Exception as e:
            logger.error(f"Failed to load plugin: {e}", exc_info=True)
            raise BotPluginError(
                f"Failed to load plugin: {e}",
                PluginErrorCode.LOAD_FAILED,
                e,
            ) from e

    async def unload(self, bot_id: str) -> None:
        """Deactivate a plugin and evict its modules.

        Raises:
            BotPluginError: NOT_LOADED, or UNLOAD_FAILED if deactivate() raised
        """
        plugin = self.registry.get(bot_id)
        if plugin is None:
            raise BotPluginError(f"Plugin {bot_id} is not loaded", PluginErrorCode.NOT_LOADED)

        try:
            if plugin.deactivate is not None:
                await _call_hook(plugin.deactivate)
        except Exception as e:
            raise BotPluginError(
                f"Failed to unload plugin {bot_id}: {e}",
                PluginErrorCode.UNLOAD_FAILED,
                e,
            ) from e
        finally:
            self.registry.remove(bot_id)
            self._evict_modules(plugin.module_names)

        logger.info(f"Unloaded plugin: {bot_id}")

    def validate(self, plugin: Any) -> ValidationResult:
        return validate_bot_plugin(plugin)

    def get_loaded_plugin(self, bot_id: str) -> Optional[BotPlugin]:
        return self.registry.get(bot_id)

    def get_loaded_plugins(self) -> List[BotPlugin]:
        return self.registry.get_all()

    def get_plugin_path(self, bot_id: str) -> Optional[Path]:
        plugin = self.registry.get(bot_id)
        return plugin.path if plugin else None

    def cleanup(self) -> None:
        """Remove the scratch directory used for fetched sources."""
        shutil.rmtree(self.work_dir, ignore_errors=True)
        logger.debug(f"Removed plugin work directory {self.work_dir}")

    # ------------------------------------------------------------------
    # Source resolution
    # ------------------------------------------------------------------

    async def _resolve_source(self, source: InstallationSource) -> tuple[Path, List[Path]]:
        """Return (plugin directory, extra import roots)."""
        if isinstance(source, LocalSource):
            return Path(source.path).resolve(), []
        if isinstance(source, PackageSource):
            return await self._load_from_package(source)
        if isinstance(source, GitSource):
            return await self._load_from_git(source), []
        if isinstance(source, UrlSource):
            return await self._load_from_url(source), []
        raise BotPluginError(f"Unsupported installation source: {source!r}", PluginErrorCode.LOAD_FAILED)

    def _scratch_dir(self, prefix: str) -> Path:
        path = self.work_dir / f"{prefix}-{uuid.uuid4().hex[:12]}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    async def _run(*cmd: str, cwd: Optional[Path] = None) -> None:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(f"{cmd[0]} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}")

    async def _load_from_package(self, source: PackageSource) -> tuple[Path, List[Path]]:
        target = self._scratch_dir("pkg")
        try:
            await self._run(sys.executable, "-m", "pip", "install", "--quiet", "--target", str(target), source.describe())
            for candidate in (source.package_name, source.package_name.replace("-", "_")):
                if (target / candidate).is_dir():
                    return target / candidate, [target]
            raise FileNotFoundError(f"Package {source.package_name} installed no directory named after it")
        except Exception as e:
            shutil.rmtree(target, ignore_errors=True)
            raise BotPluginError(
                f"Failed to install package {source.describe()}",
                PluginErrorCode.NPM_INSTALL_FAILED,
                e,
            ) from e

    async def _load_from_git(self, source: GitSource) -> Path:
        dest = self._scratch_dir("git")
        cmd = ["git", "clone"]
        if source.ref:
            cmd += ["--branch", source.ref, "--single-branch"]
        cmd += [source.url, str(dest)]
        try:
            await self._run(*cmd)
            return dest
        except Exception as e:
            shutil.rmtree(dest, ignore_errors=True)
            raise BotPluginError(
                f"Failed to clone git repository {source.url}",
                PluginErrorCode.GIT_CLONE_FAILED,
                e,
            ) from e

    async def _load_from_url(self, source: UrlSource) -> Path:
        dest = self._scratch_dir("url")
        filename = source.url.rstrip("/").split("/")[-1].split("?")[0] or "plugin"
        archive_path = dest / filename
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(source.url) as response:
                    if response.status != 200:
                        raise RuntimeError(f"HTTP {response.status}: {response.reason}")
                    archive_path.write_bytes(await response.read())

            if filename.endswith(ARCHIVE_SUFFIXES):
                await asyncio.to_thread(self._extract_archive, archive_path, dest)
                archive_path.unlink()
                entries = [p for p in dest.iterdir() if p.is_dir()]
                if len(entries) == 1 and not any(p.is_file() for p in dest.iterdir()):
                    return entries[0]
            return dest
        except Exception as e:
            shutil.rmtree(dest, ignore_errors=True)
            raise BotPluginError(
                f"Failed to download from URL {source.url}",
                PluginErrorCode.URL_DOWNLOAD_FAILED,
                e,
            ) from e

    @staticmethod
    def _extract_archive(archive_path: Path, dest: Path) -> None:
        if archive_path.name.endswith(".zip"):
            with zipfile.ZipFile(archive_path) as zf:
                zf.extractall(dest)
        else:
            with tarfile.open(archive_path, "r:gz") as tf:
                tf.extractall(dest, filter="data")

    # ------------------------------------------------------------------
    # Module loading
    # ------------------------------------------------------------------

    @staticmethod
    def _read_plugin_json(plugin_dir: Path) -> Dict[str, Any]:
        manifest_file = plugin_dir / PLUGIN_MANIFEST_FILE
        if not manifest_file.exists():
            return {}
        with open(manifest_file, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _resolve_entry_file(plugin_dir: Path, module_part: str, is_default: bool) -> tuple[Path, bool]:
        """Return (file, is_package) for an entry module name."""
        relative = Path(*module_part.split("."))
        module_file = plugin_dir / relative.with_suffix(".py")
        if module_file.exists():
            return module_file, False
        package_init = plugin_dir / relative / "__init__.py"
        if package_init.exists():
            return package_init, True
        if is_default and (plugin_dir / "__init__.py").exists():
            return plugin_dir / "__init__.py", True
        raise ImportError(f"Cannot find entry module '{module_part}' in {plugin_dir}")

    def _load_plugin_from_path(self, plugin_dir: Path, extra_paths: List[Path]) -> _LoadedModule:
        """Import a plugin directory's entry module, bypassing the module cache.

        Raises:
            BotPluginError: MODULE_LOAD_FAILED
        """
        module_names: List[str] = []
        try:
            plugin_json = self._read_plugin_json(plugin_dir)
            entry_point = plugin_json.pop("entry_point", None) or plugin_json.pop("entryPoint", None)
            is_default = entry_point is None
            module_part, _, attribute = (entry_point or DEFAULT_ENTRY_POINT).partition(":")

            entry_file, is_package = self._resolve_entry_file(plugin_dir, module_part, is_default)
            module, module_names = self._exec_fresh(plugin_dir, entry_file, is_package, extra_paths)

            exported = module
            if attribute:
                exported = getattr(module, attribute)
                if callable(exported) and not hasattr(exported, "bot"):
                    exported = exported()

            manifest = getattr(exported, "manifest", None) or plugin_json or None
            bot = getattr(exported, "bot", None)
            if manifest is None or bot is None:
                raise AttributeError("Plugin must export manifest and bot properties")

            return _LoadedModule(
                manifest=manifest,
                bot=bot,
                activate=getattr(exported, "activate", None),
                deactivate=getattr(exported, "deactivate", None),
                module_names=module_names,
            )
        except Exception as e:
            self._evict_modules(module_names)
            raise BotPluginError(
                f"Failed to load plugin module from {plugin_dir}: {e}",
                PluginErrorCode.MODULE_LOAD_FAILED,
                e,
            ) from e

    def _exec_fresh(self, plugin_dir: Path, entry_file: Path, is_package: bool, extra_paths: List[Path]):
        plugin_dir = plugin_dir.resolve()
        # Stale modules from an earlier load of this directory would shadow on-disk changes
        self._evict_modules([
            name for name, mod in list(sys.modules.items())
            if _is_under(getattr(mod, "__file__", None), plugin_dir)
        ])
        importlib.invalidate_caches()

        slug = re.sub(r"\W", "_", plugin_dir.name)
        unique_name = f"_journalbot_{slug}_{next(self._load_counter)}"
        spec = importlib.util.spec_from_file_location(
            unique_name,
            entry_file,
            submodule_search_locations=[str(entry_file.parent)] if is_package else None,
        )
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load {entry_file}")

        module = importlib.util.module_from_spec(spec)
        before = set(sys.modules)
        sys.modules[unique_name] = module

        added_paths = [str(p) for p in [plugin_dir, *extra_paths] if str(p) not in sys.path]
        sys.path[:0] = added_paths
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(unique_name, None)
            raise
        finally:
            for p in added_paths:
                if p in sys.path:
                    sys.path.remove(p)

        roots = [plugin_dir, *(Path(p).resolve() for p in extra_paths)]
        module_names = [unique_name] + [
            name for name in set(sys.modules) - before
            if name != unique_name
            and any(_is_under(getattr(sys.modules[name], "__file__", None), root) for root in roots)
        ]
        return module, module_names

    @staticmethod
    def _evict_modules(module_names: List[str]) -> None:
        for name in module_names:
            sys.modules.pop(name, None)
