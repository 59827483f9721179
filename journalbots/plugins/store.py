"""Durable store for bot installations, definitions, service users and config files.

The engine's in-memory executor maps are a cache over this store; after a
restart they are rebuilt with BotManager.reload_all_bots().
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class BotInstallation(StoreRecord):
    """Durable installation record (one per installed bot)."""

    id: str = Field(default_factory=lambda: f"install-{uuid.uuid4().hex[:12]}")
    bot_id: str
    package_name: str
    version: str
    manifest: Dict[str, Any]
    config: Dict[str, Any] = Field(default_factory=dict)
    yaml_config: Optional[str] = None
    is_enabled: bool = True
    is_default: bool = False
    source: Optional[Dict[str, Any]] = None
    installed_by: Optional[str] = None
    installed_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BotDefinitionRecord(StoreRecord):
    id: str
    name: str
    description: str = ""
    version: str
    author: str = ""
    is_public: bool = True
    supports_file_uploads: bool = False
    updated_at: datetime = Field(default_factory=utcnow)


class ServiceUserRecord(StoreRecord):
    """Service identity a bot posts as."""

    id: str
    email: str
    username: str
    name: str
    role: str = "BOT"


class BotConfigFileRecord(StoreRecord):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    bot_id: str
    filename: str
    stored_name: str
    path: str
    mimetype: str
    size: int
    checksum: str
    category: str = "template"
    description: str = ""
    uploaded_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class BotStore(ABC):
    """Async data-access interface used by the bot manager."""

    # Installations

    @abstractmethod
    async def get_installation(self, bot_id: str) -> Optional[BotInstallation]:
        ...

    @abstractmethod
    async def list_installations(self) -> List[BotInstallation]:
        ...

    @abstractmethod
    async def create_installation(self, installation: BotInstallation) -> BotInstallation:
        ...

    @abstractmethod
    async def update_installation(self, bot_id: str, **changes: Any) -> BotInstallation:
        ...

    @abstractmethod
    async def delete_installation(self, bot_id: str) -> None:
        ...

    @abstractmethod
    async def count_installations(self, bot_id: str) -> int:
        ...

    # Bot definitions

    @abstractmethod
    async def upsert_bot_definition(self, definition: BotDefinitionRecord) -> BotDefinitionRecord:
        ...

    @abstractmethod
    async def get_bot_definition(self, bot_id: str) -> Optional[BotDefinitionRecord]:
        ...

    @abstractmethod
    async def delete_bot_definition(self, bot_id: str) -> None:
        ...

    # Service users

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[ServiceUserRecord]:
        ...

    @abstractmethod
    async def create_user(self, user: ServiceUserRecord) -> ServiceUserRecord:
        ...

    # Config files

    @abstractmethod
    async def create_config_file(self, record: BotConfigFileRecord) -> BotConfigFileRecord:
        ...

    @abstractmethod
    async def list_config_files(self, bot_id: str) -> List[BotConfigFileRecord]:
        ...

    @abstractmethod
    async def get_config_file(self, file_id: str) -> Optional[BotConfigFileRecord]:
        ...


class InMemoryBotStore(BotStore):
    """Process-local store. Returns copies so callers cannot mutate stored state."""

    def __init__(self):
        self._installations: Dict[str, BotInstallation] = {}
        self._definitions: Dict[str, BotDefinitionRecord] = {}
        self._users: Dict[str, ServiceUserRecord] = {}
        self._config_files: List[BotConfigFileRecord] = []

    def _changed(self) -> None:
        """Hook for persistent subclasses."""

    async def get_installation(self, bot_id: str) -> Optional[BotInstallation]:
        installation = self._installations.get(bot_id)
        return installation.model_copy(deep=True) if installation else None

    async def list_installations(self) -> List[BotInstallation]:
        return [i.model_copy(deep=True) for i in self._installations.values()]

    async def create_installation(self, installation: BotInstallation) -> BotInstallation:
        if installation.bot_id in self._installations:
            raise ValueError(f"Installation for bot {installation.bot_id} already exists")
        self._installations[installation.bot_id] = installation.model_copy(deep=True)
        self._changed()
        return installation.model_copy(deep=True)

    async def update_installation(self, bot_id: str, **changes: Any) -> BotInstallation:
        current = self._installations.get(bot_id)
        if current is None:
            raise KeyError(f"No installation for bot {bot_id}")
        updated = current.model_copy(update={**changes, "updated_at": utcnow()}, deep=True)
        self._installations[bot_id] = updated
        self._changed()
        return updated.model_copy(deep=True)

    async def delete_installation(self, bot_id: str) -> None:
        if self._installations.pop(bot_id, None) is None:
            raise KeyError(f"No installation for bot {bot_id}")
        self._changed()

    async def count_installations(self, bot_id: str) -> int:
        return sum(1 for i in self._installations.values() if i.bot_id == bot_id)

    async def upsert_bot_definition(self, definition: BotDefinitionRecord) -> BotDefinitionRecord:
        self._definitions[definition.id] = definition.model_copy(update={"updated_at": utcnow()})
        self._changed()
        return self._definitions[definition.id].model_copy()

    async def get_bot_definition(self, bot_id: str) -> Optional[BotDefinitionRecord]:
        definition = self._definitions.get(bot_id)
        return definition.model_copy() if definition else None

    async def delete_bot_definition(self, bot_id: str) -> None:
        if self._definitions.pop(bot_id, None) is not None:
            self._changed()

    async def find_user_by_email(self, email: str) -> Optional[ServiceUserRecord]:
        user = next((u for u in self._users.values() if u.email == email), None)
        return user.model_copy() if user else None

    async def create_user(self, user: ServiceUserRecord) -> ServiceUserRecord:
        self._users[user.id] = user.model_copy()
        self._changed()
        return user.model_copy()

    async def create_config_file(self, record: BotConfigFileRecord) -> BotConfigFileRecord:
        self._config_files.append(record.model_copy(deep=True))
        self._changed()
        return record.model_copy(deep=True)

    async def list_config_files(self, bot_id: str) -> List[BotConfigFileRecord]:
        return [r.model_copy(deep=True) for r in self._config_files if r.bot_id == bot_id]

    async def get_config_file(self, file_id: str) -> Optional[BotConfigFileRecord]:
        record = next((r for r in self._config_files if r.id == file_id), None)
        return record.model_copy(deep=True) if record else None


class JsonFileBotStore(InMemoryBotStore):
    """Store persisted to a single JSON file after every mutation.

    File format:
    {
        "installations": {"editorial-bot": {...}},
        "definitions": {"editorial-bot": {...}},
        "users": {"bot-editorial-bot": {...}},
        "configFiles": [{...}]
    }
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._installations = {
                k: BotInstallation.model_validate(v) for k, v in data.get("installations", {}).items()
            }
            self._definitions = {
                k: BotDefinitionRecord.model_validate(v) for k, v in data.get("definitions", {}).items()
            }
            self._users = {k: ServiceUserRecord.model_validate(v) for k, v in data.get("users", {}).items()}
            self._config_files = [BotConfigFileRecord.model_validate(v) for v in data.get("configFiles", [])]
        except (json.JSONDecodeError, ValidationError, OSError, AttributeError) as e:
            logger.error(f"Error loading bot store {self.path}, starting empty: {e}")
            self._installations, self._definitions, self._users, self._config_files = {}, {}, {}, []

    def _changed(self) -> None:
        data = {
            "installations": {k: v.to_dict() for k, v in self._installations.items()},
            "definitions": {k: v.to_dict() for k, v in self._definitions.items()},
            "users": {k: v.to_dict() for k, v in self._users.items()},
            "configFiles": [r.to_dict() for r in self._config_files],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved bot store to {self.path}")
