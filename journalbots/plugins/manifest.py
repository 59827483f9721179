"""Bot plugin manifest model - describes a bot package's metadata."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BOT_ID_PATTERN = r"^[a-z0-9-]+$"
SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"

BotCategory = Literal["editorial", "analysis", "formatting", "quality", "integration", "utility"]


class _ManifestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ManifestAuthor(_ManifestModel):
    name: str
    email: Optional[str] = None
    url: Optional[str] = None


class ManifestRepository(_ManifestModel):
    type: Literal["git"] = "git"
    url: str


class PlatformBlock(_ManifestModel):
    """Platform-specific section of the manifest (bot id, API version, capabilities)."""

    bot_id: str = Field(..., pattern=BOT_ID_PATTERN, description="Lowercase alphanumeric with hyphens")
    api_version: str = Field(default="1.0.0", description="Legacy, use bot_api_version instead")
    bot_api_version: int = Field(default=1, ge=1)
    permissions: List[str] = Field(default_factory=list)
    is_default: bool = Field(default=False, description="Installed by install_defaults")
    category: Optional[BotCategory] = None
    min_platform_version: Optional[str] = None
    supports_file_uploads: bool = False


class BotPluginManifest(_ManifestModel):
    """Manifest loaded from plugin.json or exported by the plugin module."""

    name: str = Field(..., min_length=1, max_length=100)
    version: str = Field(..., pattern=SEMVER_PATTERN)
    description: str = Field(..., min_length=1, max_length=500)
    author: ManifestAuthor
    license: str = "MIT"
    keywords: List[str] = Field(default_factory=list)
    homepage: Optional[str] = None
    repository: Optional[ManifestRepository] = None
    platform: PlatformBlock

    @property
    def bot_id(self) -> str:
        return self.platform.bot_id

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def create_bot_manifest(
    name: str,
    version: str,
    description: str,
    author: dict,
    bot_id: str,
    category: Optional[BotCategory] = None,
    keywords: Optional[List[str]] = None,
    permissions: Optional[List[str]] = None,
    license: str = "MIT",
    is_default: bool = False,
    supports_file_uploads: bool = False,
) -> BotPluginManifest:
    """Build a manifest with the platform defaults filled in."""
    return BotPluginManifest(
        name=name,
        version=version,
        description=description,
        author=ManifestAuthor(**author),
        license=license,
        keywords=keywords or [],
        platform=PlatformBlock(
            bot_id=bot_id,
            api_version="1.0.0",
            bot_api_version=1,
            permissions=permissions or [],
            is_default=is_default,
            category=category,
            supports_file_uploads=supports_file_uploads,
        ),
    )
