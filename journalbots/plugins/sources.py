"""Installation source descriptors.

A source tells the loader where a bot's code lives:

    {"type": "npm", "packageName": "editorial-bot", "version": "1.2.0"}
    {"type": "git", "url": "https://example.org/bot.git", "ref": "main"}
    {"type": "local", "path": "plugins/bundled/editorial-bot"}
    {"type": "url", "url": "https://example.org/bot.tar.gz"}

``npm`` is the package-registry source; packages are fetched with pip.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _Source(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PackageSource(_Source):
    type: Literal["npm"] = "npm"
    package_name: str
    version: Optional[str] = None

    def describe(self) -> str:
        return f"{self.package_name}=={self.version}" if self.version else self.package_name


class GitSource(_Source):
    type: Literal["git"] = "git"
    url: str
    ref: Optional[str] = None

    def describe(self) -> str:
        return f"{self.url}#{self.ref}" if self.ref else self.url


class LocalSource(_Source):
    type: Literal["local"] = "local"
    path: str

    def describe(self) -> str:
        return self.path


class UrlSource(_Source):
    type: Literal["url"] = "url"
    url: str

    def describe(self) -> str:
        return self.url


InstallationSource = Annotated[
    Union[PackageSource, GitSource, LocalSource, UrlSource],
    Field(discriminator="type"),
]

_source_adapter = TypeAdapter(InstallationSource)


def parse_source(value: Any) -> InstallationSource:
    """Coerce a dict (camelCase or snake_case) or an existing source into a source model.

    Raises:
        pydantic.ValidationError: Unknown type or missing fields
    """
    if isinstance(value, _Source):
        return value
    return _source_adapter.validate_python(value)
