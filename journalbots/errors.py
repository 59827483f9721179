"""Error types raised by the bot engine."""

from enum import Enum
from typing import Any, Optional


class PluginErrorCode(str, Enum):
    """Machine-readable failure classes carried by BotPluginError."""

    ALREADY_INSTALLED = "ALREADY_INSTALLED"
    NOT_INSTALLED = "NOT_INSTALLED"
    NOT_LOADED = "NOT_LOADED"
    INSTALL_FAILED = "INSTALL_FAILED"
    UNINSTALL_FAILED = "UNINSTALL_FAILED"
    UPDATE_FAILED = "UPDATE_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    LOAD_FAILED = "LOAD_FAILED"
    UNLOAD_FAILED = "UNLOAD_FAILED"
    NPM_INSTALL_FAILED = "NPM_INSTALL_FAILED"
    GIT_CLONE_FAILED = "GIT_CLONE_FAILED"
    URL_DOWNLOAD_FAILED = "URL_DOWNLOAD_FAILED"
    MODULE_LOAD_FAILED = "MODULE_LOAD_FAILED"


class BotPluginError(Exception):
    """Plugin/installation failure with a code callers can branch on.

    Args:
        message: Human-readable description
        code: One of PluginErrorCode (compares equal to its string value)
        details: Optional nested cause or list of violations
    """

    def __init__(self, message: str, code: PluginErrorCode, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = PluginErrorCode(code)
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}

    def __repr__(self) -> str:
        return f"BotPluginError(code={self.code.value!r}, message={self.message!r})"


class BotExecutionError(Exception):
    """A command could not be dispatched (bot unknown, not installed or disabled)."""


class BotTimeoutError(BotExecutionError):
    """A command body or event handler did not settle within the execution timeout."""

    def __init__(self, message: str = "Bot execution timeout"):
        super().__init__(message)
