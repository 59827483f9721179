"""Core bot framework types.

Definitions that carry callables (bots, commands, parameters) are dataclasses.
Anything that crosses the wire (responses, actions, action-handler results)
is a pydantic model with camelCase aliases.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BotTrigger(str, Enum):
    """How an invocation was triggered."""

    MENTION = "mention"
    KEYWORD = "keyword"
    MANUSCRIPT_SUBMITTED = "manuscript_submitted"
    REVIEW_COMPLETE = "review_complete"
    SCHEDULED = "scheduled"


class BotEventName(str, Enum):
    """Manuscript lifecycle events a bot can subscribe to."""

    MANUSCRIPT_SUBMITTED = "manuscript.submitted"
    MANUSCRIPT_STATUS_CHANGED = "manuscript.statusChanged"
    FILE_UPLOADED = "file.uploaded"
    REVIEWER_ASSIGNED = "reviewer.assigned"
    REVIEWER_STATUS_CHANGED = "reviewer.statusChanged"
    WORKFLOW_PHASE_CHANGED = "workflow.phaseChanged"
    DECISION_RELEASED = "decision.released"


ParameterType = Literal["string", "number", "boolean", "enum", "array"]


# ============================================================================
# Wire models
# ============================================================================

class WireModel(BaseModel):
    """Base for models serialized to API clients (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BotAttachment(WireModel):
    type: Literal["file", "report", "analysis"] = "file"
    filename: str
    data: Any = None
    mimetype: Optional[str] = None


class ActionHandlerRef(WireModel):
    bot_id: str
    action: str
    params: Dict[str, Any] = Field(default_factory=dict)


class BotMessageAction(WireModel):
    """A button attached to a message, routed back to a bot action handler."""

    id: str
    label: str
    style: Optional[Literal["primary", "secondary", "danger"]] = None
    confirm_text: Optional[str] = None
    target_user_id: Optional[str] = None
    target_roles: Optional[List[str]] = None
    handler: ActionHandlerRef
    result_content: Optional[str] = None
    result_label: Optional[str] = None


class BotMessage(WireModel):
    content: str
    reply_to: Optional[str] = None
    attachments: Optional[List[BotAttachment]] = None
    structured_data: Optional[Dict[str, Any]] = None
    annotations: Optional[List[Dict[str, Any]]] = None
    actions: Optional[List[BotMessageAction]] = None


class BotAction(WireModel):
    """Side-effect instruction applied by an external action processor."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class BotResponse(WireModel):
    bot_id: Optional[str] = None
    messages: List[BotMessage] = Field(default_factory=list)
    actions: Optional[List[BotAction]] = None
    errors: Optional[List[str]] = None

    @classmethod
    def from_value(cls, value: Any) -> "BotResponse":
        """Normalize whatever a command body returned into a BotResponse."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value.model_copy()
        return cls.model_validate(value)


class ActionHandlerContext(WireModel):
    manuscript_id: str
    conversation_id: str
    message_id: str
    triggered_by: Dict[str, str] = Field(default_factory=dict)
    service_token: Optional[str] = None


class ActionHandlerResult(WireModel):
    success: bool
    updated_content: Optional[str] = None
    updated_label: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# Execution context
# ============================================================================

@dataclass(frozen=True)
class TriggeredBy:
    message_id: str
    user_id: str
    user_role: str = "USER"
    trigger: BotTrigger = BotTrigger.MENTION


@dataclass(frozen=True)
class JournalInfo:
    id: str = "default"
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BotContext:
    """Per-invocation context handed to command bodies.

    Never mutated after construction; the executor builds an enhanced copy
    with dataclasses.replace() when it merges installation config.
    """

    conversation_id: str
    manuscript_id: str
    triggered_by: TriggeredBy
    journal: JournalInfo = field(default_factory=JournalInfo)
    config: Dict[str, Any] = field(default_factory=dict)
    service_token: Optional[str] = None
    manuscript: Optional[Dict[str, Any]] = None
    files: Optional[List[Dict[str, Any]]] = None


# ============================================================================
# Bot definitions
# ============================================================================

CommandBody = Callable[[Dict[str, Any], BotContext], Awaitable[Union[BotResponse, dict, None]]]
ActionHandler = Callable[[Dict[str, Any], ActionHandlerContext], Awaitable[Union[ActionHandlerResult, dict]]]
EventHandler = Callable[[BotContext, Dict[str, Any]], Awaitable[Union[BotResponse, dict, None]]]


@dataclass
class BotCommandParameter:
    name: str
    description: str
    type: ParameterType = "string"
    required: bool = False
    default_value: Any = None
    enum_values: Optional[List[str]] = None
    validation: Optional[Any] = None  # callable or pydantic TypeAdapter
    examples: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.type == "enum" and not self.enum_values:
            raise ValueError(f"Enum parameter '{self.name}' must declare enum_values")

    @property
    def has_default(self) -> bool:
        return self.default_value is not None


@dataclass
class BotCommand:
    name: str
    description: str
    execute: CommandBody
    usage: str = ""
    parameters: List[BotCommandParameter] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)
    help: Optional[str] = None


@dataclass
class BotHelp:
    overview: str = ""
    quick_start: str = ""
    examples: List[str] = field(default_factory=list)


@dataclass
class BotCustomHelpSection:
    title: str
    content: str
    position: Literal["before", "after"] = "after"


@dataclass
class CommandBot:
    """Immutable description of a bot's capabilities, replaced wholesale on reload."""

    id: str
    name: str
    description: str
    version: str
    commands: List[BotCommand] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    triggers: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)
    help: BotHelp = field(default_factory=BotHelp)
    custom_help_sections: List[BotCustomHelpSection] = field(default_factory=list)
    supports_file_uploads: bool = False
    action_handlers: Dict[str, ActionHandler] = field(default_factory=dict)
    events: Dict[str, EventHandler] = field(default_factory=dict)
    on_install: Optional[Callable[[Any], Awaitable[None]]] = None
    config_model: Optional[type[BaseModel]] = None

    def get_command(self, name: str) -> Optional[BotCommand]:
        return next((cmd for cmd in self.commands if cmd.name == name), None)


@dataclass
class ParsedCommand:
    bot_id: str
    command: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""
    is_unrecognized: bool = False


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))
