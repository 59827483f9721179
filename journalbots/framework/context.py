"""Factory for bot execution contexts."""

import logging
from typing import Any, Dict, Optional

from journalbots.framework.types import BotContext, BotTrigger, JournalInfo, TriggeredBy

logger = logging.getLogger(__name__)


def create_bot_context(
    conversation_id: str,
    manuscript_id: str,
    message_id: str,
    user_id: str,
    user_role: str = "USER",
    trigger: BotTrigger = BotTrigger.MENTION,
    journal: Optional[Dict[str, Any]] = None,
    config: Optional[Dict[str, Any]] = None,
    service_token: Optional[str] = None,
    manuscript: Optional[Dict[str, Any]] = None,
    files: Optional[list] = None,
) -> BotContext:
    """Build a BotContext, defaulting the journal to ``default`` with empty settings."""
    journal = journal or {}
    return BotContext(
        conversation_id=conversation_id,
        manuscript_id=manuscript_id,
        triggered_by=TriggeredBy(
            message_id=message_id,
            user_id=user_id,
            user_role=user_role,
            trigger=BotTrigger(trigger),
        ),
        journal=JournalInfo(
            id=journal.get("id", "default"),
            settings=dict(journal.get("settings", {})),
        ),
        config=dict(config or {}),
        service_token=service_token,
        manuscript=manuscript,
        files=files,
    )


def context_from_dict(data: Dict[str, Any]) -> BotContext:
    """Build a BotContext from a JSON payload (camelCase or snake_case keys)."""
    triggered_by = data.get("triggeredBy") or data.get("triggered_by") or {}
    return create_bot_context(
        conversation_id=data.get("conversationId") or data.get("conversation_id", ""),
        manuscript_id=data.get("manuscriptId") or data.get("manuscript_id", ""),
        message_id=triggered_by.get("messageId") or triggered_by.get("message_id", ""),
        user_id=triggered_by.get("userId") or triggered_by.get("user_id", ""),
        user_role=triggered_by.get("userRole") or triggered_by.get("user_role", "USER"),
        trigger=_trigger_from_payload(triggered_by.get("trigger")),
        journal=data.get("journal"),
        config=data.get("config"),
        service_token=data.get("serviceToken") or data.get("service_token"),
        manuscript=data.get("manuscript"),
        files=data.get("files"),
    )


def _trigger_from_payload(value: Any) -> BotTrigger:
    if value is None:
        return BotTrigger.MENTION
    try:
        return BotTrigger(value)
    except ValueError:
        logger.warning(f"Unknown trigger {value!r}, treating as mention")
        return BotTrigger.MENTION
