"""Editorial bot: decisions, status changes and reviewer assignments."""

import logging
import re
from datetime import date, timedelta
from typing import Annotated, Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter
from pydantic.alias_generators import to_camel

from journalbots.framework.types import (
    ActionHandlerContext,
    ActionHandlerRef,
    BotAction,
    BotCommand,
    BotCommandParameter,
    BotContext,
    BotCustomHelpSection,
    BotHelp,
    BotMessage,
    BotMessageAction,
    BotResponse,
    CommandBot,
)

logger = logging.getLogger("plugin.editorial-bot")

BOT_ID = "editorial-bot"

MANUSCRIPT_STATUSES = [
    "SUBMITTED",
    "UNDER_REVIEW",
    "REVISION_REQUESTED",
    "REVISED",
    "ACCEPTED",
    "REJECTED",
    "PUBLISHED",
]

MENTION_PATTERN = re.compile(r"@([A-Za-z0-9._-]+)")

deadline_validator = TypeAdapter(
    Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$")]
)

DECISION_LETTER_TEMPLATE = """Dear {author},

Thank you for submitting "{title}" to {journal}.

Decision: {decision}

{reason}

Sincerely,
{signature}
"""


class EditorialConfig(BaseModel):
    """Installation configuration (camelCase keys in YAML)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    notify_authors: bool = True
    default_review_days: int = Field(default=21, ge=1, le=180)
    summary_format: Literal["brief", "detailed"] = "brief"
    decision_signature: str = "The Editorial Office"


def _settings(context: BotContext) -> EditorialConfig:
    return EditorialConfig.model_validate(context.config or {})


def _signature(context: BotContext) -> str:
    return f"\n\n_{_settings(context).decision_signature}_"


def _decision_actions(status: str, reason: str, context: BotContext) -> List[BotAction]:
    actions = [BotAction(type="UPDATE_MANUSCRIPT_STATUS", data={"status": status, "reason": reason})]
    if _settings(context).notify_authors:
        actions.append(BotAction(
            type="NOTIFY_AUTHORS",
            data={"manuscriptId": context.manuscript_id, "decision": status},
        ))
    return actions


async def accept_manuscript(params: Dict[str, Any], context: BotContext) -> BotResponse:
    reason = params.get("reason") or "Meets publication standards"
    actions = _decision_actions("ACCEPTED", reason, context)
    actions.append(BotAction(
        type="EXECUTE_PUBLICATION_WORKFLOW",
        data={
            "manuscriptId": context.manuscript_id,
            "acceptedDate": date.today().isoformat(),
            "reason": reason,
            "triggeredBy": "editorial-decision",
        },
    ))
    content = (
        "🎉 **Manuscript Accepted for Publication**\n\n"
        "**Status:** ACCEPTED\n"
        f"**Reason:** {reason}\n"
        f"**Manuscript ID:** {context.manuscript_id}\n\n"
        "The publication workflow has been started."
        + _signature(context)
    )
    return BotResponse(messages=[BotMessage(content=content)], actions=actions)


async def reject_manuscript(params: Dict[str, Any], context: BotContext) -> BotResponse:
    reason = params.get("reason") or "Does not meet publication standards"
    content = (
        "📋 **Manuscript Decision: Rejected**\n\n"
        "**Status:** REJECTED\n"
        f"**Reason:** {reason}\n"
        f"**Manuscript ID:** {context.manuscript_id}"
        + _signature(context)
    )
    return BotResponse(
        messages=[BotMessage(content=content)],
        actions=_decision_actions("REJECTED", reason, context),
    )


async def update_status(params: Dict[str, Any], context: BotContext) -> BotResponse:
    status = params["status"]
    reason = params.get("reason")
    content = f"📊 **Manuscript Status Updated**\n\n**New Status:** {status}"
    if reason:
        content += f"\n**Reason:** {reason}"
    data = {"status": status}
    if reason:
        data["reason"] = reason
    return BotResponse(
        messages=[BotMessage(content=content)],
        actions=[BotAction(type="UPDATE_MANUSCRIPT_STATUS", data=data)],
    )


async def assign_reviewers(params: Dict[str, Any], context: BotContext) -> BotResponse:
    reviewers = MENTION_PATTERN.findall(params["reviewers"])
    if not reviewers:
        return BotResponse(
            messages=[BotMessage(content="❌ Mention at least one reviewer, e.g. `@editorial-bot assign @alice`")],
            errors=["No reviewers mentioned"],
        )

    deadline = params.get("deadline")
    if not deadline:
        days = _settings(context).default_review_days
        deadline = (date.today() + timedelta(days=days)).isoformat()

    lines = [f"- @{reviewer}" for reviewer in reviewers]
    content = (
        "👥 **Reviewers Invited**\n\n"
        + "\n".join(lines)
        + f"\n\n**Review Deadline:** {deadline}"
    )
    if params.get("message"):
        content += f"\n**Message:** {params['message']}"

    buttons = [
        BotMessageAction(
            id=f"reinvite-{reviewer}",
            label=f"Re-invite {reviewer}",
            style="secondary",
            target_roles=["EDITOR", "ADMIN"],
            handler=ActionHandlerRef(
                bot_id=BOT_ID,
                action="REINVITE_REVIEWER",
                params={"reviewer": reviewer, "deadline": deadline},
            ),
        )
        for reviewer in reviewers
    ]
    return BotResponse(
        messages=[BotMessage(content=content, actions=buttons)],
        actions=[BotAction(
            type="ASSIGN_REVIEWER",
            data={"reviewers": reviewers, "deadline": deadline, "message": params.get("message")},
        )],
    )


async def manuscript_summary(params: Dict[str, Any], context: BotContext) -> BotResponse:
    fmt = params.get("format") or _settings(context).summary_format
    manuscript = context.manuscript or {}
    content = (
        "📄 **Manuscript Summary**\n\n"
        f"**Manuscript ID:** {context.manuscript_id}\n"
        f"**Title:** {manuscript.get('title', 'Untitled')}\n"
        f"**Status:** {manuscript.get('status', 'UNKNOWN')}"
    )
    if fmt == "detailed":
        authors = ", ".join(manuscript.get("authors", [])) or "Unknown"
        content += (
            f"\n**Authors:** {authors}"
            f"\n**Files:** {len(context.files or [])}"
            f"\n**Journal:** {context.journal.id}"
        )
    return BotResponse(messages=[BotMessage(content=content)])


async def reinvite_reviewer(params: Dict[str, Any], context: ActionHandlerContext) -> Dict[str, Any]:
    """Button follow-up for a reviewer who has not responded."""
    reviewer = params.get("reviewer")
    if not reviewer:
        return {"success": False, "error": "Missing reviewer"}
    deadline = params.get("deadline", "the original deadline")
    logger.info(f"Re-inviting {reviewer} on manuscript {context.manuscript_id}")
    return {
        "success": True,
        "updatedContent": f"🔁 @{reviewer} has been re-invited (deadline {deadline}).",
        "updatedLabel": "Re-invited",
    }


async def on_manuscript_submitted(context: BotContext, payload: Dict[str, Any]) -> BotResponse:
    title = payload.get("title") or "A new manuscript"
    return BotResponse(messages=[BotMessage(
        content=(
            f"📥 **{title}** has been submitted.\n\n"
            "Use `@editorial-bot assign @reviewer` to invite reviewers."
        )
    )])


async def on_install(installation) -> None:
    """Ship a decision-letter template alongside the installation."""
    result = await installation.upload_file(
        "decision-letter-template.md",
        DECISION_LETTER_TEMPLATE.encode("utf-8"),
        "text/markdown",
        description="Template for editorial decision letters",
    )
    installation.get_logger("install").info(f"Decision letter template available at {result['downloadUrl']}")


bot = CommandBot(
    id=BOT_ID,
    name="Editorial Bot",
    description="Records editorial decisions, updates manuscript status and invites reviewers",
    version="3.0.0",
    permissions=["read_manuscript", "update_manuscript", "assign_reviewers", "make_editorial_decision"],
    supports_file_uploads=True,
    commands=[
        BotCommand(
            name="accept",
            description="Accept the manuscript for publication",
            usage="@editorial-bot accept [reason=\"...\"]",
            execute=accept_manuscript,
            parameters=[
                BotCommandParameter(
                    name="reason",
                    description="Reason for the decision",
                    examples=['"High quality research"'],
                ),
            ],
            examples=['@editorial-bot accept reason="Excellent methodology"'],
            permissions=["make_editorial_decision"],
        ),
        BotCommand(
            name="reject",
            description="Reject the manuscript",
            usage="@editorial-bot reject [reason=\"...\"]",
            execute=reject_manuscript,
            parameters=[
                BotCommandParameter(name="reason", description="Reason for the decision"),
            ],
            examples=['@editorial-bot reject reason="Out of scope"'],
            permissions=["make_editorial_decision"],
        ),
        BotCommand(
            name="status",
            description="Change the manuscript status",
            usage="@editorial-bot status <status> [reason=\"...\"]",
            execute=update_status,
            parameters=[
                BotCommandParameter(
                    name="status",
                    description="New manuscript status",
                    type="enum",
                    required=True,
                    enum_values=MANUSCRIPT_STATUSES,
                    examples=["UNDER_REVIEW"],
                ),
                BotCommandParameter(name="reason", description="Reason for the change"),
            ],
            examples=[
                "@editorial-bot status UNDER_REVIEW",
                '@editorial-bot status REVISION_REQUESTED reason="Minor revisions"',
            ],
            permissions=["update_manuscript"],
        ),
        BotCommand(
            name="assign",
            description="Invite reviewers for the manuscript",
            usage="@editorial-bot assign @reviewer1 @reviewer2 [deadline=YYYY-MM-DD] [message=\"...\"]",
            execute=assign_reviewers,
            parameters=[
                BotCommandParameter(
                    name="reviewers",
                    description="Reviewers to invite, as @mentions",
                    required=True,
                    examples=["@alice @bob"],
                ),
                BotCommandParameter(
                    name="deadline",
                    description="Review deadline",
                    validation=deadline_validator,
                    examples=["2025-03-01"],
                ),
                BotCommandParameter(name="message", description="Note for the invited reviewers"),
            ],
            examples=[
                "@editorial-bot assign @alice @bob",
                '@editorial-bot assign @alice deadline=2025-03-01 message="Please focus on methods"',
            ],
            permissions=["assign_reviewers"],
        ),
        BotCommand(
            name="summary",
            description="Summarize the manuscript's current state",
            usage="@editorial-bot summary [format=brief|detailed]",
            execute=manuscript_summary,
            parameters=[
                BotCommandParameter(
                    name="format",
                    description="Level of detail",
                    type="enum",
                    enum_values=["brief", "detailed"],
                ),
            ],
            examples=["@editorial-bot summary", "@editorial-bot summary format=detailed"],
        ),
    ],
    help=BotHelp(
        overview="Records editorial decisions and manages the review process for a manuscript.",
        quick_start=(
            "Start with `@editorial-bot summary` to see where the manuscript stands, "
            "then `@editorial-bot assign @reviewer` to invite reviewers."
        ),
        examples=[
            '@editorial-bot accept reason="High quality research"',
            "@editorial-bot status UNDER_REVIEW",
            "@editorial-bot assign @alice deadline=2025-03-01",
        ],
    ),
    custom_help_sections=[
        BotCustomHelpSection(
            title="Editorial Workflow",
            content="SUBMITTED → UNDER_REVIEW → REVISION_REQUESTED → ACCEPTED → PUBLISHED",
            position="before",
        ),
        BotCustomHelpSection(
            title="Permissions",
            content="Decisions and status changes are limited to editors.",
        ),
    ],
    action_handlers={"REINVITE_REVIEWER": reinvite_reviewer},
    events={"manuscript.submitted": on_manuscript_submitted},
    on_install=on_install,
    config_model=EditorialConfig,
)
