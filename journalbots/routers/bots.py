"""Bot management and message REST API endpoints."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field, ValidationError

from journalbots.dependencies import get_engine
from journalbots.errors import BotPluginError, PluginErrorCode
from journalbots.framework.context import context_from_dict
from journalbots.framework.types import ActionHandlerContext
from journalbots.plugins.sources import parse_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bots", tags=["bots"])

ERROR_STATUS = {
    PluginErrorCode.NOT_INSTALLED: 404,
    PluginErrorCode.NOT_LOADED: 404,
    PluginErrorCode.ALREADY_INSTALLED: 409,
    PluginErrorCode.VALIDATION_FAILED: 400,
}


def _http_error(error: BotPluginError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(error.code, 500), detail=error.to_dict())


class BotInstallRequest(BaseModel):
    """Request body for installing a bot."""

    source: Dict[str, Any]
    config: Optional[Union[Dict[str, Any], str]] = None


class BotConfigUpdate(BaseModel):
    """Request body for configuring a bot (object or YAML text)."""

    config: Union[Dict[str, Any], str]


class BotUpdateRequest(BaseModel):
    version: Optional[str] = None


class MessageRequest(BaseModel):
    """A chat message to parse and execute."""

    text: str
    context: Dict[str, Any] = Field(default_factory=dict)


class ActionRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict)
    context: ActionHandlerContext


@router.get("/")
async def list_bots():
    """List all installed bots."""
    installations = await get_engine().manager.list()
    return {"bots": [i.to_dict() for i in installations]}


@router.post("/install")
async def install_bot(body: BotInstallRequest):
    """Install a bot from a local path, package, git repository or URL."""
    try:
        source = parse_source(body.source)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"code": "VALIDATION_FAILED", "message": str(e)})

    try:
        installation = await get_engine().manager.install(source, body.config)
    except BotPluginError as e:
        raise _http_error(e)
    return {
        "message": f"Bot '{installation.bot_id}' installed",
        "installation": installation.to_dict(),
    }


@router.post("/install-defaults")
async def install_default_bots():
    """Install bundled bots that are not yet installed."""
    installations = await get_engine().manager.install_defaults()
    return {"installed": [i.to_dict() for i in installations]}


@router.post("/messages")
async def process_message(body: MessageRequest):
    """Parse a chat message and execute every bot command it addresses."""
    responses = await get_engine().process_message(body.text, context_from_dict(body.context))
    return {"responses": [r.to_dict() for r in responses]}


@router.get("/config-files/{file_id}/download")
async def download_config_file(file_id: str):
    """Download a file uploaded by a bot's installation hook."""
    record = await get_engine().store.get_config_file(file_id)
    if record is None or not Path(record.path).exists():
        raise HTTPException(status_code=404, detail=f"Config file '{file_id}' not found")
    return FileResponse(record.path, media_type=record.mimetype, filename=record.filename)


@router.get("/{bot_id}")
async def get_bot(bot_id: str):
    """Get a bot's installation record."""
    installation = await get_engine().manager.get(bot_id)
    if installation is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "NOT_INSTALLED", "message": f"Bot {bot_id} is not installed"},
        )
    return installation.to_dict()


@router.delete("/{bot_id}")
async def uninstall_bot(bot_id: str):
    try:
        await get_engine().manager.uninstall(bot_id)
    except BotPluginError as e:
        raise _http_error(e)
    return {"message": f"Bot '{bot_id}' uninstalled"}


@router.post("/{bot_id}/update")
async def update_bot(bot_id: str, body: Optional[BotUpdateRequest] = None):
    """Reinstall a bot (optionally at a new package version), keeping its config."""
    try:
        installation = await get_engine().manager.update(bot_id, body.version if body else None)
    except BotPluginError as e:
        raise _http_error(e)
    return {"message": f"Bot '{bot_id}' updated", "installation": installation.to_dict()}


@router.post("/{bot_id}/enable")
async def enable_bot(bot_id: str):
    try:
        await get_engine().manager.enable(bot_id)
    except BotPluginError as e:
        raise _http_error(e)
    return {"message": f"Bot '{bot_id}' enabled"}


@router.post("/{bot_id}/disable")
async def disable_bot(bot_id: str):
    try:
        await get_engine().manager.disable(bot_id)
    except BotPluginError as e:
        raise _http_error(e)
    return {"message": f"Bot '{bot_id}' disabled"}


@router.put("/{bot_id}/config")
async def configure_bot(bot_id: str, body: BotConfigUpdate):
    """Replace a bot's configuration. Takes effect on the next invocation."""
    try:
        installation = await get_engine().manager.configure(bot_id, body.config)
    except BotPluginError as e:
        raise _http_error(e)
    return {"message": f"Configuration updated for bot '{bot_id}'", "installation": installation.to_dict()}


@router.get("/{bot_id}/help")
async def get_bot_help(bot_id: str):
    help_text = await get_engine().manager.get_bot_help(bot_id)
    if help_text is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "NOT_INSTALLED", "message": f"No help available for bot {bot_id}"},
        )
    return {"botId": bot_id, "help": help_text}


@router.post("/{bot_id}/actions/{action}")
async def execute_action(bot_id: str, action: str, body: ActionRequest):
    """Invoke a bot action handler (button/callback follow-up)."""
    result = await get_engine().executor.execute_action_handler(bot_id, action, body.params, body.context)
    return result.to_dict()
