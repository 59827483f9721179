"""Context handed to a bot's ``on_install`` hook."""

import hashlib
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from journalbots.plugins.store import BotConfigFileRecord, BotStore

logger = logging.getLogger(__name__)


class BotInstallationContext:
    """What an installation hook can see and do.

    Attributes:
        bot_id: Id of the bot being installed
        config: Effective configuration (parsed)
        service_token: Token for the bot's service identity, if issued
    """

    def __init__(
        self,
        bot_id: str,
        config: Dict[str, Any],
        store: BotStore,
        upload_dir: Path,
        uploaded_by: Optional[str] = None,
        service_token: Optional[str] = None,
    ):
        self.bot_id = bot_id
        self.config = config
        self.service_token = service_token
        self._store = store
        self._upload_dir = Path(upload_dir)
        self._uploaded_by = uploaded_by

    async def upload_file(
        self,
        filename: str,
        content: bytes,
        mimetype: str,
        description: Optional[str] = None,
    ) -> Dict[str, str]:
        """Write a file to the upload directory and record its metadata.

        Returns:
            {"id": <file id>, "downloadUrl": <API path>}
        """
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"file-{uuid.uuid4().hex}{Path(filename).suffix}"
        stored_path = self._upload_dir / stored_name
        stored_path.write_bytes(content)

        record = await self._store.create_config_file(BotConfigFileRecord(
            bot_id=self.bot_id,
            filename=filename,
            stored_name=stored_name,
            path=str(stored_path),
            mimetype=mimetype,
            size=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
            description=description or f"File: {filename}",
            uploaded_by=self._uploaded_by,
            metadata={"originalName": filename, "source": "built-in"},
        ))
        logger.info(f"Bot {self.bot_id} uploaded {filename} as {stored_name}")
        return {"id": record.id, "downloadUrl": f"/api/bots/config-files/{record.id}/download"}

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        suffix = f".{name}" if name else ""
        return logging.getLogger(f"plugin.{self.bot_id}{suffix}")
