"""
Local filesystem storage provider for development.
Saves files to a local directory instead of Azure Blob Storage.
"""
from typing import Optional
from pathlib import Path
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider for development."""
    name = "local"

    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        (self.base_dir / "uploads").mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        # Remove leading slash and sanitize
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / "uploads" / clean_key

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        logger.info("local_upload", key=key, size=len(data), content_type=content_type)
        return key

    def get_public_url(self, key: str) -> str:
        return f"{self.public_base_url}/files/local/{quote(key.lstrip('/'))}"

    def read(self, key: str) -> Optional[bytes]:
        path = self._get_path(key)
        if not path.exists():
            return None
        with open(path, "rb") as f:
            return f.read()

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning("local_delete_failed", key=key, error=str(e))
