from typing import Optional

import structlog
from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


class BlobStorageProvider(StorageProvider):
    """Azure Blob storage. The container is expected to allow public blob reads."""
    name = "blob"

    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def _client(self, key: str):
        return self._service.get_blob_client(self._container, key.lstrip("/"))

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        self._client(key).upload_blob(
            data,
            overwrite=False,
            content_settings=ContentSettings(content_type=content_type, cache_control="max-age=3600"),
        )
        return key

    def get_public_url(self, key: str) -> str:
        return self._client(key).url

    def read(self, key: str) -> Optional[bytes]:
        try:
            return self._client(key).download_blob().readall()
        except ResourceNotFoundError:
            return None

    def exists(self, key: str) -> bool:
        return self._client(key).exists()

    def delete(self, key: str) -> None:
        try:
            self._client(key).delete_blob()
        except ResourceNotFoundError:
            logger.info("blob_delete_missing", key=key)
