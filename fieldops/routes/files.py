from mimetypes import guess_type

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from ..storage.factory import get_storage
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/local/{file_path:path}")
def serve_local_file(file_path: str, storage: StorageProvider = Depends(get_storage)):
    """Serve uploads from local storage for development."""
    if not isinstance(storage, LocalStorageProvider):
        raise HTTPException(status_code=404, detail="File not found")

    # Security: prevent directory traversal
    clean_path = file_path.lstrip("/").replace("..", "").replace("\\", "/")
    path = storage._get_path(clean_path).resolve()
    if not str(path).startswith(str(storage.base_dir.resolve())):
        raise HTTPException(status_code=403, detail="Access denied")

    data = storage.read(clean_path)
    if data is None:
        raise HTTPException(status_code=404, detail="File not found")
    content_type = guess_type(clean_path)[0] or "application/octet-stream"
    return Response(content=data, media_type=content_type)
