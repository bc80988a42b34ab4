from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from studystack.api.deps import get_app_settings, get_blob_store
from studystack.core.config import Settings
from studystack.core.errors import AppError
from studystack.core.security import verify_path_signature
from studystack.core.storage import BlobStore, LocalBlobStore, StorageError

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/signed")
def signed_file(
    path: str,
    exp: int,
    sig: str,
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_app_settings),
):
    if not isinstance(blob_store, LocalBlobStore):
        raise AppError(code="RESOURCE_NOT_FOUND", message="Only available for local storage", status_code=404)
    if not verify_path_signature(settings.SIGNED_URL_SECRET, path, exp, sig):
        raise AppError(code="AUTH_REQUIRED", message="Signed link is invalid or expired", status_code=401)
    try:
        target = blob_store.resolve(path)
    except StorageError:
        raise AppError(code="RESOURCE_NOT_FOUND", message="File not found", status_code=404)
    if not target.is_file():
        raise AppError(code="RESOURCE_NOT_FOUND", message="File not found on server", status_code=404)
    return FileResponse(str(target), filename=target.name)
