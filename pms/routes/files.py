import mimetypes

import structlog
from fastapi import APIRouter, Depends, UploadFile
from fastapi.responses import FileResponse

from ..config import settings
from ..errors import CONTENT_NOT_FOUND, DIRECTORY_CREATION_FAILED, INVALID_REQUEST, bad_request, not_found, server_error
from ..schemas.enums import FileKind
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider
from ..utils import file_extension, object_id


router = APIRouter(prefix="/files", tags=["files"])
log = structlog.get_logger(__name__)

FILE_DIRS = {
    FileKind.PROJECT_DOCUMENTATION: "reports/documentation",
    FileKind.COMPANY_IMAGE: "companies",
    FileKind.CUSTOMER_IMAGE: "customers",
    FileKind.USER_IMAGE: "users",
}


def get_storage() -> StorageProvider:
    return LocalStorageProvider(settings.files_dir)


def save_image(storage: StorageProvider, kind: FileKind, entity_id: str, upload: UploadFile) -> dict:
    """Replace an entity's image directory with ``upload``; returns the ``{_id, extension}`` record."""
    extension = file_extension(upload.filename)
    if extension is None:
        raise bad_request(INVALID_REQUEST)
    image = {"_id": object_id(), "extension": extension}
    folder = f"{FILE_DIRS[kind]}/{entity_id}"
    try:
        storage.delete_dir(folder)
        storage.save(f"{folder}/{image['_id']}.{extension}", upload.file)
    except OSError as e:
        log.error("image_write_failed", kind=kind.value, entity_id=entity_id, error=str(e))
        raise server_error(DIRECTORY_CREATION_FAILED)
    return image


@router.get("")
def get_file(kind: FileKind, name: str, storage: StorageProvider = Depends(get_storage)):
    path = storage.path(f"{FILE_DIRS[kind]}/{name}")
    if path is None:
        raise not_found(CONTENT_NOT_FOUND)
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type)
