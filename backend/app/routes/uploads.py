"""
Catalog Backend — Uploaded Image Route
========================================

What:  Serves stored product images at `/uploads/<imageUrl>`.
Who:   Called by <img> tags that reference a product's imageUrl.

Security:
    - Paths are resolved through FileService.resolve_public_path(), which
      rejects anything outside the upload root (e.g. ../../etc/passwd)
    - Only existing regular files are served
"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from app.config import settings
from app.exceptions import NotFoundError
from app.services.file_service import FileService, get_file_service

router = APIRouter(prefix=settings.uploads_url_prefix, tags=["Uploads"])


@router.get(
    "/{file_path:path}",
    summary="Serve an uploaded product image",
    responses={
        200: {"description": "Image file"},
        400: {"description": "Invalid file path"},
        404: {"description": "File not found"},
    },
)
async def serve_upload(
    file_path: str,
    files: FileService = Depends(get_file_service),
) -> FileResponse:
    full_path = files.resolve_public_path(file_path)

    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
