"""
Catalog Backend — Image Storage Service
=========================================

What:  Validates, stores and removes product image files on disk.
How:   Checks extension and size, writes the bytes under
       <upload_root>/products/<uuid><ext>, and turns the disk path into the
       public path stored on the product (relative to the upload root).
Who:   Called by the product routes (store) and ProductService (cleanup).

Lifecycle of an uploaded image:
    1. Route receives the multipart `image` part → FileService.store_upload()
    2. Extension and size checks (ValidationError on failure)
    3. Bytes written with aiofiles → StoredImage(disk_path, public_path)
    4. ProductService persists public_path as Product.image_url
    5. On a failed write, a missing product, or a replaced/deleted product,
       cleanup_file()/cleanup_public_path() remove the file (best-effort)

Directory Structure:
    uploads/
    └── products/
        ├── 3f2c...e1.jpg
        └── 9a01...77.png
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from app.config import settings
from app.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

# Subdirectory of the upload root that holds product images
PRODUCT_IMAGE_DIR = "products"


@dataclass(frozen=True)
class StoredImage:
    """An image written to disk during the current request."""
    disk_path: str
    public_path: str


def _normalize_root(upload_root: str) -> str:
    root = upload_root.replace("\\", "/")
    while root.startswith("./"):
        root = root[2:]
    return root.strip("/")


def to_public_image_path(file_path: str, upload_root: str = "uploads") -> str:
    """
    Derive the public image path from the disk path an upload was written to.

    Backslashes become forward slashes, then leading "./", "/" and
    "<upload_root>/" segments are stripped until none remain, so the result
    is relative to the upload root:

        uploads/products/a.jpg        → products/a.jpg
        ./uploads/products/a.jpg      → products/a.jpg
        uploads\\products\\a.jpg        → products/a.jpg
        /srv/media/products/a.jpg     → products/a.jpg  (upload_root="/srv/media")

    The function is pure and idempotent.
    """
    path = file_path.replace("\\", "/")
    root = _normalize_root(upload_root)
    prefix = f"{root}/" if root else ""

    while True:
        previous = path
        while path.startswith("./"):
            path = path[2:]
        path = path.lstrip("/")
        if prefix and path.startswith(prefix):
            path = path[len(prefix):]
        if path == previous:
            return path


class FileService:
    """
    Manages image validation, storage and cleanup under one upload root.

    Cleanup never raises: a file that cannot be removed is logged and left
    behind, since the database outcome has already been decided by then.
    """

    def __init__(self, upload_root: Optional[str] = None, max_size: Optional[int] = None):
        """
        Args:
            upload_root: Override the default upload directory (used in tests).
            max_size:    Override settings.max_image_size in bytes.
        """
        self._configured_root = upload_root or settings.upload_root
        self.upload_root = Path(self._configured_root).resolve()
        self.max_size = max_size or settings.max_image_size
        self.upload_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with upload_root=%s", self.upload_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """
        Returns the normalized extension (lowercase with dot).

        Raises:  ValidationError if the extension is not allowed.
        """
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="image",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Checks the reported size (before reading) and the actual byte count.

        Raises:
            ValidationError for empty files or files above max_size
        """
        max_mb = self.max_size / (1024 * 1024)

        if content_length and content_length > self.max_size:
            raise ValidationError(
                message=f"Image size exceeds maximum of {max_mb:.1f}MB.",
                field="image",
                context={"max_size": self.max_size, "reported_size": content_length},
            )

        if actual_size == 0:
            raise ValidationError(
                message="Uploaded image is empty.",
                field="image",
            )

        if actual_size > self.max_size:
            raise ValidationError(
                message=(
                    f"Image size ({actual_size / (1024 * 1024):.1f}MB) exceeds "
                    f"maximum of {max_mb:.1f}MB."
                ),
                field="image",
                context={"max_size": self.max_size, "actual_size": actual_size},
            )

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Path:
        """Returns <upload_root>/products/<uuid><ext>."""
        return self.upload_root / PRODUCT_IMAGE_DIR / f"{uuid.uuid4()}{extension}"

    def to_public_path(self, disk_path: str) -> str:
        """
        Convert a disk path (or an already-public path) into the value stored
        on Product.image_url.

        What:  Strips both spellings of the upload root, the configured one
               (e.g. "./uploads") and the resolved absolute directory.
        How:   Applies to_public_image_path() with each root until the path
               stops changing, so mixed prefixes such as
               "/abs/uploads/./uploads/products/a.png" collapse fully.
        Who:   store_file() for new uploads; ProductService for client-supplied
               imageUrl values; resolve_public_path() before touching disk.

        Examples (configured root "./uploads", resolved "/srv/app/uploads"):
            /srv/app/uploads/products/a.png  → products/a.png
            ./uploads/products/a.png         → products/a.png
            products/a.png                   → products/a.png
        """
        path = disk_path
        while True:
            previous = path
            path = to_public_image_path(path, self._configured_root)
            path = to_public_image_path(path, str(self.upload_root))
            if path == previous:
                return path

    async def store_file(self, content: bytes, extension: str) -> StoredImage:
        """
        Write validated image bytes to disk.

        Raises:
            FileStorageError if directory creation or file write fails.
        """
        disk_path = self._generate_storage_path(extension)

        try:
            disk_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(disk_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store image at %s: %s", disk_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(disk_path), "os_error": str(e)},
            )

        stored = StoredImage(
            disk_path=str(disk_path),
            public_path=self.to_public_path(str(disk_path)),
        )
        logger.info("Image stored: %s (%d bytes)", stored.public_path, len(content))
        return stored

    async def store_upload(self, upload: UploadFile) -> StoredImage:
        """
        Complete validation and storage pipeline for a multipart upload.

        Validation order:
            1. Extension check, no reading needed
            2. Read bytes, reported and actual size check
            3. Write to disk
        """
        ext = self.validate_extension(upload.filename or "")

        content = await upload.read()
        self.validate_size(upload.size, len(content))

        return await self.store_file(content, ext)

    # ── Public path resolution ────────────────────────────────────────────

    def resolve_public_path(self, public_path: str) -> Path:
        """
        Map a stored image path back to its location on disk.

        Raises:
            ValidationError if the path escapes the upload root.
        """
        relative = self.to_public_path(public_path)
        full_path = (self.upload_root / relative).resolve()
        if full_path == self.upload_root or not full_path.is_relative_to(self.upload_root):
            raise ValidationError(
                message="Invalid image path",
                field="imageUrl",
                context={"path": public_path},
            )
        return full_path

    def image_exists(self, public_path: str) -> bool:
        """
        True when the path names a regular file inside the upload root.

        Raises:
            ValidationError if the path escapes the upload root.
        """
        return self.resolve_public_path(public_path).is_file()

    # ── Cleanup ───────────────────────────────────────────────────────────

    async def cleanup_file(self, file_path: str) -> None:
        """
        Remove a file from disk if it exists.

        Missing files are ignored and other failures are logged, never raised.
        """
        try:
            path = Path(file_path)
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except Exception as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def cleanup_public_path(self, public_path: str) -> None:
        """Remove the file behind a stored image path (best-effort)."""
        try:
            full_path = self.resolve_public_path(public_path)
        except ValidationError:
            logger.warning("Refusing to clean up path outside upload root: %s", public_path)
            return
        await self.cleanup_file(str(full_path))


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()


def get_file_service() -> FileService:
    """FastAPI dependency returning the shared FileService."""
    return file_service
