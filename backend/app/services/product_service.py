"""
Catalog Backend — Product Service (Business Logic)
====================================================

What:  CRUD for products, filter/sort query construction, and the ordering of
       image-file side effects around each database write.
How:   Holds the request's AsyncSession and the FileService it was built
       with; commits its own writes so file cleanup can follow the outcome.
Who:   Built per request by get_product_service(); called by product routes.

Side-effect ordering:
    ┌──────────────┐    ┌──────────────┐    ┌──────────────────────────┐
    │ Image stored │───▶│  DB write +  │───▶│ Cleanup (best-effort):   │
    │ (route)      │    │  commit      │    │  failure → new file      │
    └──────────────┘    └──────────────┘    │  success → replaced file │
                                            └──────────────────────────┘

Error translation:
    NotFoundError / ValidationError → propagate unchanged
    anything else from the database → InternalError (generic message)
"""

import logging
import uuid
from typing import List, Optional

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.exceptions import CatalogError, InternalError, NotFoundError, ValidationError
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductSort, ProductUpdate
from app.services.file_service import FileService, StoredImage, get_file_service

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProductService:
    """
    Business logic layer for product operations.

    Responsibilities:
        - create():   insert, storing the uploaded image path
        - find_all(): keyword / price-range filtering and sorting
        - find_one(): single lookup with not-found handling
        - update():   partial update, image replacement
        - remove():   delete record and its image
    """

    def __init__(self, db: AsyncSession, files: FileService):
        self.db = db
        self.files = files

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _discard(self, image: Optional[StoredImage]) -> None:
        """
        Remove an image written during this request that will not be persisted.

        What:  Deletes the file behind a StoredImage by its disk path.
        When:  The database write it was meant for failed, or the target
               product does not exist. No-op when nothing was uploaded.

        The file was created by this request, so no other row can reference it.
        """
        if image is not None:
            await self.files.cleanup_file(image.disk_path)

    async def _referenced_elsewhere(
        self,
        public_path: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        True when some product (other than exclude_id) stores public_path.

        Raises:
            InternalError if the lookup fails.
        """
        query = select(Product.id).where(Product.image_url == public_path)
        if exclude_id is not None:
            query = query.where(Product.id != exclude_id)

        try:
            result = await self.db.execute(query.limit(1))
        except Exception as e:
            logger.error("Database error checking image references: %s", str(e))
            raise InternalError(
                message="Could not verify the image reference. Please try again.",
                context={"image_url": public_path, "error_type": type(e).__name__},
            )
        return result.first() is not None

    async def _checked_image_reference(
        self,
        image_url: Optional[str],
        owner_id: Optional[uuid.UUID] = None,
    ) -> Optional[str]:
        """
        Normalize a client-supplied imageUrl before it is stored.

        Rules:
            - None passes through (no image)
            - The path must name an existing file inside the upload root
            - No other product may already use that file; each image file
              belongs to exactly one product (owner_id may keep its own)

        Raises:
            ValidationError if any rule is broken.
        """
        if image_url is None:
            return None
        if not self.files.image_exists(image_url):
            raise ValidationError(
                message="imageUrl does not refer to an uploaded image",
                field="imageUrl",
                errors=[{"field": "imageUrl", "message": "No uploaded image at this path"}],
            )

        public_path = self.files.to_public_path(image_url)
        if await self._referenced_elsewhere(public_path, exclude_id=owner_id):
            raise ValidationError(
                message="imageUrl is already used by another product",
                field="imageUrl",
                errors=[{"field": "imageUrl", "message": "Image belongs to another product"}],
            )
        return public_path

    async def _release_image(self, public_path: Optional[str]) -> None:
        """
        Delete a stored image once no product references it any more.

        What:  Post-commit cleanup for replaced or deleted images.
        How:   Re-checks the products table; a path still stored on some row
               is left on disk. Lookup failures skip the delete and are logged,
               like every other cleanup failure.
        """
        if not public_path:
            return
        try:
            if await self._referenced_elsewhere(public_path):
                logger.warning("Image %s is still referenced; not deleting", public_path)
                return
        except CatalogError as e:
            logger.warning("Skipping cleanup of %s: %s", public_path, e.message)
            return
        await self.files.cleanup_public_path(public_path)

    @staticmethod
    def _parse_id(product_id: str) -> Optional[uuid.UUID]:
        """Returns None for ids that are not UUIDs; no row can match those."""
        try:
            return uuid.UUID(str(product_id))
        except ValueError:
            return None

    # ── Create ────────────────────────────────────────────────────────────

    async def create(
        self,
        data: ProductCreate,
        image: Optional[StoredImage] = None,
    ) -> Product:
        """
        Insert a new product.

        If an image was uploaded, its public path becomes image_url. When the
        insert fails the uploaded file is removed and InternalError is raised.

        Raises:
            ValidationError: imageUrl names no uploaded file, or another
                             product already uses that file
            InternalError:   the database write failed
        """
        fields = data.model_dump(exclude_none=True)
        try:
            if image is not None:
                fields["image_url"] = image.public_path
            else:
                fields["image_url"] = await self._checked_image_reference(fields.get("image_url"))
        except CatalogError:
            await self._discard(image)
            raise

        product = Product(**fields)
        try:
            self.db.add(product)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self._discard(image)
            logger.error("Create product failed: %s", str(e), exc_info=True)
            raise InternalError(
                message="Create product failed",
                context={"error_type": type(e).__name__},
            )

        logger.info("Product created: %s (image=%s)", product.id, product.image_url)
        return product

    # ── Read ──────────────────────────────────────────────────────────────

    async def find_all(
        self,
        keyword: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort: Optional[ProductSort] = None,
    ) -> List[Product]:
        """
        List products matching every supplied filter.

        Filters (AND-combined, each optional):
            keyword:   case-insensitive substring of name
            min_price: price >= min_price
            max_price: price <= max_price

        Sort:
            price_asc / price_desc, ties broken newest first;
            anything else (including None) → newest first

        Keyword matching uses ILIKE. PostgreSQL folds case for every
        character; SQLite (used by the test suite) folds ASCII letters only,
        so a non-ASCII keyword there matches only its exact case.
        """
        query = select(Product)

        if keyword:
            query = query.where(Product.name.ilike(f"%{_escape_like(keyword)}%", escape="\\"))
        if min_price is not None:
            query = query.where(Product.price >= min_price)
        if max_price is not None:
            query = query.where(Product.price <= max_price)

        if sort == ProductSort.PRICE_ASC:
            query = query.order_by(Product.price.asc(), Product.created_at.desc())
        elif sort == ProductSort.PRICE_DESC:
            query = query.order_by(Product.price.desc(), Product.created_at.desc())
        else:
            query = query.order_by(Product.created_at.desc())

        try:
            result = await self.db.execute(query)
            return list(result.scalars().all())
        except Exception as e:
            logger.error("Database error listing products: %s", str(e), exc_info=True)
            raise InternalError(
                message="Could not retrieve products. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def find_one(self, product_id: str) -> Product:
        """
        Raises:
            NotFoundError: no product has this id (malformed ids included)
            InternalError: the lookup itself failed
        """
        parsed = self._parse_id(product_id)
        if parsed is None:
            raise NotFoundError(resource="product", resource_id=str(product_id))

        try:
            product = await self.db.get(Product, parsed)
        except Exception as e:
            logger.error("Database error fetching product %s: %s", product_id, str(e))
            raise InternalError(
                message="Could not retrieve the product. Please try again.",
                context={"product_id": str(product_id)},
            )

        if product is None:
            raise NotFoundError(resource="product", resource_id=str(product_id))
        return product

    # ── Update ────────────────────────────────────────────────────────────

    async def update(
        self,
        product_id: str,
        data: ProductUpdate,
        image: Optional[StoredImage] = None,
    ) -> Product:
        """
        Apply a partial update, optionally replacing the image.

        Workflow:
            1. Look up the product (missing → discard upload, NotFoundError)
            2. UPDATE ... WHERE id; zero rows → discard upload, NotFoundError
            3. Commit; any other failure → discard upload, InternalError
            4. After commit, remove the previous image if the image changed
               (upload or imageUrl) and no other product still uses it
        """
        try:
            product = await self.find_one(product_id)
            previous_image = product.image_url

            changes = data.changes()
            if image is not None:
                changes["image_url"] = image.public_path
            elif "image_url" in changes:
                changes["image_url"] = await self._checked_image_reference(
                    changes["image_url"], owner_id=product.id
                )
        except CatalogError:
            await self._discard(image)
            raise

        if not changes:
            return product

        try:
            result = await self.db.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(resource="product", resource_id=str(product_id))
            await self.db.commit()
        except NotFoundError:
            await self.db.rollback()
            await self._discard(image)
            raise
        except Exception as e:
            await self.db.rollback()
            await self._discard(image)
            logger.error("Update product %s failed: %s", product_id, str(e), exc_info=True)
            raise InternalError(
                message="Update product failed",
                context={"product_id": str(product_id), "error_type": type(e).__name__},
            )

        await self.db.refresh(product)

        if "image_url" in changes and previous_image and previous_image != changes["image_url"]:
            await self._release_image(previous_image)

        logger.info("Product updated: %s (fields=%s)", product.id, sorted(changes))
        return product

    # ── Delete ────────────────────────────────────────────────────────────

    async def remove(self, product_id: str) -> Product:
        """
        Delete a product and then its image file, if it had one.

        Raises:
            NotFoundError: no product has this id
            InternalError: the delete failed
        """
        product = await self.find_one(product_id)

        try:
            await self.db.delete(product)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Delete product %s failed: %s", product_id, str(e), exc_info=True)
            raise InternalError(
                message="Delete product failed",
                context={"product_id": str(product_id), "error_type": type(e).__name__},
            )

        await self._release_image(product.image_url)

        logger.info("Product deleted: %s", product.id)
        return product


async def get_product_service(
    db: AsyncSession = Depends(get_db_session),
    files: FileService = Depends(get_file_service),
) -> ProductService:
    """FastAPI dependency building a ProductService for the current request."""
    return ProductService(db=db, files=files)
