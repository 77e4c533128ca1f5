"""
Catalog Backend — Product Service Unit Tests
===============================================

What:  Tests for ProductService business logic (create, list, get, update, remove).
How:   Real SQLite session and a FileService over a temp directory; database
       failures are injected by patching the session.

What we test:
    ✅ Create with and without an uploaded image
    ✅ Failed insert removes the uploaded file
    ✅ Keyword / price filtering and every sort order
    ✅ Not-found handling, malformed ids included
    ✅ Image replacement deletes the previous file only after commit
    ✅ Delete removes the record and its image
    ✅ An image file belongs to one product; shared legacy files survive deletes
"""

import uuid

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.exc import SQLAlchemyError

from app.exceptions import InternalError, NotFoundError, ValidationError
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductSort, ProductUpdate


def _names(products):
    return [p.name for p in products]


class TestProductCreate:
    """Tests for ProductService.create()."""

    @pytest.mark.asyncio
    async def test_create_without_image(self, product_service):
        data = ProductCreate(name="Mug", price=12.5, colors=["red", "blue"])

        product = await product_service.create(data)

        assert product.id is not None
        assert product.name == "Mug"
        assert product.price == 12.5
        assert product.colors == ["red", "blue"]
        assert product.image_url is None
        assert product.created_at is not None

    @pytest.mark.asyncio
    async def test_create_with_image(self, product_service, files, upload_root, sample_image_bytes):
        stored = await files.store_file(sample_image_bytes, ".png")

        product = await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        assert product.image_url == stored.public_path
        assert not product.image_url.startswith(("/", "./", "uploads"))
        assert (upload_root / product.image_url).exists()

    @pytest.mark.asyncio
    async def test_create_with_existing_image_reference(self, product_service, files, sample_image_bytes):
        stored = await files.store_file(sample_image_bytes, ".png")
        data = ProductCreate(name="Lamp", price=30, imageUrl=stored.public_path)

        product = await product_service.create(data)

        assert product.image_url == stored.public_path

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_image_reference(self, product_service):
        data = ProductCreate(name="Lamp", price=30, imageUrl="products/missing.png")

        with pytest.raises(ValidationError):
            await product_service.create(data)

    @pytest.mark.asyncio
    async def test_create_rejects_image_of_another_product(
        self, product_service, files, upload_root, sample_image_bytes
    ):
        stored = await files.store_file(sample_image_bytes, ".png")
        first = await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        with pytest.raises(ValidationError, match="another product"):
            await product_service.create(ProductCreate(name="Copy", price=1, imageUrl=first.image_url))

        await product_service.remove(str(first.id))
        assert not (upload_root / stored.public_path).exists()
        assert _names(await product_service.find_all()) == []

    @pytest.mark.asyncio
    async def test_create_commit_failure_removes_upload(
        self, product_service, db_session, files, upload_root, sample_image_bytes
    ):
        stored = await files.store_file(sample_image_bytes, ".png")

        with patch.object(db_session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk I/O error"))):
            with pytest.raises(InternalError) as exc_info:
                await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        assert exc_info.value.message == "Create product failed"
        assert not (upload_root / stored.public_path).exists()


class TestProductFindAll:
    """Tests for filtering and sorting in ProductService.find_all()."""

    @pytest.mark.asyncio
    async def test_default_order_is_newest_first(self, product_service, seed_products):
        result = await product_service.find_all()
        assert _names(result) == ["Mug Rack", "Desk Lamp", "Green Teapot", "Blue Mug", "Red Mug"]

    @pytest.mark.asyncio
    async def test_sort_newest(self, product_service, seed_products):
        result = await product_service.find_all(sort=ProductSort.NEWEST)
        assert _names(result)[0] == "Mug Rack"

    @pytest.mark.asyncio
    async def test_sort_price_asc(self, product_service, seed_products):
        result = await product_service.find_all(sort=ProductSort.PRICE_ASC)
        assert [p.price for p in result] == [9.5, 12.0, 15.0, 20.0, 35.0]

    @pytest.mark.asyncio
    async def test_sort_price_desc(self, product_service, seed_products):
        result = await product_service.find_all(sort=ProductSort.PRICE_DESC)
        assert [p.price for p in result] == [35.0, 20.0, 15.0, 12.0, 9.5]

    @pytest.mark.asyncio
    async def test_price_range_is_inclusive(self, product_service, seed_products):
        result = await product_service.find_all(min_price=10, max_price=20, sort=ProductSort.PRICE_ASC)
        assert _names(result) == ["Blue Mug", "Mug Rack", "Green Teapot"]

    @pytest.mark.asyncio
    async def test_min_price_only(self, product_service, seed_products):
        result = await product_service.find_all(min_price=20)
        assert sorted(_names(result)) == ["Desk Lamp", "Green Teapot"]

    @pytest.mark.asyncio
    async def test_max_price_only(self, product_service, seed_products):
        result = await product_service.find_all(max_price=12)
        assert sorted(_names(result)) == ["Blue Mug", "Red Mug"]

    @pytest.mark.asyncio
    async def test_keyword_is_case_insensitive_substring(self, product_service, seed_products):
        result = await product_service.find_all(keyword="MUG")
        assert _names(result) == ["Mug Rack", "Blue Mug", "Red Mug"]

    @pytest.mark.asyncio
    async def test_keyword_and_price_combine(self, product_service, seed_products):
        result = await product_service.find_all(keyword="mug", min_price=10)
        assert _names(result) == ["Mug Rack", "Blue Mug"]

    @pytest.mark.asyncio
    async def test_keyword_wildcards_are_literal(self, product_service, seed_products):
        assert await product_service.find_all(keyword="%") == []
        assert await product_service.find_all(keyword="_") == []

    @pytest.mark.asyncio
    async def test_non_ascii_keyword(self, product_service):
        """Non-ASCII letters in their stored case match on SQLite and PostgreSQL alike."""
        await product_service.create(ProductCreate(name="Crème Brûlée Dish", price=8))
        await product_service.create(ProductCreate(name="Creme Dish", price=6))

        assert _names(await product_service.find_all(keyword="Brûlée")) == ["Crème Brûlée Dish"]
        assert _names(await product_service.find_all(keyword="BRûLéE")) == ["Crème Brûlée Dish"]
        assert _names(await product_service.find_all(keyword="crème")) == ["Crème Brûlée Dish"]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, product_service):
        assert await product_service.find_all() == []

    @pytest.mark.asyncio
    async def test_query_failure_raises_internal_error(self, product_service, db_session):
        with patch.object(db_session, "execute", AsyncMock(side_effect=SQLAlchemyError("gone"))):
            with pytest.raises(InternalError):
                await product_service.find_all()


class TestProductFindOne:
    """Tests for ProductService.find_one()."""

    @pytest.mark.asyncio
    async def test_find_existing(self, product_service, seed_products):
        product = await product_service.find_one(str(seed_products[0].id))
        assert product.name == "Red Mug"

    @pytest.mark.asyncio
    async def test_find_missing(self, product_service):
        missing = str(uuid.uuid4())
        with pytest.raises(NotFoundError, match=missing):
            await product_service.find_one(missing)

    @pytest.mark.asyncio
    async def test_find_malformed_id(self, product_service):
        with pytest.raises(NotFoundError):
            await product_service.find_one("not-a-valid-id")


class TestProductUpdate:
    """Tests for ProductService.update()."""

    @pytest.mark.asyncio
    async def test_partial_update(self, product_service, seed_products):
        target = seed_products[0]

        updated = await product_service.update(str(target.id), ProductUpdate(price=11.0))

        assert updated.price == 11.0
        assert updated.name == "Red Mug"

    @pytest.mark.asyncio
    async def test_update_without_changes_returns_product(self, product_service, seed_products):
        updated = await product_service.update(str(seed_products[1].id), ProductUpdate())
        assert updated.name == "Blue Mug"
        assert updated.price == 12.0

    @pytest.mark.asyncio
    async def test_update_missing_discards_upload(self, product_service, files, upload_root, sample_image_bytes):
        stored = await files.store_file(sample_image_bytes, ".png")

        with pytest.raises(NotFoundError):
            await product_service.update(str(uuid.uuid4()), ProductUpdate(name="X"), stored)

        assert not (upload_root / stored.public_path).exists()

    @pytest.mark.asyncio
    async def test_update_zero_rows_discards_upload(
        self, product_service, db_session, seed_products, files, upload_root, sample_image_bytes
    ):
        """Record deleted between lookup and write."""
        stored = await files.store_file(sample_image_bytes, ".png")

        with patch.object(db_session, "execute", AsyncMock(return_value=MagicMock(rowcount=0))):
            with pytest.raises(NotFoundError):
                await product_service.update(str(seed_products[0].id), ProductUpdate(name="X"), stored)

        assert not (upload_root / stored.public_path).exists()

    @pytest.mark.asyncio
    async def test_update_failure_keeps_previous_image(
        self, product_service, db_session, files, upload_root, sample_image_bytes
    ):
        old = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), old)
        new = await files.store_file(sample_image_bytes, ".png")

        with patch.object(db_session, "commit", AsyncMock(side_effect=SQLAlchemyError("locked"))):
            with pytest.raises(InternalError):
                await product_service.update(str(product.id), ProductUpdate(), new)

        assert (upload_root / old.public_path).exists()
        assert not (upload_root / new.public_path).exists()

    @pytest.mark.asyncio
    async def test_replacing_image_deletes_previous_file(
        self, product_service, files, upload_root, sample_image_bytes
    ):
        old = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), old)
        new = await files.store_file(sample_image_bytes, ".jpg")

        updated = await product_service.update(str(product.id), ProductUpdate(), new)

        assert updated.image_url == new.public_path
        assert (upload_root / new.public_path).exists()
        assert not (upload_root / old.public_path).exists()

    @pytest.mark.asyncio
    async def test_replacing_image_by_reference_deletes_previous_file(
        self, product_service, files, upload_root, sample_image_bytes
    ):
        old = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), old)
        new = await files.store_file(sample_image_bytes, ".png")

        updated = await product_service.update(str(product.id), ProductUpdate(imageUrl=new.public_path))

        assert updated.image_url == new.public_path
        assert (upload_root / new.public_path).exists()
        assert not (upload_root / old.public_path).exists()

    @pytest.mark.asyncio
    async def test_keeping_own_image_reference(self, product_service, files, upload_root, sample_image_bytes):
        stored = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        updated = await product_service.update(
            str(product.id), ProductUpdate(name="Desk Lamp", imageUrl=stored.public_path)
        )

        assert updated.name == "Desk Lamp"
        assert updated.image_url == stored.public_path
        assert (upload_root / stored.public_path).exists()

    @pytest.mark.asyncio
    async def test_update_rejects_image_of_another_product(
        self, product_service, seed_products, files, upload_root, sample_image_bytes
    ):
        stored = await files.store_file(sample_image_bytes, ".png")
        owner = await product_service.create(ProductCreate(name="Lamp", price=30), stored)
        other = seed_products[0]

        with pytest.raises(ValidationError, match="another product"):
            await product_service.update(str(other.id), ProductUpdate(imageUrl=stored.public_path))

        assert (await product_service.find_one(str(other.id))).image_url is None
        assert (await product_service.find_one(str(owner.id))).image_url == stored.public_path
        assert (upload_root / stored.public_path).exists()

    @pytest.mark.asyncio
    async def test_first_image_deletes_nothing(self, product_service, seed_products, files, sample_image_bytes):
        new = await files.store_file(sample_image_bytes, ".png")

        with patch.object(files, "cleanup_public_path", AsyncMock()) as cleanup:
            updated = await product_service.update(str(seed_products[0].id), ProductUpdate(), new)

        assert updated.image_url == new.public_path
        cleanup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_image_reference(self, product_service, seed_products):
        with pytest.raises(ValidationError):
            await product_service.update(
                str(seed_products[0].id),
                ProductUpdate(imageUrl="products/missing.png"),
            )


class TestProductRemove:
    """Tests for ProductService.remove()."""

    @pytest.mark.asyncio
    async def test_remove_deletes_record_and_image(
        self, product_service, files, upload_root, sample_image_bytes
    ):
        stored = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        removed = await product_service.remove(str(product.id))

        assert removed.id == product.id
        assert not (upload_root / stored.public_path).exists()
        with pytest.raises(NotFoundError):
            await product_service.find_one(str(product.id))

    @pytest.mark.asyncio
    async def test_remove_keeps_image_still_referenced(
        self, product_service, db_session, files, upload_root, sample_image_bytes
    ):
        """Rows written before the one-owner rule may still share a file."""
        stored = await files.store_file(sample_image_bytes, ".png")
        first = Product(name="Lamp", price=30, image_url=stored.public_path)
        second = Product(name="Lamp Shade", price=5, image_url=stored.public_path)
        db_session.add_all([first, second])
        await db_session.commit()

        await product_service.remove(str(first.id))

        remaining = await product_service.find_one(str(second.id))
        assert files.image_exists(remaining.image_url)

        await product_service.remove(str(second.id))
        assert not (upload_root / stored.public_path).exists()

    @pytest.mark.asyncio
    async def test_remove_without_image(self, product_service, seed_products):
        removed = await product_service.remove(str(seed_products[2].id))
        assert removed.name == "Green Teapot"
        assert len(await product_service.find_all()) == 4

    @pytest.mark.asyncio
    async def test_remove_missing(self, product_service):
        with pytest.raises(NotFoundError):
            await product_service.remove(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_remove_commit_failure_keeps_image(
        self, product_service, db_session, files, upload_root, sample_image_bytes
    ):
        stored = await files.store_file(sample_image_bytes, ".png")
        product = await product_service.create(ProductCreate(name="Lamp", price=30), stored)

        with patch.object(db_session, "commit", AsyncMock(side_effect=SQLAlchemyError("locked"))):
            with pytest.raises(InternalError):
                await product_service.remove(str(product.id))

        assert (upload_root / stored.public_path).exists()
