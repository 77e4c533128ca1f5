"""
Catalog Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Each test gets its own SQLite database (aiosqlite) with the real
       schema, its own upload directory under tmp_path, and, for endpoint
       tests, an HTTPX AsyncClient bound to the app with the database and
       file service dependencies overridden.

Fixture Hierarchy (all function-scoped):
    ├── db_engine / session_factory / db_session: fresh SQLite database
    ├── upload_root / files: FileService over a temp directory
    ├── product_service: ProductService(db_session, files)
    ├── seed_products: rows with fixed prices and creation times
    ├── sample_image_bytes: minimal PNG content
    └── test_client: HTTPX AsyncClient for API endpoint testing
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Override settings BEFORE any app imports
_TEST_DIR = tempfile.mkdtemp(prefix="catalog_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'catalog.db')}"
os.environ["UPLOAD_ROOT"] = os.path.join(_TEST_DIR, "uploads")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base, get_db_session
from app.models.product import Product
from app.services.file_service import FileService, get_file_service
from app.services.product_service import ProductService


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Files & Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def upload_root(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def files(upload_root):
    return FileService(upload_root=str(upload_root))


@pytest.fixture
def product_service(db_session, files):
    return ProductService(db=db_session, files=files)


@pytest.fixture
def sample_image_bytes():
    """
    Minimal PNG: signature + IHDR chunk header. Not decodable as an image,
    but the service only checks extension and size.
    """
    return (
        b"\x89PNG\r\n\x1a\n"
        b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00"
        b"\x1f\x15\xc4\x89"
    )


@pytest_asyncio.fixture
async def seed_products(db_session):
    """
    Five products created one minute apart (oldest first in the list):

        Red Mug 9.5, Blue Mug 12.0, Green Teapot 20.0, Desk Lamp 35.0, Mug Rack 15.0
    """
    base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    rows = [
        ("Red Mug", 9.5),
        ("Blue Mug", 12.0),
        ("Green Teapot", 20.0),
        ("Desk Lamp", 35.0),
        ("Mug Rack", 15.0),
    ]
    products = [
        Product(name=name, price=price, created_at=base + timedelta(minutes=i), updated_at=base)
        for i, (name, price) in enumerate(rows)
    ]
    db_session.add_all(products)
    await db_session.commit()
    return products


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, files):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from app.main import app

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_file_service] = lambda: files

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
