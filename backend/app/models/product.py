"""
Catalog Backend — Product SQLAlchemy Model
============================================

What:  ORM model representing the `products` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by ProductService for CRUD operations.

Table Design:
    - UUID primary key generated on insert
    - price: non-negative, enforced by a CHECK constraint as well as the API schema
    - colors: JSON array, order preserved for display
    - image_url: path relative to the upload root (e.g. products/<uuid>.jpg),
      NULL when the product has no uploaded image
    - created_at / updated_at: UTC, maintained automatically

Query Patterns:
    - Newest first listing: ORDER BY created_at DESC → idx_products_created_at
    - Price range / price sort: WHERE price BETWEEN ... → idx_products_price
    - Keyword search: lower(name) LIKE lower(:pattern)
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    """
    A catalog product.

    Lifecycle:
        1. Created by POST /products, optionally with an uploaded image
        2. Updated by PATCH /products/{id}; a newly uploaded image replaces
           image_url and the previous file is removed from disk
        3. Deleted by DELETE /products/{id} together with its image file
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    price: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    colors: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    image_url: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        comment="Image path relative to the upload root; NULL when no image",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        Index("idx_products_created_at", "created_at"),
        Index("idx_products_price", "price"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name}', price={self.price})>"
