"""Create products table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `products` table with its price check constraint and the
       created_at / price indexes used by listing, filtering and sorting.

Rollback: downgrade() drops the table (destructive: all products are lost;
          image files on disk are left in place).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("colors", sa.JSON(), nullable=True),
        sa.Column(
            "image_url",
            sa.String(512),
            nullable=True,
            comment="Image path relative to the upload root; NULL when no image",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("idx_products_created_at", "products", ["created_at"])
    op.create_index("idx_products_price", "products", ["price"])


def downgrade() -> None:
    op.drop_index("idx_products_price", table_name="products")
    op.drop_index("idx_products_created_at", table_name="products")
    op.drop_table("products")
