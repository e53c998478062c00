"""Create users, commerce, content and system template tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _overlay_columns() -> list[sa.Column]:
    return [
        sa.Column("add_branding", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "branding_template_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("system_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("branding_settings", postgresql.JSONB(), nullable=True),
        sa.Column(
            "watermark_template_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("system_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("watermark_settings", postgresql.JSONB(), nullable=True),
    ]


def _creator_column() -> sa.Column:
    return sa.Column(
        "creator_user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


def upgrade() -> None:
    # ── users ──
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("clerk_user_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), nullable=False, server_default="user"),
        *_timestamps(),
    )
    op.create_index("ix_users_clerk_user_id", "users", ["clerk_user_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── system_templates ──
    op.create_table(
        "system_templates",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("template_type", sa.String(20), nullable=False),
        sa.Column("target_format", sa.String(50), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("template_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_system_templates_type_format",
        "system_templates",
        ["template_type", "target_format"],
    )
    op.create_index(
        "uq_system_templates_default",
        "system_templates",
        ["template_type", "target_format"],
        unique=True,
        postgresql_where=sa.text("is_default"),
    )

    # ── products ──
    op.create_table(
        "products",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("product_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        _creator_column(),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("product_type", "entity_id", name="uq_products_type_entity"),
    )
    op.create_index("ix_products_creator_user_id", "products", ["creator_user_id"])

    # ── purchases ──
    op.create_table(
        "purchases",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "buyer_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("purchasable_type", sa.String(50), nullable=False),
        sa.Column("purchasable_id", sa.String(64), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("order_number", sa.String(100), nullable=True),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_accessed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_purchases_buyer_status", "purchases", ["buyer_user_id", "payment_status"])
    op.create_index(
        "uq_purchases_free_access",
        "purchases",
        ["buyer_user_id", "purchasable_type", "purchasable_id"],
        unique=True,
        postgresql_where=sa.text("payment_amount = 0"),
    )

    # ── files ──
    op.create_table(
        "files",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=True),
        sa.Column("file_type", sa.String(20), nullable=False, server_default="pdf"),
        sa.Column("target_format", sa.String(50), nullable=False, server_default="pdf-a4-portrait"),
        sa.Column("allow_preview", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("accessible_pages", postgresql.JSONB(), nullable=True),
        *_overlay_columns(),
        _creator_column(),
        *_timestamps(),
    )

    # ── lesson_plans ──
    op.create_table(
        "lesson_plans",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("slides", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("allow_slide_preview", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("accessible_slides", postgresql.JSONB(), nullable=True),
        *_overlay_columns(),
        _creator_column(),
        *_timestamps(),
    )

    # ── workshops / courses ──
    for table in ("workshops", "courses"):
        op.create_table(
            table,
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("title", sa.String(500), nullable=False),
            _creator_column(),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            ),
        )


def downgrade() -> None:
    op.drop_table("courses")
    op.drop_table("workshops")
    op.drop_table("lesson_plans")
    op.drop_table("files")
    op.drop_index("uq_purchases_free_access", table_name="purchases")
    op.drop_index("ix_purchases_buyer_status", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("ix_products_creator_user_id", table_name="products")
    op.drop_table("products")
    op.drop_index("uq_system_templates_default", table_name="system_templates")
    op.drop_index("ix_system_templates_type_format", table_name="system_templates")
    op.drop_table("system_templates")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_clerk_user_id", table_name="users")
    op.drop_table("users")
