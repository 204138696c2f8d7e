"""create tenants table

Revision ID: 4f2a9c1e7b30
Revises: 
Create Date: 2026-10-19 09:12:44.201733

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("subdomain", sa.String(30), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("encrypted_credentials", sa.Text(), nullable=True),
        sa.Column("institution_domain", sa.String(255), nullable=True),
        sa.Column("corporate_partner_ids", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("branding", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("features", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tenants_subdomain", "tenants", ["subdomain"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_tenants_subdomain", table_name="tenants")
    op.drop_table("tenants")
