"""create ledger documents table

Revision ID: 3f8a1c2d9b47
Revises:
Create Date: 2026-10-12 09:15:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f8a1c2d9b47"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ledger_documents",
        sa.Column("collection", sa.String(length=40), nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("body", sa.JSON(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("collection", "id"),
    )
    op.create_index(
        "ix_ledger_documents_collection", "ledger_documents", ["collection"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_documents_collection", table_name="ledger_documents")
    op.drop_table("ledger_documents")
