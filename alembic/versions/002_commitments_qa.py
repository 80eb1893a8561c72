"""Commitments, Q&A and document file references.

Revision ID: 002_commitments_qa
Revises: 001_initial_dealroom
Create Date: 2026-10-18

- commitments: lender commitments per deal (amount, spread, OID)
- qa_items: diligence questions and answers per deal
- deals.committed: running total of submitted commitment amounts
- documents.doc_type / documents.file_url: upload metadata
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_commitments_qa"
down_revision: Union[str, None] = "001_initial_dealroom"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "deals",
        sa.Column("committed", sa.Float(), server_default=sa.text("0"), nullable=False),
    )
    op.add_column("documents", sa.Column("doc_type", sa.String(50), nullable=True))
    op.add_column("documents", sa.Column("file_url", sa.Text(), nullable=True))

    # ── commitments ─────────────────────────────────────────────────────

    op.create_table(
        "commitments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("deal_id", sa.String(64), nullable=False),
        sa.Column("lender_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'submitted'"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("spread", sa.Integer(), nullable=True),
        sa.Column("oid", sa.Float(), nullable=True),
        sa.Column("conditions", sa.Text(), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_commitments_deal_id", "commitments", ["deal_id"])
    op.create_index("ix_commitments_lender_id", "commitments", ["lender_id"])

    # ── qa_items ────────────────────────────────────────────────────────

    op.create_table(
        "qa_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("deal_id", sa.String(64), nullable=False),
        sa.Column("lender_id", sa.String(64), nullable=True),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'open'"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("asked_by", sa.String(255), nullable=True),
        sa.Column(
            "asked_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("answer", sa.Text(), nullable=True),
        sa.Column("answered_by", sa.String(255), nullable=True),
        sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_qa_items_deal_id", "qa_items", ["deal_id"])


def downgrade() -> None:
    op.drop_index("ix_qa_items_deal_id", table_name="qa_items")
    op.drop_table("qa_items")
    op.drop_index("ix_commitments_lender_id", table_name="commitments")
    op.drop_index("ix_commitments_deal_id", table_name="commitments")
    op.drop_table("commitments")
    op.drop_column("documents", "file_url")
    op.drop_column("documents", "doc_type")
    op.drop_column("deals", "committed")
