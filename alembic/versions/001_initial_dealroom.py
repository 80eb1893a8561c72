"""Initial deal room schema.

Revision ID: 001_initial_dealroom
Revises:
Create Date: 2026-10-17

Creates the deal room tables:
- users / user_deal_access: accounts and per-deal access grants
- deals: syndicated facilities and lifecycle dates
- lenders: investor contacts
- invitations: one per (deal, lender), NDA state and access tier
- documents: deal documents tagged with a visibility tier
- audit_logs: append-only deal activity

No foreign keys between deal room tables except user_deal_access -> users
(application-level referential integrity via the repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_dealroom"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # ── users ───────────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), server_default=sa.text("'Investor'"), nullable=False),
        sa.Column("lender_id", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
    )

    op.create_table(
        "user_deal_access",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("deal_id", sa.String(64), nullable=False),
        _timestamp("granted_at"),
        sa.UniqueConstraint("user_id", "deal_id", name="uq_user_deal_access"),
    )

    # ── deals ───────────────────────────────────────────────────────────

    op.create_table(
        "deals",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("sponsor", sa.String(200), nullable=False),
        sa.Column("sponsor_user_id", sa.String(64), nullable=True),
        sa.Column("industry", sa.String(100), nullable=True),
        sa.Column("instrument", sa.String(100), nullable=False),
        sa.Column("size", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), server_default=sa.text("'USD'"), nullable=False),
        sa.Column("stage", sa.String(50), server_default=sa.text("'Pre-Launch'"), nullable=False),
        sa.Column("launch_date", sa.Date(), nullable=True),
        sa.Column("ioi_date", sa.Date(), nullable=True),
        sa.Column("commitment_date", sa.Date(), nullable=True),
        sa.Column("close_date", sa.Date(), nullable=True),
        sa.Column("hard_close_date", sa.Date(), nullable=True),
        sa.Column("nda_required", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
    )

    # ── lenders ─────────────────────────────────────────────────────────

    op.create_table(
        "lenders",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("organization", sa.String(200), nullable=False),
        sa.Column("fund_type", sa.String(100), nullable=True),
        sa.Column("title", sa.String(200), nullable=True),
        _timestamp("created_at"),
    )

    # ── invitations ─────────────────────────────────────────────────────

    op.create_table(
        "invitations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("deal_id", sa.String(64), nullable=False),
        sa.Column("lender_id", sa.String(64), nullable=False),
        sa.Column("access_tier", sa.String(20), server_default=sa.text("'early'"), nullable=False),
        sa.Column("nda_required", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("nda_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("nda_version", sa.String(50), nullable=True),
        sa.Column("signer_email", sa.String(255), nullable=True),
        sa.Column("signer_ip", sa.String(64), nullable=True),
        sa.Column("invited_by", sa.String(255), nullable=False),
        _timestamp("invited_at"),
        sa.Column("tier_history", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.UniqueConstraint("deal_id", "lender_id", name="uq_invitation_deal_lender"),
    )
    op.create_index("ix_invitations_deal_id", "invitations", ["deal_id"])
    op.create_index("ix_invitations_lender_id", "invitations", ["lender_id"])

    # ── documents ───────────────────────────────────────────────────────

    op.create_table(
        "documents",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("deal_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("visibility_tier", sa.String(20), server_default=sa.text("'early'"), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("change_summary", sa.Text(), nullable=True),
        _timestamp("uploaded_at"),
    )
    op.create_index("ix_documents_deal_id", "documents", ["deal_id"])

    # ── audit_logs ──────────────────────────────────────────────────────

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("deal_id", sa.String(64), nullable=True),
        sa.Column("lender_id", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(50), nullable=False),
        sa.Column("actor_email", sa.String(255), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("metadata_json", sa.JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_audit_logs_deal_id", "audit_logs", ["deal_id"])
    op.create_index("ix_audit_logs_deal_created", "audit_logs", ["deal_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_deal_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_deal_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_documents_deal_id", table_name="documents")
    op.drop_table("documents")
    op.drop_index("ix_invitations_lender_id", table_name="invitations")
    op.drop_index("ix_invitations_deal_id", table_name="invitations")
    op.drop_table("invitations")
    op.drop_table("lenders")
    op.drop_table("deals")
    op.drop_table("user_deal_access")
    op.drop_table("users")
