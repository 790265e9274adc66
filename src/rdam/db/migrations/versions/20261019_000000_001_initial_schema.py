"""Initial schema.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates all tables for RDAM:
- jurisdictions (seeded with the five judicial districts)
- certificate_requests, request_state_history (lifecycle)
- tramite_sequences (per-day trámite numbering)
- operators, operator_sessions (internal users)
- operation_audit_log (sensitive operator operations)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JURISDICTIONS = [
    (1, "Santa Fe", "SFE"),
    (2, "Rosario", "ROS"),
    (3, "Venado Tuerto", "VTU"),
    (4, "Reconquista", "REC"),
    (5, "Rafaela", "RAF"),
]


def upgrade() -> None:
    """Apply migration: Initial schema."""
    request_state = postgresql.ENUM(
        "pending",
        "paid",
        "published",
        "published_expired",
        "expired",
        name="request_state",
        create_type=False,
    )
    request_state.create(op.get_bind(), checkfirst=True)

    operator_role = postgresql.ENUM("operator", "admin", name="operator_role", create_type=False)
    operator_role.create(op.get_bind(), checkfirst=True)

    operation_type = postgresql.ENUM(
        "certificate_published",
        "download_token_regenerated",
        name="operation_type",
        create_type=False,
    )
    operation_type.create(op.get_bind(), checkfirst=True)

    # -------------------------------------------------------------------------
    # Jurisdictions
    # -------------------------------------------------------------------------
    jurisdictions = op.create_table(
        "jurisdictions",
        sa.Column("jurisdiction_id", sa.SmallInteger(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("jurisdiction_id", name="pk_jurisdictions"),
        sa.UniqueConstraint("name", name="uq_jurisdictions_name"),
        sa.UniqueConstraint("code", name="uq_jurisdictions_code"),
    )
    op.bulk_insert(
        jurisdictions,
        [
            {"jurisdiction_id": jid, "name": name, "code": code, "is_active": True}
            for jid, name, code in JURISDICTIONS
        ],
    )

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------
    op.create_table(
        "operators",
        sa.Column(
            "operator_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", operator_role, nullable=False, server_default=sa.text("'operator'")),
        sa.Column("jurisdiction_id", sa.SmallInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("operator_id", name="pk_operators"),
        sa.UniqueConstraint("username", name="uq_operators_username"),
        sa.ForeignKeyConstraint(
            ["jurisdiction_id"],
            ["jurisdictions.jurisdiction_id"],
            name="fk_operators_jurisdiction_id_jurisdictions",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint(
            "(role = 'admin') = (jurisdiction_id IS NULL)",
            name="ck_operators_jurisdiction_matches_role",
        ),
    )

    op.create_table(
        "operator_sessions",
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), nullable=False),
        # Token hash (SHA-256 of the actual token)
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("session_id", name="pk_operator_sessions"),
        sa.UniqueConstraint("token_hash", name="uq_operator_sessions_token_hash"),
        sa.ForeignKeyConstraint(
            ["operator_id"],
            ["operators.operator_id"],
            name="fk_operator_sessions_operator_id_operators",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_operator_sessions_active",
        "operator_sessions",
        ["operator_id"],
        postgresql_where=sa.text("revoked_at IS NULL"),
    )

    # -------------------------------------------------------------------------
    # Certificate requests
    # -------------------------------------------------------------------------
    op.create_table(
        "certificate_requests",
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
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
        sa.Column("tramite_number", sa.String(32), nullable=False),
        sa.Column("subject_id", sa.String(11), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("jurisdiction_id", sa.SmallInteger(), nullable=False),
        sa.Column("state", request_state, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_order_ref", sa.String(100), nullable=True),
        sa.Column("payment_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_ref", sa.String(500), nullable=True),
        sa.Column("download_token", sa.String(64), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("request_id", name="pk_certificate_requests"),
        sa.UniqueConstraint("tramite_number", name="uq_certificate_requests_tramite_number"),
        sa.UniqueConstraint(
            "payment_order_ref", name="uq_certificate_requests_payment_order_ref"
        ),
        sa.UniqueConstraint("download_token", name="uq_certificate_requests_download_token"),
        sa.ForeignKeyConstraint(
            ["jurisdiction_id"],
            ["jurisdictions.jurisdiction_id"],
            name="fk_certificate_requests_jurisdiction_id_jurisdictions",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint(
            "(download_token IS NOT NULL) = (state IN ('published', 'published_expired'))",
            name="ck_certificate_requests_download_token_matches_state",
        ),
    )
    op.create_index(
        "ix_certificate_requests_state_created_at",
        "certificate_requests",
        ["state", "created_at"],
    )
    op.create_index(
        "ix_certificate_requests_state_issued_at",
        "certificate_requests",
        ["state", "issued_at"],
    )
    op.create_index(
        "ix_certificate_requests_jurisdiction_state",
        "certificate_requests",
        ["jurisdiction_id", "state"],
    )
    op.create_index(
        "ix_certificate_requests_subject_id",
        "certificate_requests",
        ["subject_id"],
    )

    op.create_table(
        "request_state_history",
        sa.Column(
            "history_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("previous_state", request_state, nullable=True),
        sa.Column("new_state", request_state, nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "changed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("seq", sa.BigInteger(), sa.Identity(always=True), nullable=False),
        sa.PrimaryKeyConstraint("history_id", name="pk_request_state_history"),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["certificate_requests.request_id"],
            name="fk_request_state_history_request_id_certificate_requests",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["actor_id"],
            ["operators.operator_id"],
            name="fk_request_state_history_actor_id_operators",
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_request_state_history_request_seq",
        "request_state_history",
        ["request_id", "seq"],
    )

    op.create_table(
        "tramite_sequences",
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("day", name="pk_tramite_sequences"),
    )

    # -------------------------------------------------------------------------
    # Operations audit log
    # -------------------------------------------------------------------------
    op.create_table(
        "operation_audit_log",
        sa.Column(
            "record_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("operation", operation_type, nullable=False),
        sa.Column("operator_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("detail", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("record_id", name="pk_operation_audit_log"),
        sa.ForeignKeyConstraint(
            ["operator_id"],
            ["operators.operator_id"],
            name="fk_operation_audit_log_operator_id_operators",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["certificate_requests.request_id"],
            name="fk_operation_audit_log_request_id_certificate_requests",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_operation_audit_log_request_id", "operation_audit_log", ["request_id"]
    )
    op.create_index(
        "ix_operation_audit_log_operator_id", "operation_audit_log", ["operator_id"]
    )


def downgrade() -> None:
    """Revert migration: Drop all tables and types."""
    op.drop_table("operation_audit_log")
    op.drop_table("tramite_sequences")
    op.drop_table("request_state_history")
    op.drop_table("certificate_requests")
    op.drop_table("operator_sessions")
    op.drop_table("operators")
    op.drop_table("jurisdictions")

    op.execute("DROP TYPE IF EXISTS operation_type")
    op.execute("DROP TYPE IF EXISTS operator_role")
    op.execute("DROP TYPE IF EXISTS request_state")
