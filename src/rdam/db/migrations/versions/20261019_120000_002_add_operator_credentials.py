"""Add login credentials to operators.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 12:00:00.000000+00:00

Adds to operators:
- password_hash: Argon2id hash checked at login (null disables login)
- last_login_at: Time of the last successful login
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Apply migration: Add operator credential columns."""
    op.add_column("operators", sa.Column("password_hash", sa.String(255), nullable=True))
    op.add_column(
        "operators",
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Revert migration: Remove operator credential columns."""
    op.drop_column("operators", "last_login_at")
    op.drop_column("operators", "password_hash")
