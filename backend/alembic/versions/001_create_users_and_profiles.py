"""Create users and user_profiles tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Credential store (`users`) and document store (`user_profiles`).
How:   user_profiles.subjects holds the whole note tree as JSONB; `version`
       backs the optimistic-concurrency check in ProfileRepository.save().

Rollback: downgrade() drops both tables (all accounts and notes are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column(
            "id",
            sa.String(36),
            nullable=False,
            comment="Identity id; equals user_profiles.uuid",
        ),
        sa.Column(
            "username",
            sa.String(150),
            nullable=False,
            comment="Display name chosen at registration",
        ),
        sa.Column(
            "email",
            sa.String(320),
            nullable=False,
            comment="Login identifier; unique across users",
        ),
        sa.Column(
            "password_hash",
            sa.String(255),
            nullable=False,
            comment="bcrypt hash of the password",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    # Login looks users up by email
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_profiles",
        sa.Column(
            "uuid",
            sa.String(36),
            nullable=False,
            comment="Identity id from users.id",
        ),
        sa.Column(
            "subjects",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            server_default=sa.text("'[]'"),
            comment="Subject → Chapter → Note tree (camelCase JSON)",
        ),
        sa.Column(
            "version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Incremented by every successful write",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("uuid"),
    )


def downgrade() -> None:
    op.drop_table("user_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
