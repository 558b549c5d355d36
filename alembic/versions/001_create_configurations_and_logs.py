"""create configurations and logs tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LOG_LEVELS = ("error", "warn", "info", "debug", "trace")


def upgrade() -> None:
    # configurations 表
    op.create_table(
        "configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("service_name", sa.String(255), nullable=False),
        sa.Column("config_key", sa.String(255), nullable=False),
        sa.Column("config_value", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("service_name", "config_key", name="unique_service_key"),
    )

    # logs 表
    op.create_table(
        "logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("service_name", sa.String(255), nullable=False),
        sa.Column("level", sa.Enum(*LOG_LEVELS, name="log_level"), nullable=False, server_default="info"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_service_timestamp", "logs", ["service_name", "timestamp"])
    op.create_index("idx_level_timestamp", "logs", ["level", "timestamp"])


def downgrade() -> None:
    op.drop_index("idx_level_timestamp", table_name="logs")
    op.drop_index("idx_service_timestamp", table_name="logs")
    op.drop_table("logs")
    op.drop_table("configurations")
    sa.Enum(name="log_level").drop(op.get_bind(), checkfirst=True)
