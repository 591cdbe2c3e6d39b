"""analysis checkpoints and model configs

Revision ID: 20261019_00
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op


# revision identifiers, used by Alembic.
revision = "20261019_00"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("analysis_checkpoints"):
        op.create_table(
            "analysis_checkpoints",
            sa.Column("session_id", sa.String(length=128), primary_key=True),
            sa.Column("owner_id", sa.String(length=128), nullable=False),
            sa.Column("progress", sa.Float(), nullable=False, server_default="0"),
            sa.Column("partial_result", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.CheckConstraint(
                "progress >= 0 AND progress <= 1",
                name="ck_analysis_checkpoints_progress_range",
            ),
            sa.CheckConstraint(
                "status IN ('IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
                name="ck_analysis_checkpoints_status",
            ),
        )
        op.create_index(
            "ix_analysis_checkpoints_owner_id", "analysis_checkpoints", ["owner_id"]
        )
        op.create_index(
            "ix_analysis_checkpoints_status", "analysis_checkpoints", ["status"]
        )
        op.create_index(
            "ix_analysis_checkpoints_updated_at", "analysis_checkpoints", ["updated_at"]
        )

    if not insp.has_table("analysis_model_configs"):
        op.create_table(
            "analysis_model_configs",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("provider", sa.String(length=32), nullable=False),
            sa.Column("model_name", sa.String(length=128), nullable=False),
            sa.Column("temperature", sa.Float(), nullable=False, server_default="0.1"),
            sa.Column("max_tokens", sa.Integer(), nullable=False, server_default="4000"),
            sa.Column("top_p", sa.Float(), nullable=False, server_default="1.0"),
            sa.Column(
                "streaming", sa.Boolean(), nullable=False, server_default=sa.true()
            ),
            sa.Column(
                "is_active", sa.Boolean(), nullable=False, server_default=sa.false()
            ),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
        )
        op.create_index(
            "ix_analysis_model_configs_is_active",
            "analysis_model_configs",
            ["is_active"],
        )


def downgrade() -> None:
    op.drop_index("ix_analysis_model_configs_is_active", table_name="analysis_model_configs")
    op.drop_table("analysis_model_configs")
    op.drop_index("ix_analysis_checkpoints_updated_at", table_name="analysis_checkpoints")
    op.drop_index("ix_analysis_checkpoints_status", table_name="analysis_checkpoints")
    op.drop_index("ix_analysis_checkpoints_owner_id", table_name="analysis_checkpoints")
    op.drop_table("analysis_checkpoints")
