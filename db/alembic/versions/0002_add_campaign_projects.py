"""add campaign projects and project history

Revision ID: 0002_add_campaign_projects
Revises: 0001_initial_schema
Create Date: 2026-10-12 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_add_campaign_projects"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "campaign_projects",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("campaign_id", sa.Integer, sa.ForeignKey("campaigns.id"), nullable=False),
        sa.Column(
            "parent_project_id", sa.Integer, sa.ForeignKey("campaign_projects.id")
        ),
        sa.Column("character_id", sa.Integer, sa.ForeignKey("characters.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("goal_points", sa.Integer, nullable=False),
        sa.Column("current_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_by_user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("goal_points > 0", name="ck_campaign_projects_goal_positive"),
        sa.CheckConstraint(
            "current_points >= 0", name="ck_campaign_projects_progress_non_negative"
        ),
        sa.CheckConstraint(
            "current_points <= goal_points", name="ck_campaign_projects_progress_within_goal"
        ),
    )
    op.create_index(
        "ix_campaign_projects_campaign_id", "campaign_projects", ["campaign_id"]
    )
    op.create_index(
        "ix_campaign_projects_parent_project_id", "campaign_projects", ["parent_project_id"]
    )
    op.create_index(
        "ix_campaign_projects_character_id", "campaign_projects", ["character_id"]
    )

    op.create_table(
        "campaign_project_history",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "project_id", sa.Integer, sa.ForeignKey("campaign_projects.id"), nullable=False
        ),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("previous_points", sa.Integer),
        sa.Column("new_points", sa.Integer),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_campaign_project_history_project_id", "campaign_project_history", ["project_id"]
    )


def downgrade() -> None:
    op.drop_index(
        "ix_campaign_project_history_project_id", table_name="campaign_project_history"
    )
    op.drop_table("campaign_project_history")
    op.drop_index("ix_campaign_projects_character_id", table_name="campaign_projects")
    op.drop_index("ix_campaign_projects_parent_project_id", table_name="campaign_projects")
    op.drop_index("ix_campaign_projects_campaign_id", table_name="campaign_projects")
    op.drop_table("campaign_projects")
