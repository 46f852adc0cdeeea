"""checkin_health_initial

Create directory tables (organizations, users), the `checkins` table with
its (organization, user, week) uniqueness guarantee, and `audit_logs`.

Revision ID: c7d1e2f3a401
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "c7d1e2f3a401"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("plan", sa.String(length=50), nullable=True),
            sa.Column("timezone", sa.String(length=64), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("organization_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("organization_id", "email", name="uq_user_org_email"),
        )
        op.create_index("ix_users_organization_id", "users", ["organization_id"])

    if "checkins" not in existing_tables:
        op.create_table(
            "checkins",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("organization_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("week_start", sa.Date(), nullable=False, comment="Monday of the ISO week"),
            sa.Column("due_date", sa.Date(), nullable=False, comment="week_start + 6 days"),
            sa.Column("review_due_date", sa.Date(), nullable=True),
            sa.Column("overall_mood", sa.Integer(), nullable=True, comment="1-5 weekly pulse rating"),
            sa.Column("responses", sa.JSON(), nullable=False),
            sa.Column("winning_next_week", sa.Text(), nullable=True),
            sa.Column("is_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("submitted_on_time", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("review_status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("reviewed_by", sa.String(length=36), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("review_comments", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "organization_id", "user_id", "week_start",
                name="uq_checkin_org_user_week",
            ),
        )
        op.create_index("ix_checkins_week_start", "checkins", ["week_start"])
        op.create_index("ix_checkins_org_week_start", "checkins", ["organization_id", "week_start"])
        op.create_index("ix_checkins_due_date", "checkins", ["due_date"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.String(length=36), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_org", "audit_logs", ["organization_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "audit_logs" in existing_tables:
        op.drop_index("idx_audit_ts", table_name="audit_logs")
        op.drop_index("idx_audit_action", table_name="audit_logs")
        op.drop_index("idx_audit_org", table_name="audit_logs")
        op.drop_index("idx_audit_entity", table_name="audit_logs")
        op.drop_table("audit_logs")

    if "checkins" in existing_tables:
        op.drop_index("ix_checkins_due_date", table_name="checkins")
        op.drop_index("ix_checkins_org_week_start", table_name="checkins")
        op.drop_index("ix_checkins_week_start", table_name="checkins")
        op.drop_table("checkins")

    if "users" in existing_tables:
        op.drop_index("ix_users_organization_id", table_name="users")
        op.drop_table("users")

    if "organizations" in existing_tables:
        op.drop_table("organizations")
