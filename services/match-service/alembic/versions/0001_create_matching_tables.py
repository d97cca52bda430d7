from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("profile_photo_url", sa.String(), nullable=True),
        sa.Column("profile_photo_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("doer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("budget", sa.Float(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
    )
    op.create_index("ix_tasks_category", "tasks", ["category"])
    op.create_index("ix_tasks_creator_id", "tasks", ["creator_id"])
    op.create_index("ix_tasks_doer_id", "tasks", ["doer_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_completed_at", "tasks", ["completed_at"])

    op.create_table(
        "doer_profiles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("availability_status", sa.String(), nullable=False, server_default="available"),
        sa.Column("schedule", sa.JSON(), nullable=False),
        sa.Column("active_task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=True),
        sa.Column("rating_average", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("service_radius_km", sa.Float(), nullable=True),
        sa.Column("hourly_rate", sa.Float(), nullable=True),
    )
    op.create_index("ix_doer_profiles_latitude", "doer_profiles", ["latitude"])
    op.create_index("ix_doer_profiles_longitude", "doer_profiles", ["longitude"])
    op.create_index("ix_doer_profiles_availability_status", "doer_profiles", ["availability_status"])
    op.create_index("ix_doer_profiles_active_task_id", "doer_profiles", ["active_task_id"])

    op.create_table(
        "doer_services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doer_id", sa.Integer(), sa.ForeignKey("doer_profiles.user_id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_price", sa.Float(), nullable=True),
    )
    op.create_index("ix_doer_services_doer_id", "doer_services", ["doer_id"])
    op.create_index("ix_doer_services_category", "doer_services", ["category"])

    op.create_table(
        "match_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_latitude", sa.Float(), nullable=False),
        sa.Column("task_longitude", sa.Float(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("results", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("top_score", sa.Float(), nullable=True),
        sa.Column("duration_ms", sa.Float(), nullable=True),
    )


def downgrade():
    op.drop_table("match_logs")
    op.drop_table("doer_services")
    op.drop_table("doer_profiles")
    op.drop_table("tasks")
    op.drop_table("users")
