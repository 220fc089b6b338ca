"""initial_plan_schema

Revision ID: 001_initial_plan_schema
Revises:
Create Date: 2026-10-19

Initial schema:
- app_user, user_profile (onboarding + derived metrics)
- meal_plan, workout_plan (one per user per week, generation lifecycle)
- workout_session, workout_set_log (progress tracking)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "001_initial_plan_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _lifecycle():
    return [
        sa.Column("status", sa.Text(), nullable=False, server_default="generating"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("model", sa.Text(), nullable=True),
        sa.Column("preferences", postgresql.JSONB(), nullable=True),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True, unique=True),
    )

    op.create_table(
        "user_profile",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("app_user.id"), nullable=False, unique=True),
        *_timestamps(),
        sa.Column("height_cm", sa.Float(), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("gender", sa.Text(), nullable=False),
        sa.Column("fitness_level", sa.Text(), nullable=False),
        sa.Column("primary_goal", sa.Text(), nullable=False),
        sa.Column("activity_level", sa.Text(), nullable=False),
        sa.Column("dietary_preference", sa.Text(), nullable=False, server_default="none"),
        sa.Column("allergies", postgresql.JSONB(), nullable=True),
        sa.Column("meals_per_day", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("preferred_units", sa.Text(), nullable=False, server_default="metric"),
        sa.Column("bmr", sa.Integer(), nullable=True),
        sa.Column("tdee", sa.Integer(), nullable=True),
        sa.Column("target_calories", sa.Integer(), nullable=True),
        sa.Column("macros_protein", sa.Integer(), nullable=True),
        sa.Column("macros_carbs", sa.Integer(), nullable=True),
        sa.Column("macros_fats", sa.Integer(), nullable=True),
        sa.Column("onboarding_completed", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "meal_plan",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("app_user.id"), nullable=False),
        *_timestamps(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("goal", sa.Text(), nullable=True),
        sa.Column("calories", sa.Integer(), nullable=True),
        sa.Column("macros", postgresql.JSONB(), nullable=True),
        sa.Column("days", postgresql.JSONB(), nullable=True),
        sa.Column("grocery_list", postgresql.JSONB(), nullable=True),
        *_lifecycle(),
        sa.UniqueConstraint("user_id", "week_start_date", name="uq_meal_plan_user_week"),
    )
    op.create_index("ix_meal_plan_user_id", "meal_plan", ["user_id"])
    op.create_index("ix_meal_plan_status", "meal_plan", ["status"])

    op.create_table(
        "workout_plan",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("app_user.id"), nullable=False),
        *_timestamps(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("focus", sa.Text(), nullable=True),
        sa.Column("split", sa.Text(), nullable=True),
        sa.Column("days_per_week", sa.Integer(), nullable=True),
        sa.Column("schedule", postgresql.JSONB(), nullable=True),
        *_lifecycle(),
        sa.UniqueConstraint("user_id", "week_start_date", name="uq_workout_plan_user_week"),
    )
    op.create_index("ix_workout_plan_user_id", "workout_plan", ["user_id"])
    op.create_index("ix_workout_plan_status", "workout_plan", ["status"])

    op.create_table(
        "workout_session",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("plan_label", sa.Text(), nullable=True),
        sa.Column("duration_min", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_workout_session_user_date", "workout_session", ["user_id", "session_date"])

    op.create_table(
        "workout_set_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "session_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workout_session.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("exercise_id", sa.Text(), nullable=False),
        sa.Column("exercise_name", sa.Text(), nullable=False),
        sa.Column("set_number", sa.Integer(), nullable=False),
        sa.Column("reps", sa.Integer(), nullable=True),
        sa.Column("weight_kg", sa.Float(), nullable=True),
        sa.Column("rpe", sa.Float(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_workout_set_log_session_id", "workout_set_log", ["session_id"])
    op.create_index("ix_workout_set_log_exercise_id", "workout_set_log", ["exercise_id"])


def downgrade() -> None:
    op.drop_index("ix_workout_set_log_exercise_id", table_name="workout_set_log")
    op.drop_index("ix_workout_set_log_session_id", table_name="workout_set_log")
    op.drop_table("workout_set_log")
    op.drop_index("ix_workout_session_user_date", table_name="workout_session")
    op.drop_table("workout_session")
    op.drop_index("ix_workout_plan_status", table_name="workout_plan")
    op.drop_index("ix_workout_plan_user_id", table_name="workout_plan")
    op.drop_table("workout_plan")
    op.drop_index("ix_meal_plan_status", table_name="meal_plan")
    op.drop_index("ix_meal_plan_user_id", table_name="meal_plan")
    op.drop_table("meal_plan")
    op.drop_table("user_profile")
    op.drop_table("app_user")
