from sqlalchemy import Column, Integer, Boolean, Float, Date, DateTime, ForeignKey, JSON, Text, Uuid, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

PLAN_STATUS_GENERATING = "generating"
PLAN_STATUS_COMPLETED = "completed"
PLAN_STATUS_FAILED = "failed"
PLAN_STATUSES = (PLAN_STATUS_GENERATING, PLAN_STATUS_COMPLETED, PLAN_STATUS_FAILED)


class User(Base):
    """Authenticated principal. Accounts are provisioned by the auth provider."""
    __tablename__ = "app_user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)

    profile = relationship("UserProfile", back_populates="user", uselist=False)


class UserProfile(Base):
    """
    Physical and fitness attributes of one user, plus derived metrics.

    bmr/tdee/target_calories/macros_* are recomputed whenever a physical or
    goal field changes (see services.metrics_calculator).
    """
    __tablename__ = "user_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Physical attributes (always stored metric)
    height_cm = Column(Float, nullable=False)
    weight_kg = Column(Float, nullable=False)
    age = Column(Integer, nullable=False)
    gender = Column(Text, nullable=False)  # 'male', 'female', 'other', 'prefer-not-to-say'

    # Fitness attributes
    fitness_level = Column(Text, nullable=False)  # 'beginner', 'intermediate', 'advanced'
    primary_goal = Column(Text, nullable=False)  # 'weight-loss', 'muscle-gain', 'maintenance', 'athletic', 'general'
    activity_level = Column(Text, nullable=False)  # 'sedentary' .. 'extremely-active'
    dietary_preference = Column(Text, default="none", nullable=False)
    allergies = Column(JSONType, nullable=True)  # list[str]
    meals_per_day = Column(Integer, default=3, nullable=False)
    preferred_units = Column(Text, default="metric", nullable=False)  # 'metric' | 'imperial'

    # Derived metrics
    bmr = Column(Integer, nullable=True)
    tdee = Column(Integer, nullable=True)
    target_calories = Column(Integer, nullable=True)
    macros_protein = Column(Integer, nullable=True)  # grams
    macros_carbs = Column(Integer, nullable=True)  # grams
    macros_fats = Column(Integer, nullable=True)  # grams

    onboarding_completed = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="profile")


class MealPlan(Base):
    """
    Weekly AI-generated meal plan.

    One row per user per week (week_start_date is the Monday). status moves
    generating -> completed | failed; regeneration resets it to generating.
    """
    __tablename__ = "meal_plan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    title = Column(Text, nullable=False)
    goal = Column(Text, nullable=True)  # e.g. "Weight Loss"
    calories = Column(Integer, nullable=True)  # daily target
    macros = Column(JSONType, nullable=True)  # {protein, carbs, fats, calories}
    days = Column(JSONType, nullable=True)  # list of DayMeals, camelCase keys
    grocery_list = Column(JSONType, nullable=True)

    # Generation lifecycle
    status = Column(Text, default=PLAN_STATUS_GENERATING, nullable=False)
    error = Column(Text, nullable=True)
    model = Column(Text, nullable=True)  # model that produced `days`
    preferences = Column(JSONType, nullable=True)  # GenerateMealPlanInput as sent
    week_start_date = Column(Date, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_meal_plan_user_week"),
        Index("ix_meal_plan_user_id", "user_id"),
        Index("ix_meal_plan_status", "status"),
    )


class WorkoutPlan(Base):
    """Weekly AI-generated workout plan. Same lifecycle as MealPlan."""
    __tablename__ = "workout_plan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    title = Column(Text, nullable=False)
    focus = Column(Text, nullable=True)  # 'strength', 'hypertrophy', 'endurance', 'general'
    split = Column(Text, nullable=True)  # 'full-body', 'upper-lower', 'push-pull-legs', 'bro-split', 'custom'
    days_per_week = Column(Integer, nullable=True)
    schedule = Column(JSONType, nullable=True)  # list of WorkoutDay, camelCase keys

    status = Column(Text, default=PLAN_STATUS_GENERATING, nullable=False)
    error = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    preferences = Column(JSONType, nullable=True)  # GenerateWorkoutPlanInput as sent
    week_start_date = Column(Date, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_workout_plan_user_week"),
        Index("ix_workout_plan_user_id", "user_id"),
        Index("ix_workout_plan_status", "status"),
    )


class WorkoutSession(Base):
    """A logged training session (one per user per sitting)."""
    __tablename__ = "workout_session"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    session_date = Column(Date, nullable=False)
    plan_label = Column(Text, nullable=True)  # e.g. "Push Day"
    duration_min = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    is_completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    set_logs = relationship("WorkoutSetLog", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_workout_session_user_date", "user_id", "session_date"),
    )


class WorkoutSetLog(Base):
    """One performed set. exercise_id is a catalog id or a free-form key."""
    __tablename__ = "workout_set_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("workout_session.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    exercise_id = Column(Text, nullable=False)
    exercise_name = Column(Text, nullable=False)
    set_number = Column(Integer, nullable=False)
    reps = Column(Integer, nullable=True)
    weight_kg = Column(Float, nullable=True)
    rpe = Column(Float, nullable=True)
    completed = Column(Boolean, default=True, nullable=False)

    session = relationship("WorkoutSession", back_populates="set_logs")

    __table_args__ = (
        Index("ix_workout_set_log_session_id", "session_id"),
        Index("ix_workout_set_log_exercise_id", "exercise_id"),
    )
