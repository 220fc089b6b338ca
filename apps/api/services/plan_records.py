"""
Plan Record Lifecycle

Persistence helpers shared by the plan routers and the orchestrator.

Invariants:
- at most one meal plan and one workout plan per user per week
  (week_start_date = Monday, enforced by a unique constraint)
- status is one of generating | completed | failed
- entering `generating` clears error and completed_at and stamps started_at
- a record stuck in `generating` past PLAN_GENERATION_STALE_AFTER_MINUTES
  is failed on read
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Type, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from models import (
    MealPlan,
    PLAN_STATUS_COMPLETED,
    PLAN_STATUS_FAILED,
    PLAN_STATUS_GENERATING,
    UserProfile,
    WorkoutPlan,
)
from schemas import GenerateMealPlanInput, GenerateWorkoutPlanInput, PlanStatusResponse
from services.plan_payloads import MealPlanPayload, WorkoutPlanPayload
from services.plan_prompts import DEFAULT_GOAL_LABEL, GOAL_LABELS, resolve_workout_preferences

logger = logging.getLogger(__name__)

PlanRecord = Union[MealPlan, WorkoutPlan]

DEFAULT_MEAL_PLAN_TITLE = "Personalized Meal Plan"
DEFAULT_WORKOUT_PLAN_TITLE = "Personalized Workout Plan"
STALE_GENERATION_ERROR = "Plan generation timed out. Please try again."
SAVE_FAILED_ERROR = "Failed to save generated plan"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_week_start_date(today: Optional[date] = None) -> date:
    """Monday of the week containing `today` (UTC date by default)."""
    today = today or utcnow().date()
    return today - timedelta(days=today.weekday())


# ============ Creation / reuse ============

def _mark_generating(plan: PlanRecord, fields: Dict[str, Any]) -> None:
    for key, value in fields.items():
        setattr(plan, key, value)
    plan.status = PLAN_STATUS_GENERATING
    plan.error = None
    plan.completed_at = None
    plan.started_at = utcnow()


def _start_weekly_plan(
    db: Session,
    model_cls: Type[PlanRecord],
    user_id: UUID,
    week_start: date,
    fields: Dict[str, Any],
) -> PlanRecord:
    """Reuse this week's record (any status) or insert a new one, in `generating`."""
    plan = (
        db.query(model_cls)
        .filter(model_cls.user_id == user_id, model_cls.week_start_date == week_start)
        .first()
    )
    if plan is None:
        plan = model_cls(user_id=user_id, week_start_date=week_start)
        db.add(plan)
    else:
        logger.info(f"Reusing {model_cls.__tablename__} {plan.id} for week of {week_start}")
    _mark_generating(plan, fields)

    try:
        db.commit()
    except IntegrityError:
        # Concurrent request inserted the same week first
        db.rollback()
        plan = (
            db.query(model_cls)
            .filter(model_cls.user_id == user_id, model_cls.week_start_date == week_start)
            .first()
        )
        if plan is None:
            raise
        _mark_generating(plan, fields)
        db.commit()
    return plan


def start_meal_plan(
    db: Session,
    user_id: UUID,
    profile: UserProfile,
    plan_input: GenerateMealPlanInput,
    today: Optional[date] = None,
) -> MealPlan:
    calories = plan_input.target_calories or profile.target_calories
    fields = {
        "title": plan_input.title or DEFAULT_MEAL_PLAN_TITLE,
        "goal": plan_input.goal or GOAL_LABELS.get(profile.primary_goal, DEFAULT_GOAL_LABEL),
        "calories": calories,
        "macros": {
            "protein": profile.macros_protein,
            "carbs": profile.macros_carbs,
            "fats": profile.macros_fats,
            "calories": calories,
        },
        "preferences": plan_input.model_dump(by_alias=True, exclude_none=True),
    }
    return _start_weekly_plan(db, MealPlan, user_id, get_week_start_date(today), fields)


def start_workout_plan(
    db: Session,
    user_id: UUID,
    profile: UserProfile,
    plan_input: GenerateWorkoutPlanInput,
    today: Optional[date] = None,
) -> WorkoutPlan:
    prefs = resolve_workout_preferences(profile, plan_input)
    fields = {
        "title": plan_input.title or DEFAULT_WORKOUT_PLAN_TITLE,
        "focus": prefs.focus,
        "split": prefs.split,
        "days_per_week": prefs.days_per_week,
        "preferences": plan_input.model_dump(by_alias=True, exclude_none=True),
    }
    return _start_weekly_plan(db, WorkoutPlan, user_id, get_week_start_date(today), fields)


def restart_generation(db: Session, plan: PlanRecord) -> PlanRecord:
    """Regeneration: same record and preferences, back to `generating`."""
    _mark_generating(plan, {})
    db.commit()
    return plan


# ============ Stored input ============

def meal_input_for(plan: MealPlan) -> GenerateMealPlanInput:
    """Stored preferences, or an input rebuilt from the record itself."""
    if plan.preferences:
        try:
            return GenerateMealPlanInput.model_validate(plan.preferences)
        except PydanticValidationError as e:
            logger.warning(f"Stored preferences for meal plan {plan.id} are invalid: {e}")

    calories = plan.calories if plan.calories and 800 <= plan.calories <= 5000 else None
    return GenerateMealPlanInput(title=plan.title, goal=plan.goal, target_calories=calories)


def workout_input_for(plan: WorkoutPlan) -> GenerateWorkoutPlanInput:
    if plan.preferences:
        try:
            return GenerateWorkoutPlanInput.model_validate(plan.preferences)
        except PydanticValidationError as e:
            logger.warning(f"Stored preferences for workout plan {plan.id} are invalid: {e}")

    degraded = {"title": plan.title, "daysPerWeek": plan.days_per_week, "split": plan.split}
    try:
        return GenerateWorkoutPlanInput.model_validate({k: v for k, v in degraded.items() if v is not None})
    except PydanticValidationError:
        return GenerateWorkoutPlanInput(title=plan.title)


# ============ Terminal transitions ============

def complete_meal_plan(plan: MealPlan, payload: MealPlanPayload, model: str) -> None:
    data = payload.model_dump(by_alias=True)
    plan.days = data["days"]
    plan.grocery_list = data["groceryList"]
    plan.macros = data["macros"]
    plan.calories = int(round(payload.calories)) or plan.calories
    _mark_completed(plan, model)


def complete_workout_plan(plan: WorkoutPlan, payload: WorkoutPlanPayload, model: str) -> None:
    data = payload.model_dump(by_alias=True)
    plan.schedule = data["schedule"]
    plan.days_per_week = payload.days_per_week
    plan.focus = payload.focus or plan.focus
    _mark_completed(plan, model)


def _mark_completed(plan: PlanRecord, model: str) -> None:
    plan.status = PLAN_STATUS_COMPLETED
    plan.error = None
    plan.model = model
    plan.completed_at = utcnow()


def fail_plan(plan: PlanRecord, message: str) -> None:
    """Failed keeps preferences and any previous content."""
    plan.status = PLAN_STATUS_FAILED
    plan.error = message
    plan.completed_at = None


def expire_stale_generation(plan: PlanRecord, now: Optional[datetime] = None) -> bool:
    """Fail a record whose generation outlived the staleness window. Caller commits."""
    if plan.status != PLAN_STATUS_GENERATING:
        return False
    started = as_utc(plan.started_at or plan.created_at)
    if started is None:
        return False
    now = now or utcnow()
    if now - started <= timedelta(minutes=settings.PLAN_GENERATION_STALE_AFTER_MINUTES):
        return False
    logger.warning(f"Plan {plan.id} stuck in generating since {started.isoformat()}, marking failed")
    fail_plan(plan, STALE_GENERATION_ERROR)
    return True


def find_plan(db: Session, model_cls: Type[PlanRecord], plan_id: UUID) -> Optional[PlanRecord]:
    return db.query(model_cls).filter(model_cls.id == plan_id).first()


def list_user_plans(db: Session, model_cls: Type[PlanRecord], user_id: UUID, limit: int = 20):
    return (
        db.query(model_cls)
        .filter(model_cls.user_id == user_id)
        .order_by(model_cls.week_start_date.desc())
        .limit(limit)
        .all()
    )


def build_status(plan: PlanRecord, now: Optional[datetime] = None) -> PlanStatusResponse:
    return PlanStatusResponse(
        id=plan.id,
        title=plan.title,
        status=plan.status,
        progress=estimate_progress(plan, now),
        error=plan.error,
        started_at=plan.started_at,
        completed_at=plan.completed_at,
        updated_at=plan.updated_at,
        poll_interval_ms=settings.PLAN_STATUS_POLL_INTERVAL_MS,
    )


def estimate_progress(plan: PlanRecord, now: Optional[datetime] = None) -> int:
    """Time-based estimate for clients; capped at 90 until the job finishes."""
    if plan.status == PLAN_STATUS_COMPLETED:
        return 100
    if plan.status == PLAN_STATUS_FAILED:
        return 0
    started = as_utc(plan.started_at or plan.created_at)
    if started is None:
        return 0
    elapsed = ((now or utcnow()) - started).total_seconds()
    expected = max(1, settings.PLAN_EXPECTED_GENERATION_SECONDS)
    return max(0, min(90, int(elapsed / expected * 100)))
