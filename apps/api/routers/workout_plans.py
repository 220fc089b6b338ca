"""
Workout Plan API Router

Same asynchronous contract as the meal plan router: POST /generate returns
{id, status: "generating"} and the client polls /{plan_id}/status.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.auth import get_current_profile, get_current_user
from core.database import get_db
from core.exceptions import ForbiddenError, NotFoundError
from models import User, UserProfile, WorkoutPlan
from schemas import (
    DeleteResponse,
    GenerateWorkoutPlanInput,
    PlanStartResponse,
    PlanStatusResponse,
    WorkoutPlanResponse,
    WorkoutPlanSummary,
)
from services.plan_records import (
    build_status,
    expire_stale_generation,
    fail_plan,
    find_plan,
    list_user_plans,
    restart_generation,
    start_workout_plan,
)
from tasks.plan_tasks import generate_workout_plan_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/plans/workout", tags=["workout-plans"])


def _get_owned_plan(db: Session, plan_id: UUID, user: User) -> WorkoutPlan:
    plan = find_plan(db, WorkoutPlan, plan_id)
    if plan is None or plan.user_id != user.id:
        raise NotFoundError("Workout plan", str(plan_id))
    return plan


def _enqueue(db: Session, plan: WorkoutPlan) -> None:
    try:
        generate_workout_plan_task.delay(str(plan.id))
    except Exception as e:
        logger.error(f"Failed to enqueue workout plan {plan.id}: {e}", exc_info=True)
        fail_plan(plan, "Failed to start plan generation")
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Plan generation is temporarily unavailable",
        )


@router.post("/generate", response_model=PlanStartResponse)
def generate_workout_plan(
    request: Optional[GenerateWorkoutPlanInput] = None,
    current_user: User = Depends(get_current_user),
    profile: UserProfile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Start (or restart) this week's workout plan for the current user."""
    plan_input = request or GenerateWorkoutPlanInput()
    try:
        plan = start_workout_plan(db, current_user.id, profile, plan_input)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create workout plan for {current_user.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create workout plan",
        )

    _enqueue(db, plan)
    logger.info(
        f"Workout plan {plan.id} generation started",
        extra={"extra_fields": {"plan_id": str(plan.id), "user_id": str(current_user.id)}},
    )
    return PlanStartResponse(id=plan.id, status=plan.status)


@router.post("/{plan_id}/regenerate", response_model=PlanStartResponse)
def regenerate_workout_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = _get_owned_plan(db, plan_id, current_user)
    restart_generation(db, plan)
    _enqueue(db, plan)
    return PlanStartResponse(id=plan.id, status=plan.status)


@router.get("/{plan_id}/status", response_model=PlanStatusResponse)
def get_workout_plan_status(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = _get_owned_plan(db, plan_id, current_user)
    if expire_stale_generation(plan):
        db.commit()
    return build_status(plan)


@router.get("", response_model=List[WorkoutPlanSummary])
def list_workout_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_user_plans(db, WorkoutPlan, current_user.id)


@router.get("/{plan_id}", response_model=WorkoutPlanResponse)
def get_workout_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = _get_owned_plan(db, plan_id, current_user)
    if expire_stale_generation(plan):
        db.commit()
    return plan


@router.delete("/{plan_id}", response_model=DeleteResponse)
def delete_workout_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = find_plan(db, WorkoutPlan, plan_id)
    if plan is None:
        raise NotFoundError("Workout plan", str(plan_id))
    if plan.user_id != current_user.id:
        raise ForbiddenError("You can only delete your own workout plans")

    db.delete(plan)
    db.commit()
    logger.info(f"Workout plan {plan_id} deleted by {current_user.id}")
    return DeleteResponse(success=True, message="Workout plan deleted successfully")
