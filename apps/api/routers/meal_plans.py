"""
Meal Plan API Router

Generation is asynchronous: POST /generate records the plan in `generating`,
enqueues the Celery job and returns immediately. Clients poll
GET /{plan_id}/status until the status is completed or failed.
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
from models import MealPlan, User, UserProfile
from schemas import (
    DeleteResponse,
    GenerateMealPlanInput,
    MealPlanResponse,
    MealPlanSummary,
    PlanStartResponse,
    PlanStatusResponse,
)
from services.plan_records import (
    build_status,
    expire_stale_generation,
    fail_plan,
    find_plan,
    list_user_plans,
    restart_generation,
    start_meal_plan,
)
from tasks.plan_tasks import generate_meal_plan_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/plans/meal", tags=["meal-plans"])


def _get_owned_plan(db: Session, plan_id: UUID, user: User) -> MealPlan:
    plan = find_plan(db, MealPlan, plan_id)
    if plan is None or plan.user_id != user.id:
        raise NotFoundError("Meal plan", str(plan_id))
    return plan


def _enqueue(db: Session, plan: MealPlan) -> None:
    try:
        generate_meal_plan_task.delay(str(plan.id))
    except Exception as e:
        logger.error(f"Failed to enqueue meal plan {plan.id}: {e}", exc_info=True)
        fail_plan(plan, "Failed to start plan generation")
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Plan generation is temporarily unavailable",
        )


@router.post("/generate", response_model=PlanStartResponse)
def generate_meal_plan(
    request: Optional[GenerateMealPlanInput] = None,
    current_user: User = Depends(get_current_user),
    profile: UserProfile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Start (or restart) this week's meal plan for the current user."""
    plan_input = request or GenerateMealPlanInput()
    try:
        plan = start_meal_plan(db, current_user.id, profile, plan_input)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create meal plan for {current_user.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create meal plan",
        )

    _enqueue(db, plan)
    logger.info(
        f"Meal plan {plan.id} generation started",
        extra={"extra_fields": {"plan_id": str(plan.id), "user_id": str(current_user.id)}},
    )
    return PlanStartResponse(id=plan.id, status=plan.status)


@router.post("/{plan_id}/regenerate", response_model=PlanStartResponse)
def regenerate_meal_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Re-run generation with the plan's stored preferences."""
    plan = _get_owned_plan(db, plan_id, current_user)
    restart_generation(db, plan)
    _enqueue(db, plan)
    return PlanStartResponse(id=plan.id, status=plan.status)


@router.get("/{plan_id}/status", response_model=PlanStatusResponse)
def get_meal_plan_status(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = _get_owned_plan(db, plan_id, current_user)
    if expire_stale_generation(plan):
        db.commit()
    return build_status(plan)


@router.get("", response_model=List[MealPlanSummary])
def list_meal_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_user_plans(db, MealPlan, current_user.id)


@router.get("/{plan_id}", response_model=MealPlanResponse)
def get_meal_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = _get_owned_plan(db, plan_id, current_user)
    if expire_stale_generation(plan):
        db.commit()
    return plan


@router.delete("/{plan_id}", response_model=DeleteResponse)
def delete_meal_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    plan = find_plan(db, MealPlan, plan_id)
    if plan is None:
        raise NotFoundError("Meal plan", str(plan_id))
    if plan.user_id != current_user.id:
        raise ForbiddenError("You can only delete your own meal plans")

    db.delete(plan)
    db.commit()
    logger.info(f"Meal plan {plan_id} deleted by {current_user.id}")
    return DeleteResponse(success=True, message="Meal plan deleted successfully")
