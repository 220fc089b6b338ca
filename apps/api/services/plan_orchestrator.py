"""
Plan Generation Orchestrator

Drives one plan record from `generating` to `completed` or `failed`.

Contract:
- input is the plan's stored preferences (see plan_records.*_input_for)
- the DB transaction is closed before the LLM call; nothing is held open
  while the model runs
- the record is re-read before the final write: a deleted record discards
  the result, and only a record still in `generating` is written
- every exception is caught here; the outcome is returned, never raised
- if the final write itself fails, a best-effort `failed` write follows;
  if that fails too the staleness check on read catches the record later
"""
import logging
from typing import Callable, Optional, Type, Union
from uuid import UUID

from sqlalchemy.orm import Session

from models import MealPlan, PLAN_STATUS_GENERATING, UserProfile, WorkoutPlan
from services.ai_gateway import AIGateway
from services.ai_plan_generation import (
    GeneratedPlan,
    PlanGenerationError,
    generate_meal_plan,
    generate_workout_plan,
)
from services.exercise_catalog import ExerciseCatalogClient
from services.plan_records import (
    SAVE_FAILED_ERROR,
    complete_meal_plan,
    complete_workout_plan,
    fail_plan,
    meal_input_for,
    workout_input_for,
)

logger = logging.getLogger(__name__)

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_DISCARDED = "discarded"

PlanRecord = Union[MealPlan, WorkoutPlan]


class PlanOrchestrator:
    def __init__(
        self,
        db: Session,
        gateway: AIGateway,
        catalog: Optional[ExerciseCatalogClient] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.catalog = catalog

    def run_meal_plan(self, plan_id: Union[str, UUID]) -> str:
        return self._run(
            MealPlan,
            plan_id,
            generate=lambda plan, profile: generate_meal_plan(self.gateway, profile, meal_input_for(plan)),
            apply=lambda plan, result: complete_meal_plan(plan, result.payload, result.model),
        )

    def run_workout_plan(self, plan_id: Union[str, UUID]) -> str:
        return self._run(
            WorkoutPlan,
            plan_id,
            generate=lambda plan, profile: generate_workout_plan(
                self.gateway, profile, workout_input_for(plan), self.catalog
            ),
            apply=lambda plan, result: complete_workout_plan(plan, result.payload, result.model),
        )

    def _load(self, model_cls: Type[PlanRecord], plan_id: UUID) -> Optional[PlanRecord]:
        return self.db.get(model_cls, plan_id, populate_existing=True)

    def _run(
        self,
        model_cls: Type[PlanRecord],
        plan_id: Union[str, UUID],
        generate: Callable[[PlanRecord, UserProfile], GeneratedPlan],
        apply: Callable[[PlanRecord, GeneratedPlan], None],
    ) -> str:
        kind = model_cls.__tablename__
        plan_uuid = plan_id if isinstance(plan_id, UUID) else UUID(str(plan_id))

        plan = self._load(model_cls, plan_uuid)
        if plan is None:
            logger.info(f"{kind} {plan_uuid} no longer exists, nothing to generate")
            return OUTCOME_DISCARDED
        if plan.status != PLAN_STATUS_GENERATING:
            logger.info(f"{kind} {plan_uuid} is {plan.status}, skipping generation")
            return OUTCOME_DISCARDED

        profile = self.db.query(UserProfile).filter(UserProfile.user_id == plan.user_id).first()
        # End the read transaction before the slow part
        self.db.commit()

        result: Optional[GeneratedPlan] = None
        error_message: Optional[str] = None
        try:
            if profile is None:
                raise PlanGenerationError("User profile not found")
            result = generate(plan, profile)
        except PlanGenerationError as e:
            error_message = e.message
        except Exception as e:
            logger.error(f"Unexpected error generating {kind} {plan_uuid}: {e}", exc_info=True)
            error_message = f"Unexpected error during plan generation: {e}"

        return self._finish(model_cls, plan_uuid, apply, result, error_message)

    def _finish(
        self,
        model_cls: Type[PlanRecord],
        plan_uuid: UUID,
        apply: Callable[[PlanRecord, GeneratedPlan], None],
        result: Optional[GeneratedPlan],
        error_message: Optional[str],
    ) -> str:
        kind = model_cls.__tablename__
        try:
            plan = self._load(model_cls, plan_uuid)
            if plan is None:
                logger.info(f"{kind} {plan_uuid} was deleted during generation, discarding result")
                return OUTCOME_DISCARDED
            if plan.status != PLAN_STATUS_GENERATING:
                logger.info(f"{kind} {plan_uuid} left generating ({plan.status}) meanwhile, discarding result")
                return OUTCOME_DISCARDED

            if result is not None:
                apply(plan, result)
                outcome = OUTCOME_COMPLETED
            else:
                fail_plan(plan, error_message or "Plan generation failed")
                outcome = OUTCOME_FAILED
            self.db.commit()
        except Exception as e:
            logger.error(f"Failed to save {kind} {plan_uuid}: {e}", exc_info=True)
            self.db.rollback()
            self._mark_save_failed(model_cls, plan_uuid)
            return OUTCOME_FAILED

        log = logger.info if outcome == OUTCOME_COMPLETED else logger.warning
        log(
            f"{kind} {plan_uuid} {outcome}",
            extra={
                "extra_fields": {
                    "plan_id": str(plan_uuid),
                    "plan_kind": kind,
                    "outcome": outcome,
                    "model": result.model if result else None,
                    "used_fallback": result.used_fallback if result else None,
                    "error": error_message,
                }
            },
        )
        return outcome

    def _mark_save_failed(self, model_cls: Type[PlanRecord], plan_uuid: UUID) -> None:
        try:
            plan = self._load(model_cls, plan_uuid)
            if plan is not None and plan.status == PLAN_STATUS_GENERATING:
                fail_plan(plan, SAVE_FAILED_ERROR)
                self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not mark {model_cls.__tablename__} {plan_uuid} as failed: {e}")
