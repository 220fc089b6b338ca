"""
Plan Generation Tasks

Task contract:
- one task per plan id, enqueued by the plan routers after the record is
  committed in `generating`
- the orchestrator always leaves the record completed or failed (or leaves
  it alone when it was deleted / superseded)
- acks_late + reject_on_worker_lost: a worker that dies mid-job gets the
  message redelivered instead of dropping it

The AI gateway and catalog client are process-wide so the catalog circuit
breaker sees every job in this worker process.
"""
import logging
from typing import Dict, Optional

from celery import Task

from core.database import get_db_sync
from services.ai_gateway import AIGateway
from services.exercise_catalog import ExerciseCatalogClient
from services.plan_orchestrator import PlanOrchestrator
from tasks import celery_app

logger = logging.getLogger(__name__)

_gateway: Optional[AIGateway] = None
_catalog: Optional[ExerciseCatalogClient] = None


def get_plan_gateway() -> AIGateway:
    global _gateway
    if _gateway is None:
        _gateway = AIGateway()
    return _gateway


def get_exercise_catalog() -> ExerciseCatalogClient:
    global _catalog
    if _catalog is None:
        _catalog = ExerciseCatalogClient()
    return _catalog


def _run(kind: str, plan_id: str) -> Dict:
    db = get_db_sync()
    try:
        orchestrator = PlanOrchestrator(db, get_plan_gateway(), get_exercise_catalog())
        if kind == "meal":
            outcome = orchestrator.run_meal_plan(plan_id)
        else:
            outcome = orchestrator.run_workout_plan(plan_id)
        return {"status": outcome, "plan_id": plan_id}
    except Exception as e:
        logger.error(
            f"{kind} plan task crashed for {plan_id}: {e}",
            exc_info=True,
            extra={"extra_fields": {"plan_id": plan_id, "plan_kind": kind}},
        )
        return {"status": "error", "plan_id": plan_id, "message": str(e)}
    finally:
        db.close()


@celery_app.task(name="tasks.generate_meal_plan", bind=True, acks_late=True, reject_on_worker_lost=True)
def generate_meal_plan_task(self: Task, plan_id: str) -> Dict:
    return _run("meal", plan_id)


@celery_app.task(name="tasks.generate_workout_plan", bind=True, acks_late=True, reject_on_worker_lost=True)
def generate_workout_plan_task(self: Task, plan_id: str) -> Dict:
    return _run("workout", plan_id)
