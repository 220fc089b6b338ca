"""
Workout Logging Router

Sessions and sets the user actually performed, plus per-exercise history.
"""
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from models import User
from schemas import (
    ExerciseHistoryResponse,
    SessionComplete,
    SessionCreate,
    SessionResponse,
    SetLogCreate,
    SetLogResponse,
)
from services import workout_log
from services.plan_records import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    request: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = workout_log.create_session(db, current_user.id, request)
    logger.info(f"Workout session {session.id} started for {current_user.id}")
    return session


@router.get("/session/check-today", response_model=Optional[SessionResponse])
def check_today(
    on_date: Optional[date] = Query(None, alias="date", description="Defaults to today (UTC)"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Completed session for the given day, or null."""
    return workout_log.find_completed_session(db, current_user.id, on_date or utcnow().date())


@router.patch("/session/{session_id}/complete", response_model=SessionResponse)
def complete_session(
    session_id: UUID,
    request: Optional[SessionComplete] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = workout_log.get_user_session(db, current_user.id, session_id)
    if session is None:
        raise NotFoundError("Workout session", str(session_id))
    return workout_log.complete_session(db, session, request or SessionComplete())


@router.post("/log-set", response_model=SetLogResponse, status_code=status.HTTP_201_CREATED)
def log_set(
    request: SetLogCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = workout_log.get_user_session(db, current_user.id, request.session_id)
    if session is None:
        raise NotFoundError("Workout session", str(request.session_id))
    return workout_log.log_set(db, request)


@router.get("/history", response_model=ExerciseHistoryResponse)
def exercise_history(
    exercise_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not exercise_id:
        raise ValidationError("exercise_id is required")
    return workout_log.get_exercise_history(db, current_user.id, exercise_id)
