"""
Workout Logging Service

Session bookkeeping and per-exercise history for the progress endpoints.
"""
import logging
from collections import OrderedDict
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models import WorkoutSession, WorkoutSetLog
from schemas import (
    ExerciseHistoryResponse,
    HistorySession,
    HistorySet,
    PersonalRecords,
    SessionComplete,
    SessionCreate,
    SetLogCreate,
)
from services.plan_records import utcnow

logger = logging.getLogger(__name__)

HISTORY_SET_LIMIT = 200
HISTORY_SESSION_LIMIT = 10


def create_session(db: Session, user_id: UUID, request: SessionCreate) -> WorkoutSession:
    session = WorkoutSession(
        user_id=user_id,
        session_date=request.session_date or utcnow().date(),
        plan_label=request.plan_label,
        notes=request.notes,
        is_completed=False,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_user_session(db: Session, user_id: UUID, session_id: UUID) -> Optional[WorkoutSession]:
    return (
        db.query(WorkoutSession)
        .filter(WorkoutSession.id == session_id, WorkoutSession.user_id == user_id)
        .first()
    )


def find_completed_session(db: Session, user_id: UUID, on_date: date) -> Optional[WorkoutSession]:
    """Most recently completed session on `on_date`, if any."""
    return (
        db.query(WorkoutSession)
        .filter(
            WorkoutSession.user_id == user_id,
            WorkoutSession.session_date == on_date,
            WorkoutSession.is_completed.is_(True),
        )
        .order_by(WorkoutSession.completed_at.desc())
        .first()
    )


def complete_session(db: Session, session: WorkoutSession, request: SessionComplete) -> WorkoutSession:
    session.is_completed = True
    session.completed_at = utcnow()
    if request.duration_min is not None:
        session.duration_min = request.duration_min
    if request.notes is not None:
        session.notes = request.notes
    db.commit()
    db.refresh(session)
    return session


def log_set(db: Session, request: SetLogCreate) -> WorkoutSetLog:
    set_log = WorkoutSetLog(**request.model_dump())
    db.add(set_log)
    db.commit()
    db.refresh(set_log)
    return set_log


def _personal_records(logs: List[WorkoutSetLog]) -> PersonalRecords:
    weights = [log.weight_kg for log in logs if log.weight_kg is not None]
    reps = [log.reps for log in logs if log.reps is not None]
    volumes = [
        log.weight_kg * log.reps
        for log in logs
        if log.weight_kg is not None and log.reps is not None
    ]
    return PersonalRecords(
        max_weight_kg=max(weights) if weights else None,
        max_reps=max(reps) if reps else None,
        max_volume=max(volumes) if volumes else None,
    )


def get_exercise_history(db: Session, user_id: UUID, exercise_id: str) -> ExerciseHistoryResponse:
    """
    Recent history for one exercise.

    Looks at the newest HISTORY_SET_LIMIT completed sets, groups them by
    session date (newest first) and keeps the last HISTORY_SESSION_LIMIT
    dates. Personal records are taken over every set that was looked at.
    """
    logs = (
        db.query(WorkoutSetLog, WorkoutSession.session_date)
        .join(WorkoutSession, WorkoutSetLog.session_id == WorkoutSession.id)
        .filter(
            WorkoutSession.user_id == user_id,
            WorkoutSetLog.exercise_id == exercise_id,
            WorkoutSetLog.completed.is_(True),
        )
        .order_by(WorkoutSession.session_date.desc(), WorkoutSetLog.set_number.asc())
        .limit(HISTORY_SET_LIMIT)
        .all()
    )

    grouped: "OrderedDict[date, List[HistorySet]]" = OrderedDict()
    for set_log, session_date in logs:
        if session_date not in grouped:
            if len(grouped) >= HISTORY_SESSION_LIMIT:
                continue
            grouped[session_date] = []
        grouped[session_date].append(
            HistorySet(
                set_number=set_log.set_number,
                reps=set_log.reps,
                weight_kg=set_log.weight_kg,
                rpe=set_log.rpe,
            )
        )

    return ExerciseHistoryResponse(
        exercise_id=exercise_id,
        sessions=[HistorySession(session_date=d, sets=sets) for d, sets in grouped.items()],
        personal_records=_personal_records([set_log for set_log, _ in logs]),
    )
