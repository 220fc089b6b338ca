"""
Profile Router

The profile is the onboarding record: body metrics, goal, activity level and
diet. Derived metrics (BMR, TDEE, target calories, macros) are recomputed
whenever an input they depend on changes.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import NotFoundError
from models import User, UserProfile
from schemas import ImperialDisplay, ProfileResponse, ProfileUpsert
from services.metrics_calculator import calculate_all_metrics, cm_to_feet_inches, kg_to_lbs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/profile", tags=["profile"])

METRIC_INPUT_FIELDS = ("height_cm", "weight_kg", "age", "gender", "activity_level", "primary_goal")


def _to_response(profile: UserProfile) -> ProfileResponse:
    response = ProfileResponse.model_validate(profile)
    if profile.preferred_units == "imperial":
        feet, inches = cm_to_feet_inches(profile.height_cm)
        response.imperial = ImperialDisplay(
            height_feet=feet,
            height_inches=inches,
            weight_lbs=kg_to_lbs(profile.weight_kg),
        )
    return response


def _apply_metrics(profile: UserProfile) -> None:
    metrics = calculate_all_metrics(
        weight_kg=profile.weight_kg,
        height_cm=profile.height_cm,
        age=profile.age,
        gender=profile.gender,
        activity_level=profile.activity_level,
        goal=profile.primary_goal,
    )
    profile.bmr = metrics["bmr"]
    profile.tdee = metrics["tdee"]
    profile.target_calories = metrics["target_calories"]
    profile.macros_protein = metrics["protein"]
    profile.macros_carbs = metrics["carbs"]
    profile.macros_fats = metrics["fats"]


@router.get("", response_model=ProfileResponse)
def get_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = db.query(UserProfile).filter(UserProfile.user_id == current_user.id).first()
    if profile is None:
        raise NotFoundError("Profile", str(current_user.id))
    return _to_response(profile)


@router.put("", response_model=ProfileResponse)
def upsert_profile(
    request: ProfileUpsert,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create or update the caller's profile.

    Metrics are always computed on create; on update only when height,
    weight, age, gender, activity level or goal changed.
    """
    profile = db.query(UserProfile).filter(UserProfile.user_id == current_user.id).first()
    values = request.model_dump()

    if profile is None:
        profile = UserProfile(user_id=current_user.id, onboarding_completed=True, **values)
        db.add(profile)
        recompute = True
    else:
        recompute = any(getattr(profile, field) != values[field] for field in METRIC_INPUT_FIELDS)
        for key, value in values.items():
            setattr(profile, key, value)

    if recompute or profile.target_calories is None:
        _apply_metrics(profile)
        logger.info(
            f"Recomputed metrics for user {current_user.id}",
            extra={"extra_fields": {"user_id": str(current_user.id), "target_calories": profile.target_calories}},
        )

    db.commit()
    db.refresh(profile)
    return _to_response(profile)
