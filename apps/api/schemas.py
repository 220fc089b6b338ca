from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Literal

from services.metrics_calculator import (
    AGE_RANGE,
    HEIGHT_RANGE_CM,
    MEALS_PER_DAY_RANGE,
    WEIGHT_RANGE_KG,
)

Gender = Literal["male", "female", "other", "prefer-not-to-say"]
FitnessLevel = Literal["beginner", "intermediate", "advanced"]
PrimaryGoal = Literal["weight-loss", "muscle-gain", "maintenance", "athletic", "general"]
ActivityLevel = Literal["sedentary", "lightly-active", "moderately-active", "very-active", "extremely-active"]
DietaryPreference = Literal["none", "vegetarian", "vegan", "pescatarian", "keto", "paleo"]
PlanStatus = Literal["generating", "completed", "failed"]


class CamelModel(BaseModel):
    """Wire format shared with the web client: camelCase keys, snake_case attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ Plan generation inputs ============

class MacroGoals(CamelModel):
    protein: Optional[float] = Field(default=None, ge=0)
    carbs: Optional[float] = Field(default=None, ge=0)
    fats: Optional[float] = Field(default=None, ge=0)


class GenerateMealPlanInput(CamelModel):
    title: Optional[str] = None
    goal: Optional[str] = None
    target_calories: Optional[int] = Field(default=None, ge=800, le=5000)
    macro_goals: Optional[MacroGoals] = None
    dietary_preferences: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    meals_per_day: Optional[int] = Field(default=None, ge=2, le=6)
    cuisine_preferences: Optional[List[str]] = None
    cooking_time: Optional[Literal["quick", "moderate", "elaborate"]] = None
    cooking_skill: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    budget: Optional[Literal["low", "moderate", "high"]] = None
    meal_prep_friendly: Optional[bool] = None


class CustomSplitDay(CamelModel):
    day_number: int = Field(ge=1, le=7)
    label: str = Field(min_length=1)
    muscle_groups: List[str] = Field(min_length=1)


class GenerateWorkoutPlanInput(CamelModel):
    title: Optional[str] = None
    days_per_week: Optional[int] = Field(default=None, ge=1, le=7)
    session_length: Optional[int] = Field(default=None, ge=15, le=180, description="Minutes")
    focus: Optional[Literal["strength", "hypertrophy", "endurance", "general"]] = None
    split: Optional[Literal["full-body", "upper-lower", "push-pull-legs", "bro-split", "custom"]] = None
    equipment: Optional[List[str]] = None
    injuries: Optional[List[str]] = None
    experience: Optional[FitnessLevel] = None
    custom_split_config: Optional[List[CustomSplitDay]] = None


# ============ Plan responses ============

class PlanStartResponse(BaseModel):
    id: UUID
    status: PlanStatus


class PlanStatusResponse(BaseModel):
    id: UUID
    title: str
    status: PlanStatus
    progress: int = Field(ge=0, le=100)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    poll_interval_ms: int


class MealPlanSummary(BaseModel):
    id: UUID
    title: str
    goal: Optional[str] = None
    calories: Optional[int] = None
    status: PlanStatus
    week_start_date: date
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MealPlanResponse(MealPlanSummary):
    macros: Optional[dict] = None
    days: Optional[list] = None
    grocery_list: Optional[list] = None
    error: Optional[str] = None
    model: Optional[str] = None
    preferences: Optional[dict] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkoutPlanSummary(BaseModel):
    id: UUID
    title: str
    focus: Optional[str] = None
    split: Optional[str] = None
    days_per_week: Optional[int] = None
    status: PlanStatus
    week_start_date: date
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkoutPlanResponse(WorkoutPlanSummary):
    schedule: Optional[list] = None
    error: Optional[str] = None
    model: Optional[str] = None
    preferences: Optional[dict] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DeleteResponse(BaseModel):
    success: bool
    message: str


# ============ Profile ============

class ProfileUpsert(BaseModel):
    height_cm: float = Field(ge=HEIGHT_RANGE_CM[0], le=HEIGHT_RANGE_CM[1])
    weight_kg: float = Field(ge=WEIGHT_RANGE_KG[0], le=WEIGHT_RANGE_KG[1])
    age: int = Field(ge=AGE_RANGE[0], le=AGE_RANGE[1])
    gender: Gender
    fitness_level: FitnessLevel
    primary_goal: PrimaryGoal
    activity_level: ActivityLevel
    dietary_preference: DietaryPreference = "none"
    allergies: List[str] = Field(default_factory=list)
    meals_per_day: int = Field(default=3, ge=MEALS_PER_DAY_RANGE[0], le=MEALS_PER_DAY_RANGE[1])
    preferred_units: Literal["metric", "imperial"] = "metric"


class ImperialDisplay(BaseModel):
    height_feet: int
    height_inches: int
    weight_lbs: float


class ProfileResponse(BaseModel):
    id: UUID
    user_id: UUID
    height_cm: float
    weight_kg: float
    age: int
    gender: str
    fitness_level: str
    primary_goal: str
    activity_level: str
    dietary_preference: str
    allergies: Optional[List[str]] = None
    meals_per_day: int
    preferred_units: str
    bmr: Optional[int] = None
    tdee: Optional[int] = None
    target_calories: Optional[int] = None
    macros_protein: Optional[int] = None
    macros_carbs: Optional[int] = None
    macros_fats: Optional[int] = None
    imperial: Optional[ImperialDisplay] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============ Workout logging ============

class SessionCreate(BaseModel):
    session_date: Optional[date] = None  # defaults to today
    plan_label: Optional[str] = None
    notes: Optional[str] = None


class SessionComplete(BaseModel):
    duration_min: Optional[int] = Field(default=None, ge=0, le=600)
    notes: Optional[str] = None


class SessionResponse(BaseModel):
    id: UUID
    session_date: date
    plan_label: Optional[str] = None
    duration_min: Optional[int] = None
    notes: Optional[str] = None
    is_completed: bool
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SetLogCreate(BaseModel):
    session_id: UUID
    exercise_id: str = Field(min_length=1)
    exercise_name: str = Field(min_length=1)
    set_number: int = Field(ge=1)
    reps: Optional[int] = Field(default=None, ge=0)
    weight_kg: Optional[float] = Field(default=None, ge=0)
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    completed: bool = True


class SetLogResponse(BaseModel):
    id: UUID
    session_id: UUID
    exercise_id: str
    exercise_name: str
    set_number: int
    reps: Optional[int] = None
    weight_kg: Optional[float] = None
    rpe: Optional[float] = None
    completed: bool

    model_config = ConfigDict(from_attributes=True)


class HistorySet(BaseModel):
    set_number: int
    reps: Optional[int] = None
    weight_kg: Optional[float] = None
    rpe: Optional[float] = None


class HistorySession(BaseModel):
    session_date: date
    sets: List[HistorySet]


class PersonalRecords(BaseModel):
    max_weight_kg: Optional[float] = None
    max_reps: Optional[int] = None
    max_volume: Optional[float] = None  # weight x reps of a single set


class ExerciseHistoryResponse(BaseModel):
    exercise_id: str
    sessions: List[HistorySession]
    personal_records: PersonalRecords
