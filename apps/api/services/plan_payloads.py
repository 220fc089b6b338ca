"""
Plan Payload Contracts

The exact JSON shapes the LLM must return for meal and workout plans.
Keys are camelCase on the wire (and in the stored JSON columns).

Schema validation covers types and ranges; the shape checks below cover the
cross-field rules: 7 unique days, mealsPerDay meals per day, day totals
(calories and each macro) that agree with their meals, and for workouts a
schedule whose daysPerWeek and training-day count match what was asked for.
"""
from typing import Annotated, List, Literal, Optional

from pydantic import Field

from schemas import CamelModel

DAYS_IN_WEEK = 7
DAY_TOTAL_TOLERANCE = 0.15
DAY_MACROS = ("protein", "carbs", "fats")

NonEmptyStr = Annotated[str, Field(min_length=1)]


class MacroNutrition(CamelModel):
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fats: float = Field(ge=0)
    calories: float = Field(ge=0)


class GroceryItem(CamelModel):
    name: NonEmptyStr
    category: NonEmptyStr
    quantity: NonEmptyStr
    notes: Optional[str] = None


class MealDetail(CamelModel):
    name: NonEmptyStr
    time_of_day: NonEmptyStr
    calories: float = Field(ge=0)
    macros: MacroNutrition
    ingredients: List[NonEmptyStr]
    instructions: List[NonEmptyStr]
    prep_time: float = Field(ge=0)
    notes: Optional[str] = None


class DayMeals(CamelModel):
    day_index: int = Field(ge=0, le=6)
    day_label: NonEmptyStr
    meals: List[MealDetail]
    total_calories: float = Field(ge=0)
    total_macros: MacroNutrition


class MealPlanPayload(CamelModel):
    title: NonEmptyStr
    goal: NonEmptyStr
    calories: float = Field(ge=0)
    macros: MacroNutrition
    days: List[DayMeals]
    grocery_list: List[GroceryItem]


class ExerciseDetail(CamelModel):
    exercise_id: Optional[str] = None  # catalog id, null for custom movements
    name: NonEmptyStr
    sets: int = Field(ge=1)
    reps: NonEmptyStr
    rest_seconds: float = Field(ge=0)
    rpe: Optional[float] = Field(default=None, ge=1, le=10)
    tempo: Optional[str] = None
    equipment: Optional[List[str]] = None
    notes: Optional[str] = None
    muscle_groups: Optional[List[str]] = None


class WorkoutBlock(CamelModel):
    type: Literal["warmup", "main", "accessory", "cooldown"]
    name: NonEmptyStr
    exercises: List[ExerciseDetail]
    total_time: Optional[float] = Field(default=None, ge=0)


class WorkoutDay(CamelModel):
    day_index: int = Field(ge=0, le=6)
    day_label: NonEmptyStr
    is_rest_day: bool
    blocks: List[WorkoutBlock]
    total_time: Optional[float] = Field(default=None, ge=0)
    focus: Optional[str] = None


class WorkoutPlanPayload(CamelModel):
    title: NonEmptyStr
    focus: Optional[str] = None
    days_per_week: int = Field(ge=1, le=7)
    schedule: List[WorkoutDay] = Field(min_length=1)


# ============ Cross-field shape rules ============

def _total_mismatch(declared: float, summed: float) -> bool:
    return abs(declared - summed) > summed * DAY_TOTAL_TOLERANCE


def _day_indices_issues(days, path: str) -> List[str]:
    issues: List[str] = []
    if len(days) != DAYS_IN_WEEK:
        issues.append(f"{path}: expected {DAYS_IN_WEEK} days, got {len(days)}")
    seen = set()
    for i, day in enumerate(days):
        if day.day_index in seen:
            issues.append(f"{path}.{i}.dayIndex: duplicate day {day.day_index}")
        seen.add(day.day_index)
    return issues


def meal_plan_shape_issues(payload: MealPlanPayload, meals_per_day: int) -> List[str]:
    """Return "path: message" strings for every shape violation (empty when fine)."""
    issues = _day_indices_issues(payload.days, "days")

    for i, day in enumerate(payload.days):
        if len(day.meals) != meals_per_day:
            issues.append(f"days.{i}.meals: expected {meals_per_day} meals, got {len(day.meals)}")

        meal_total = sum(m.calories for m in day.meals)
        if meal_total <= 0:
            issues.append(f"days.{i}.meals: meals carry no calories")
        elif _total_mismatch(day.total_calories, meal_total):
            issues.append(
                f"days.{i}.totalCalories: {day.total_calories:g} does not match meals ({meal_total:g})"
            )

        for macro in DAY_MACROS:
            summed = sum(getattr(m.macros, macro) for m in day.meals)
            declared = getattr(day.total_macros, macro)
            if _total_mismatch(declared, summed):
                issues.append(
                    f"days.{i}.totalMacros.{macro}: {declared:g} does not match meals ({summed:g})"
                )

    return issues


def workout_plan_shape_issues(payload: WorkoutPlanPayload, days_per_week: int) -> List[str]:
    """Shape violations, checked against the `days_per_week` that was requested."""
    issues = _day_indices_issues(payload.schedule, "schedule")

    if payload.days_per_week != days_per_week:
        issues.append(f"daysPerWeek: expected {days_per_week}, got {payload.days_per_week}")

    training_days = [d for d in payload.schedule if not d.is_rest_day]
    if len(training_days) != days_per_week:
        issues.append(
            f"schedule: expected {days_per_week} training days, got {len(training_days)}"
        )

    for i, day in enumerate(payload.schedule):
        if not day.is_rest_day and not day.blocks:
            issues.append(f"schedule.{i}.blocks: training day has no blocks")

    return issues
