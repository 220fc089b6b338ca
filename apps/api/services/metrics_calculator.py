"""
Body Metrics Calculation Service

Derives daily energy needs and macro targets from a profile.

BMR uses Mifflin-St Jeor:
    10 * weight_kg + 6.25 * height_cm - 5 * age + s
    s = +5 (male), -161 (female), -78 (other / undisclosed)

TDEE = BMR * activity multiplier; target calories = TDEE + goal adjustment;
macros split the target by goal ratio (4/9/4 kcal per gram) with protein
floored at 1 g per kg body weight.

Everything here is pure. Inputs are validated by the caller.
"""
import math
from typing import Dict, Tuple

ACTIVITY_MULTIPLIERS: Dict[str, float] = {
    "sedentary": 1.2,
    "lightly-active": 1.375,
    "moderately-active": 1.55,
    "very-active": 1.725,
    "extremely-active": 1.9,
}

GOAL_CALORIE_ADJUSTMENTS: Dict[str, int] = {
    "weight-loss": -500,
    "muscle-gain": 300,
    "maintenance": 0,
    "athletic": 200,
    "general": 0,
}

# (protein, fats, carbs) share of calories
MACRO_RATIOS: Dict[str, Tuple[float, float, float]] = {
    "weight-loss": (0.35, 0.30, 0.35),
    "muscle-gain": (0.30, 0.25, 0.45),
    "athletic": (0.25, 0.25, 0.50),
}
DEFAULT_MACRO_RATIO = (0.30, 0.30, 0.40)

KCAL_PER_GRAM_PROTEIN = 4
KCAL_PER_GRAM_CARBS = 4
KCAL_PER_GRAM_FATS = 9

HEIGHT_RANGE_CM = (120, 250)
WEIGHT_RANGE_KG = (30, 300)
AGE_RANGE = (18, 100)
MEALS_PER_DAY_RANGE = (3, 6)

CM_PER_INCH = 2.54
LBS_PER_KG = 2.20462


def round_half_up(value: float) -> int:
    """Round to nearest integer, .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def calculate_bmr(weight_kg: float, height_cm: float, age: int, gender: str) -> int:
    """
    Basal metabolic rate in kcal/day.

    Examples:
        >>> calculate_bmr(70, 175, 30, "male")
        1649
    """
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age
    if gender == "male":
        bmr = base + 5
    elif gender == "female":
        bmr = base - 161
    else:
        # Midpoint of the two constants
        bmr = base - 78
    return round_half_up(bmr)


def calculate_tdee(bmr: int, activity_level: str) -> int:
    multiplier = ACTIVITY_MULTIPLIERS.get(activity_level, ACTIVITY_MULTIPLIERS["sedentary"])
    return round_half_up(bmr * multiplier)


def calculate_target_calories(tdee: int, goal: str) -> int:
    return round_half_up(tdee + GOAL_CALORIE_ADJUSTMENTS.get(goal, 0))


def calculate_macros(target_calories: int, goal: str, weight_kg: float) -> Dict[str, int]:
    """
    Gram targets for protein, carbs and fats.

    Returns:
        {"protein": g, "carbs": g, "fats": g}
    """
    protein_ratio, fats_ratio, carbs_ratio = MACRO_RATIOS.get(goal, DEFAULT_MACRO_RATIO)

    protein = round_half_up(target_calories * protein_ratio / KCAL_PER_GRAM_PROTEIN)
    fats = round_half_up(target_calories * fats_ratio / KCAL_PER_GRAM_FATS)
    carbs = round_half_up(target_calories * carbs_ratio / KCAL_PER_GRAM_CARBS)

    # At least 1 g protein per kg body weight
    protein = max(protein, round_half_up(weight_kg))

    return {"protein": protein, "carbs": carbs, "fats": fats}


def calculate_all_metrics(
    weight_kg: float,
    height_cm: float,
    age: int,
    gender: str,
    activity_level: str,
    goal: str,
) -> Dict[str, int]:
    """
    Chain BMR -> TDEE -> target calories -> macros.

    Returns:
        {"bmr", "tdee", "target_calories", "protein", "carbs", "fats"}
    """
    bmr = calculate_bmr(weight_kg, height_cm, age, gender)
    tdee = calculate_tdee(bmr, activity_level)
    target_calories = calculate_target_calories(tdee, goal)
    macros = calculate_macros(target_calories, goal, weight_kg)
    return {
        "bmr": bmr,
        "tdee": tdee,
        "target_calories": target_calories,
        **macros,
    }


# ============ Unit conversions ============

def cm_to_feet_inches(cm: float) -> Tuple[int, int]:
    total_inches = cm / CM_PER_INCH
    feet = int(total_inches // 12)
    inches = round_half_up(total_inches % 12)
    if inches == 12:
        feet, inches = feet + 1, 0
    return feet, inches


def feet_inches_to_cm(feet: int, inches: float) -> float:
    return round((feet * 12 + inches) * CM_PER_INCH, 1)


def kg_to_lbs(kg: float) -> float:
    return round(kg * LBS_PER_KG, 1)


def lbs_to_kg(lbs: float) -> float:
    return round(lbs / LBS_PER_KG, 1)


# ============ Range validators ============

def _in_range(value: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def validate_height(height_cm: float) -> bool:
    return _in_range(height_cm, HEIGHT_RANGE_CM)


def validate_weight(weight_kg: float) -> bool:
    return _in_range(weight_kg, WEIGHT_RANGE_KG)


def validate_age(age: int) -> bool:
    return _in_range(age, AGE_RANGE)


def validate_meals_per_day(meals: int) -> bool:
    return _in_range(meals, MEALS_PER_DAY_RANGE)
