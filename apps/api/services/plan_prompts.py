"""
Plan Prompt Builder

Turns a user profile plus generation input into (system, user) prompts for
the meal and workout generators.

Resolution rules:
- meal: target calories and meals/day come from the input, then the
  profile; macro targets prefer any non-zero field of input.macroGoals over
  the profile's macros; allergies and dietary restrictions from profile and
  input are merged
- workout: days/week, session length, focus, split, equipment and
  experience fall back to profile-derived defaults

The only I/O is the exercise catalog lookup in `build_exercise_section`,
which degrades to an embedded sample list and never raises.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.config import settings
from models import UserProfile
from schemas import CustomSplitDay, GenerateMealPlanInput, GenerateWorkoutPlanInput
from services.exercise_catalog import (
    ExerciseCatalogClient,
    format_exercises_for_ai,
    get_sample_exercises_by_category,
)
from services.metrics_calculator import calculate_macros

logger = logging.getLogger(__name__)

DEFAULT_MEALS_PER_DAY = 3
DEFAULT_SESSION_LENGTH_MIN = 60
DEFAULT_SPLIT = "full-body"
DEFAULT_EQUIPMENT = ["dumbbells", "barbell", "bodyweight"]
CATALOG_SAMPLE_LIMIT = 120

GOAL_LABELS = {
    "weight-loss": "Weight Loss",
    "muscle-gain": "Muscle Gain",
}
DEFAULT_GOAL_LABEL = "General Health"

DAYS_PER_WEEK_BY_ACTIVITY = {
    "sedentary": 3,
    "lightly-active": 4,
}
DEFAULT_DAYS_PER_WEEK = 5

FOCUS_BY_GOAL = {
    "muscle-gain": "hypertrophy",
    "weight-loss": "endurance",
}
DEFAULT_FOCUS = "general"


@dataclass
class PromptPair:
    system: str
    user: str

    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


@dataclass
class CuisineHints:
    dishes: str
    ingredients: str
    breakfast: Optional[str] = None
    snacks: Optional[str] = None
    carb_note: Optional[str] = None
    fat_note: Optional[str] = None


CUISINE_HINTS: Dict[str, CuisineHints] = {
    "filipino": CuisineHints(
        dishes="Adobo, Sinigang, Pancit, Tinola, Sisig, Kare-Kare, Lumpia",
        ingredients="coconut milk, fish sauce, soy sauce, vinegar, tamarind, kangkong, malunggay",
        breakfast="silog plates such as tapsilog, longsilog and bangsilog",
        snacks="fresh fruit (mango, banana, rambutan) and kakanin",
        carb_note="adjust rice portions to hit the carb target",
        fat_note="balance coconut-based and lean preparations",
    ),
}


# ============ Meal plans ============

MEAL_PLAN_JSON_SHAPE = """{
  "title": "string - descriptive plan title",
  "goal": "string - primary goal like Weight Loss, Muscle Gain",
  "calories": number,
  "macros": {"protein": number, "carbs": number, "fats": number, "calories": number},
  "days": [
    {
      "dayIndex": number, // 0-6 (Monday-Sunday)
      "dayLabel": "string - e.g. Monday",
      "meals": [
        {
          "name": "string",
          "timeOfDay": "string - e.g. Breakfast, Lunch, Dinner, Snack 1",
          "calories": number,
          "macros": {"protein": number, "carbs": number, "fats": number, "calories": number},
          "ingredients": ["string - ingredient with quantity"],
          "instructions": ["string - one step per entry"],
          "prepTime": number // minutes
        }
      ],
      "totalCalories": number,
      "totalMacros": {"protein": number, "carbs": number, "fats": number, "calories": number}
    }
  ],
  "groceryList": []
}"""

COOKING_SKILL_GUIDANCE = {
    "beginner": """COOKING SKILL: Beginner
- Simple recipes with basic techniques only
- Common, easy-to-find ingredients
- At most 8 steps per recipe (5-8 is ideal)
- No deboning, filleting or intricate knife work
- Favour one-pot meals and simple stir-fries""",
    "intermediate": """COOKING SKILL: Intermediate
- Moderate complexity; multi-step recipes are fine
- Mix simple and more involved techniques
- Assume familiarity with basic cooking methods""",
    "advanced": """COOKING SKILL: Advanced
- Complex, authentic recipes are welcome
- Advanced techniques (deboning, proper braising) and traditional preparation
- Restaurant-quality dishes""",
}


@dataclass
class MealPlanContext:
    """Everything a meal prompt needs, with defaults already applied."""
    age: int
    gender: str
    weight_kg: float
    height_cm: float
    activity_level: str
    primary_goal: str
    dietary_restrictions: List[str]
    allergies: List[str]
    target_calories: int
    target_macros: Dict[str, int]
    meals_per_day: int
    goal_label: str
    title: str
    cuisines: List[str] = field(default_factory=list)
    cooking_time: str = "moderate"
    cooking_skill: str = "intermediate"
    budget: str = "moderate"
    meal_prep_friendly: bool = False


def _merge_unique(*groups: Optional[List[str]]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for item in group or []:
            cleaned = item.strip()
            if cleaned and cleaned.lower() not in (m.lower() for m in merged):
                merged.append(cleaned)
    return merged


def resolve_meal_context(profile: UserProfile, plan_input: GenerateMealPlanInput) -> MealPlanContext:
    target_calories = plan_input.target_calories or profile.target_calories
    if not target_calories:
        raise ValueError("No calorie target available; profile metrics are missing")

    if profile.macros_protein and profile.macros_carbs and profile.macros_fats:
        macros = {
            "protein": profile.macros_protein,
            "carbs": profile.macros_carbs,
            "fats": profile.macros_fats,
        }
    else:
        macros = calculate_macros(target_calories, profile.primary_goal, profile.weight_kg)

    goals = plan_input.macro_goals
    if goals and (goals.protein or goals.carbs or goals.fats):
        macros = {
            "protein": int(goals.protein or macros["protein"]),
            "carbs": int(goals.carbs or macros["carbs"]),
            "fats": int(goals.fats or macros["fats"]),
        }

    dietary = [] if profile.dietary_preference in (None, "none") else [profile.dietary_preference]
    goal_label = plan_input.goal or GOAL_LABELS.get(profile.primary_goal, DEFAULT_GOAL_LABEL)
    cuisines = _merge_unique(plan_input.cuisine_preferences) or [settings.DEFAULT_CUISINE]

    return MealPlanContext(
        age=profile.age,
        gender=profile.gender,
        weight_kg=profile.weight_kg,
        height_cm=profile.height_cm,
        activity_level=profile.activity_level,
        primary_goal=profile.primary_goal,
        dietary_restrictions=_merge_unique(dietary, plan_input.dietary_preferences),
        allergies=_merge_unique(profile.allergies, plan_input.allergies),
        target_calories=int(target_calories),
        target_macros=macros,
        meals_per_day=plan_input.meals_per_day or profile.meals_per_day or DEFAULT_MEALS_PER_DAY,
        goal_label=goal_label,
        title=plan_input.title or f"{cuisines[0].title()} {goal_label} Meal Plan",
        cuisines=cuisines,
        cooking_time=plan_input.cooking_time or "moderate",
        cooking_skill=plan_input.cooking_skill or "intermediate",
        budget=plan_input.budget or "moderate",
        meal_prep_friendly=bool(plan_input.meal_prep_friendly),
    )


def _profile_block(ctx: MealPlanContext) -> str:
    return "\n".join([
        "User Profile:",
        f"- Age: {ctx.age}, Gender: {ctx.gender}",
        f"- Weight: {ctx.weight_kg:g}kg, Height: {ctx.height_cm:g}cm",
        f"- Activity Level: {ctx.activity_level}",
        f"- Primary Goal: {ctx.primary_goal}",
        f"- Dietary Restrictions: {', '.join(ctx.dietary_restrictions) or 'none'}",
        f"- Allergies (NEVER include these ingredients): {', '.join(ctx.allergies) or 'none'}",
    ])


def _cuisine_lines(ctx: MealPlanContext, detailed: bool) -> List[str]:
    names = ", ".join(c.title() for c in ctx.cuisines)
    lines = [f"- Cuisine Focus: {names.upper()} DISHES ONLY"]
    for cuisine in ctx.cuisines:
        hints = CUISINE_HINTS.get(cuisine.lower())
        if not hints:
            continue
        lines.append(f"- Include traditional {cuisine.title()} dishes like {hints.dishes}")
        lines.append(f"- Use authentic ingredients like {hints.ingredients}")
        if detailed and hints.breakfast:
            lines.append(f"- Breakfast ideas: {hints.breakfast}")
        if detailed and hints.snacks:
            lines.append(f"- Healthy snacks: {hints.snacks}")
    return lines


def build_meal_plan_prompts(ctx: MealPlanContext) -> PromptPair:
    macros = ctx.target_macros
    system = (
        "You are a certified nutritionist creating personalized meal plans. "
        "You must respond with valid JSON only.\n\n"
        f"The JSON must exactly match this structure:\n{MEAL_PLAN_JSON_SHAPE}"
    )

    requirements = [
        "Plan Requirements:",
        f"- Title: {ctx.title}",
        f"- Daily Calories: {ctx.target_calories}",
        f"- Daily Macros: {macros['protein']}g protein, {macros['carbs']}g carbs, {macros['fats']}g fats",
        f"- Meals per day: {ctx.meals_per_day} meals EACH day "
        f"(Total: {ctx.meals_per_day * 7} meals for the week)",
        *_cuisine_lines(ctx, detailed=True),
        "- Create ALL 7 UNIQUE days (Monday through Sunday) with different meals each day",
        f"- Cooking time preference: {ctx.cooking_time}",
        f"- Budget consideration: {ctx.budget}",
        "- Meal prep friendly: "
        + ("Yes - include batch cooking tips" if ctx.meal_prep_friendly else "No"),
    ]

    hints = [CUISINE_HINTS.get(c.lower()) for c in ctx.cuisines]
    carb_note = next((h.carb_note for h in hints if h and h.carb_note), "adjust starch portions accordingly")
    fat_note = next((h.fat_note for h in hints if h and h.fat_note), "balance rich and lean preparations")

    user = "\n\n".join([
        "Create a complete 7-day meal plan for:",
        _profile_block(ctx),
        "\n".join(requirements),
        COOKING_SKILL_GUIDANCE.get(ctx.cooking_skill, COOKING_SKILL_GUIDANCE["intermediate"]),
        "\n".join([
            "MACRO TARGET EMPHASIS:",
            f"- STRICTLY aim for {macros['protein']}g protein daily - prioritize protein-rich dishes",
            f"- Target {macros['carbs']}g carbs daily - {carb_note}",
            f"- Target {macros['fats']}g fats daily - {fat_note}",
        ]),
        "\n".join([
            "IMPORTANT:",
            "1. Return ONLY the JSON object. No explanations, no markdown.",
            "2. Create 7 COMPLETE and DIFFERENT days with dayIndex 0-6, not repeated patterns",
            f"3. Each day must have EXACTLY {ctx.meals_per_day} meals",
            "4. Each day's totalCalories must equal the sum of its meals' calories",
            "5. RESPECT the cooking skill level",
            "6. Daily macro totals should match the targets within 5%",
        ]),
    ])
    return PromptPair(system=system, user=user)


def build_fallback_meal_plan_prompts(ctx: MealPlanContext) -> PromptPair:
    """Shorter variant used after a truncated first attempt."""
    macros = ctx.target_macros
    system = (
        "You are a certified nutritionist creating personalized meal plans. "
        "You must respond with valid JSON only.\n\n"
        f"The JSON must exactly match this structure:\n{MEAL_PLAN_JSON_SHAPE}"
    )
    requirements = [
        "Plan Requirements:",
        f"- Title: {ctx.title}",
        f"- Daily Calories: {ctx.target_calories}",
        f"- Daily Macros: {macros['protein']}g protein, {macros['carbs']}g carbs, {macros['fats']}g fats",
        f"- Meals per day: {ctx.meals_per_day} meals EACH day",
        *_cuisine_lines(ctx, detailed=False),
        "- Create ALL 7 UNIQUE days (Monday through Sunday)",
    ]
    user = "\n\n".join([
        "Create a complete 7-day meal plan for:",
        _profile_block(ctx),
        "\n".join(requirements),
        "\n".join([
            "IMPORTANT:",
            "1. Return ONLY the JSON object.",
            f"2. 7 complete days, EXACTLY {ctx.meals_per_day} meals each",
            "3. Keep ingredient lists concise and instructions brief",
            "4. Leave groceryList as an empty array",
        ]),
    ])
    return PromptPair(system=system, user=user)


# ============ Workout plans ============

WORKOUT_PLAN_JSON_SHAPE = """{
  "title": "string - descriptive plan title",
  "focus": "string - primary focus like Strength, Hypertrophy",
  "daysPerWeek": number,
  "schedule": [
    {
      "dayIndex": number, // 0-6 (Monday-Sunday)
      "dayLabel": "string - e.g. Monday - Push Day",
      "isRestDay": boolean,
      "blocks": [
        {
          "type": "warmup|main|accessory|cooldown",
          "name": "string - block description",
          "exercises": [
            {
              "exerciseId": "string|null - catalog ID (e.g. \\"0001\\") or null for custom",
              "name": "string",
              "sets": number,
              "reps": "string - e.g. 8-12, AMRAP, 30 seconds",
              "restSeconds": number,
              "rpe": number, // 1-10, optional
              "equipment": ["string"],
              "muscleGroups": ["string"]
            }
          ]
        }
      ],
      "totalTime": number, // minutes
      "focus": "string - e.g. Upper Body"
    }
  ]
}"""


@dataclass
class WorkoutPreferences:
    days_per_week: int
    session_length: int
    focus: str
    split: str
    equipment: List[str]
    injuries: List[str]
    experience: str
    title: str
    custom_split_config: Optional[List[CustomSplitDay]] = None


def resolve_workout_preferences(profile: UserProfile, plan_input: GenerateWorkoutPlanInput) -> WorkoutPreferences:
    focus = plan_input.focus or FOCUS_BY_GOAL.get(profile.primary_goal, DEFAULT_FOCUS)
    return WorkoutPreferences(
        days_per_week=plan_input.days_per_week
        or DAYS_PER_WEEK_BY_ACTIVITY.get(profile.activity_level, DEFAULT_DAYS_PER_WEEK),
        session_length=plan_input.session_length or DEFAULT_SESSION_LENGTH_MIN,
        focus=focus,
        split=plan_input.split or DEFAULT_SPLIT,
        equipment=list(plan_input.equipment or DEFAULT_EQUIPMENT),
        injuries=list(plan_input.injuries or []),
        experience=plan_input.experience or profile.fitness_level,
        title=plan_input.title or f"{focus.title()} Training Plan",
        custom_split_config=plan_input.custom_split_config,
    )


def split_guidance(prefs: WorkoutPreferences) -> str:
    if prefs.split == "full-body":
        return f"""SPLIT TYPE: Full Body
- Train all major muscle groups every session
- At least one exercise each for chest, back, legs, shoulders, arms and core
- Build sessions around compound lifts (squat, deadlift, bench press, row, overhead press)
- Programmed for {prefs.days_per_week} days per week"""

    if prefs.split == "upper-lower":
        return """SPLIT TYPE: Upper/Lower
- Alternate upper body and lower body days
- Upper: chest, back, shoulders, arms
- Lower: quads, hamstrings, glutes, calves, core"""

    if prefs.split == "push-pull-legs":
        return """SPLIT TYPE: Push/Pull/Legs
- Push: chest, shoulders, triceps (pressing)
- Pull: back, biceps, forearms (pulling)
- Legs: quads, hamstrings, glutes, calves, core
- STRICT separation: no pulling on push days, no pressing on pull days"""

    if prefs.split == "bro-split":
        return """SPLIT TYPE: Bro Split
- ONE major muscle group per day with high volume (4-6 exercises, 15-20 sets)
- Chest, Back, Legs, Shoulders, Arms on separate days"""

    if prefs.split == "custom" and prefs.custom_split_config:
        days = "\n".join(
            f"- {day.label}: {', '.join(day.muscle_groups)}" for day in prefs.custom_split_config
        )
        return f"""SPLIT TYPE: Custom (user defined)
Follow these muscle group assignments EXACTLY:
{days}
Only train the listed muscle groups on each day. Do not add others."""

    return f"""SPLIT TYPE: Custom
- Balanced split over {prefs.days_per_week} days per week
- Every major muscle group trained at least once per week"""


def build_exercise_section(prefs: WorkoutPreferences, catalog: Optional[ExerciseCatalogClient]) -> str:
    """Catalog excerpt for the prompt; the embedded sample list when unavailable."""
    if catalog is None:
        return get_sample_exercises_by_category()
    try:
        exercises = catalog.fetch_exercises_for_workout(prefs.equipment, limit=CATALOG_SAMPLE_LIMIT)
    except Exception as e:
        logger.warning(f"Falling back to sample exercise list: {e}")
        return get_sample_exercises_by_category()
    if not exercises:
        return get_sample_exercises_by_category()
    return format_exercises_for_ai(exercises)


def build_workout_plan_prompts(profile: UserProfile, prefs: WorkoutPreferences, exercise_section: str) -> PromptPair:
    system = (
        "You are a certified personal trainer creating personalized workout plans. "
        "You must respond with valid JSON only.\n\n"
        f"The JSON must exactly match this structure:\n{WORKOUT_PLAN_JSON_SHAPE}\n\n"
        "Prefer catalog exercise IDs when available. Set exerciseId to the ID string "
        "(e.g. \"0001\") or null for a custom exercise."
    )

    user = "\n\n".join([
        f"Create a {prefs.days_per_week}-day workout plan for:",
        "\n".join([
            "User Profile:",
            f"- Age: {profile.age}, Gender: {profile.gender}",
            f"- Fitness Level: {profile.fitness_level}",
            f"- Primary Goal: {profile.primary_goal}",
            f"- Activity Level: {profile.activity_level}",
        ]),
        "\n".join([
            "Workout Requirements:",
            f"- Title: {prefs.title}",
            f"- Days per week: {prefs.days_per_week} training days; mark the remaining days as rest days",
            f"- Session length: ~{prefs.session_length} minutes",
            f"- Focus: {prefs.focus}",
            f"- Available equipment: {', '.join(prefs.equipment)}",
            f"- Injuries/limitations: {', '.join(prefs.injuries) or 'none'}",
            f"- Experience level: {prefs.experience}",
        ]),
        split_guidance(prefs),
        exercise_section,
        "\n".join([
            "IMPORTANT INSTRUCTIONS:",
            "- Prioritise safety and proper form",
            "- USE catalog IDs from the list above whenever possible",
            "- Respect the split exactly as specified",
            "- Avoid exercises that conflict with the listed injuries",
            "- Only use equipment the user has available",
            "- Include warm-up and cool-down blocks on training days",
            "- Apply progressive overload principles",
            f"- daysPerWeek must be {prefs.days_per_week} and exactly that many days must have isRestDay false",
            "",
            "Return only the JSON response.",
        ]),
    ])
    return PromptPair(system=system, user=user)
