"""
AI Plan Generation

Prompt -> LLM -> repair/validate for meal and workout plans. No persistence
here; the orchestrator owns the plan record.

Meal plans:
    primary: Mistral, temperature 0.7, JSON mode, no provider fallback
    if the primary output was truncated (finish_reason "length" or an
    unclosed JSON object) and could not be recovered, one fallback pass runs
    with the shorter prompt on Groq (temperature 0.6, higher token ceiling,
    provider fallback enabled)

Workout plans:
    Mistral, temperature 0.7, JSON mode, no fallback of any kind

Every failure is raised as PlanGenerationError with a user-visible message.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from core.config import settings
from models import UserProfile
from schemas import GenerateMealPlanInput, GenerateWorkoutPlanInput
from services.ai_gateway import AIGateway, AIProviderError, AIResponse, PROVIDER_GROQ, PROVIDER_MISTRAL
from services.exercise_catalog import ExerciseCatalogClient
from services.plan_payloads import (
    MealPlanPayload,
    WorkoutPlanPayload,
    meal_plan_shape_issues,
    workout_plan_shape_issues,
)
from services.plan_prompts import (
    MealPlanContext,
    build_exercise_section,
    build_fallback_meal_plan_prompts,
    build_meal_plan_prompts,
    build_workout_plan_prompts,
    resolve_meal_context,
    resolve_workout_preferences,
)
from services.plan_response_parser import (
    PlanResponseError,
    PlanValidationError,
    parse_plan_response,
    response_looks_truncated,
)

logger = logging.getLogger(__name__)

MEAL_TEMPERATURE = 0.7
MEAL_FALLBACK_TEMPERATURE = 0.6
WORKOUT_TEMPERATURE = 0.7


class PlanGenerationError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass
class GeneratedPlan:
    payload: Union[MealPlanPayload, WorkoutPlanPayload]
    provider: str
    model: str
    used_fallback: bool = False


def _was_truncated(response: AIResponse) -> bool:
    return response.finish_reason == "length" or response_looks_truncated(response.content)


def _validate_meal_response(response: AIResponse, meals_per_day: int) -> MealPlanPayload:
    truncated = _was_truncated(response)
    try:
        payload = parse_plan_response(response.content, MealPlanPayload)
    except PlanResponseError as e:
        e.truncated = e.truncated or truncated
        raise
    issues = meal_plan_shape_issues(payload, meals_per_day)
    if issues:
        raise PlanValidationError("Validation failed: " + ", ".join(issues[:5]), truncated=truncated)
    return payload


def generate_meal_plan(
    gateway: AIGateway,
    profile: UserProfile,
    plan_input: GenerateMealPlanInput,
) -> GeneratedPlan:
    try:
        ctx = resolve_meal_context(profile, plan_input)
    except ValueError as e:
        raise PlanGenerationError(f"Failed to generate meal plan: {e}")

    prompts = build_meal_plan_prompts(ctx)

    try:
        response = gateway.call(
            prompts.messages(),
            provider=PROVIDER_MISTRAL,
            fallback=False,
            temperature=MEAL_TEMPERATURE,
            max_tokens=settings.MEAL_PLAN_MAX_TOKENS,
            json_mode=True,
        )
    except AIProviderError as e:
        raise PlanGenerationError(f"Failed to generate meal plan: {e}")

    try:
        payload = _validate_meal_response(response, ctx.meals_per_day)
    except PlanResponseError as e:
        if not e.truncated:
            logger.warning(f"Meal plan response rejected: {e.message}")
            raise PlanGenerationError(e.message)
        logger.warning(
            f"Meal plan response truncated ({len(response.content)} chars), running fallback generation",
            extra={"extra_fields": {"provider": response.provider, "model": response.model}},
        )
        return _generate_fallback_meal_plan(gateway, ctx)

    return GeneratedPlan(payload=payload, provider=response.provider, model=response.model)


def _generate_fallback_meal_plan(gateway: AIGateway, ctx: MealPlanContext) -> GeneratedPlan:
    prompts = build_fallback_meal_plan_prompts(ctx)
    try:
        response = gateway.call(
            prompts.messages(),
            provider=PROVIDER_GROQ,
            fallback=True,
            temperature=MEAL_FALLBACK_TEMPERATURE,
            max_tokens=settings.MEAL_PLAN_FALLBACK_MAX_TOKENS,
            json_mode=True,
        )
    except AIProviderError as e:
        raise PlanGenerationError(f"Fallback generation failed: {e}")

    try:
        payload = _validate_meal_response(response, ctx.meals_per_day)
    except PlanValidationError as e:
        raise PlanGenerationError(e.message.replace("Validation failed", "Fallback validation failed", 1))
    except PlanResponseError as e:
        raise PlanGenerationError(f"Fallback generation failed: {e.message}")

    return GeneratedPlan(payload=payload, provider=response.provider, model=response.model, used_fallback=True)


def generate_workout_plan(
    gateway: AIGateway,
    profile: UserProfile,
    plan_input: GenerateWorkoutPlanInput,
    catalog: Optional[ExerciseCatalogClient] = None,
) -> GeneratedPlan:
    prefs = resolve_workout_preferences(profile, plan_input)
    prompts = build_workout_plan_prompts(profile, prefs, build_exercise_section(prefs, catalog))

    try:
        response = gateway.call(
            prompts.messages(),
            provider=PROVIDER_MISTRAL,
            fallback=False,
            temperature=WORKOUT_TEMPERATURE,
            max_tokens=settings.WORKOUT_PLAN_MAX_TOKENS,
            json_mode=True,
        )
    except AIProviderError as e:
        raise PlanGenerationError(f"Failed to generate workout plan: {e}")

    try:
        payload = parse_plan_response(response.content, WorkoutPlanPayload)
    except PlanResponseError as e:
        raise PlanGenerationError(e.message)

    issues = workout_plan_shape_issues(payload, prefs.days_per_week)
    if issues:
        raise PlanGenerationError("Validation failed: " + ", ".join(issues[:5]))

    return GeneratedPlan(payload=payload, provider=response.provider, model=response.model)
