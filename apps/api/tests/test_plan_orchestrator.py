"""
Tests for plan generation and the orchestrator

The LLM is replaced by a scripted gateway; plan records live in the test
database so every status transition is checked against what was persisted.
"""
import json

import pytest

from core.config import settings
from models import MealPlan, PLAN_STATUS_COMPLETED, PLAN_STATUS_FAILED, WorkoutPlan
from plan_test_helpers import FakeGateway, meal_plan_payload, workout_plan_payload
from schemas import GenerateMealPlanInput, GenerateWorkoutPlanInput
from services import plan_orchestrator
from services.ai_gateway import AIProviderError, AIResponse, PROVIDER_GROQ, PROVIDER_MISTRAL
from services.plan_orchestrator import (
    OUTCOME_COMPLETED,
    OUTCOME_DISCARDED,
    OUTCOME_FAILED,
    PlanOrchestrator,
)
from services.plan_records import (
    SAVE_FAILED_ERROR,
    STALE_GENERATION_ERROR,
    fail_plan,
    start_meal_plan,
    start_workout_plan,
)


def _response(content, provider=PROVIDER_MISTRAL, model="mistral-small-2503", finish_reason="stop"):
    return AIResponse(content=content, provider=provider, model=model, finish_reason=finish_reason)


@pytest.fixture
def meal_plan(db_session, test_user, test_profile):
    return start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput(cuisinePreferences=["filipino"]))


@pytest.fixture
def workout_plan(db_session, test_user, test_profile):
    return start_workout_plan(db_session, test_user.id, test_profile, GenerateWorkoutPlanInput(daysPerWeek=3))


class TestMealPlanGeneration:
    def test_completes(self, db_session, meal_plan):
        gateway = FakeGateway(_response(json.dumps(meal_plan_payload())))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_COMPLETED
        db_session.refresh(meal_plan)
        assert meal_plan.status == PLAN_STATUS_COMPLETED
        assert meal_plan.error is None
        assert meal_plan.model == "mistral-small-2503"
        assert meal_plan.completed_at is not None
        assert len(meal_plan.days) == 7
        assert meal_plan.days[0]["meals"][0]["timeOfDay"] == "lunch"
        assert meal_plan.grocery_list[0]["name"] == "Chicken thigh"
        assert meal_plan.calories == 2400
        # Title and preferences are the ones recorded at request time
        assert meal_plan.title == "Personalized Meal Plan"
        assert meal_plan.preferences == {"cuisinePreferences": ["filipino"]}

        call = gateway.calls[0]
        assert call["provider"] == PROVIDER_MISTRAL
        assert call["fallback"] is False
        assert call["json_mode"] is True
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == settings.MEAL_PLAN_MAX_TOKENS

    def test_wrong_meal_count_fails(self, db_session, meal_plan):
        gateway = FakeGateway(_response(json.dumps(meal_plan_payload(meals_per_day=2))))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.status == PLAN_STATUS_FAILED
        assert meal_plan.error.startswith("Validation failed: days.0.meals: expected 3 meals, got 2")
        assert len(gateway.calls) == 1

    def test_truncated_output_runs_fallback(self, db_session, meal_plan):
        raw = json.dumps(meal_plan_payload())
        truncated = raw[: raw.index('"dayIndex": 4')]
        gateway = FakeGateway(
            _response(truncated, finish_reason="length"),
            _response(json.dumps(meal_plan_payload()), provider=PROVIDER_GROQ, model="llama-3.1-70b-versatile"),
        )

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_COMPLETED
        db_session.refresh(meal_plan)
        assert meal_plan.model == "llama-3.1-70b-versatile"

        fallback_call = gateway.calls[1]
        assert fallback_call["provider"] == PROVIDER_GROQ
        assert fallback_call["fallback"] is True
        assert fallback_call["temperature"] == 0.6
        assert fallback_call["max_tokens"] == settings.MEAL_PLAN_FALLBACK_MAX_TOKENS
        assert "Keep ingredient lists concise" in fallback_call["messages"][1]["content"]

    def test_fallback_validation_failure(self, db_session, meal_plan):
        raw = json.dumps(meal_plan_payload())
        gateway = FakeGateway(
            _response(raw[:500], finish_reason="length"),
            _response(json.dumps(meal_plan_payload(days=5)), provider=PROVIDER_GROQ),
        )

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.error.startswith("Fallback validation failed: days: expected 7 days, got 5")

    def test_fallback_provider_failure(self, db_session, meal_plan):
        raw = json.dumps(meal_plan_payload())
        gateway = FakeGateway(
            _response(raw[:500], finish_reason="length"),
            AIProviderError(PROVIDER_GROQ, "rate limited"),
        )

        PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        db_session.refresh(meal_plan)
        assert meal_plan.error == "Fallback generation failed: Groq API failed: rate limited"

    def test_provider_error(self, db_session, meal_plan):
        gateway = FakeGateway(AIProviderError(PROVIDER_MISTRAL, "timeout"))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.error == "Failed to generate meal plan: Mistral API failed: timeout"

    def test_unparseable_output_does_not_fall_back(self, db_session, meal_plan):
        gateway = FakeGateway(_response("Sorry, I can't do that."))

        PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        db_session.refresh(meal_plan)
        assert meal_plan.status == PLAN_STATUS_FAILED
        assert meal_plan.error.startswith("JSON parse error")
        assert len(gateway.calls) == 1

    def test_unexpected_error_is_captured(self, db_session, meal_plan):
        gateway = FakeGateway(ValueError("kaboom"))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.error == "Unexpected error during plan generation: kaboom"


class TestWorkoutPlanGeneration:
    def test_completes(self, db_session, workout_plan):
        gateway = FakeGateway(_response(json.dumps(workout_plan_payload(days_per_week=3))))

        outcome = PlanOrchestrator(db_session, gateway).run_workout_plan(str(workout_plan.id))

        assert outcome == OUTCOME_COMPLETED
        db_session.refresh(workout_plan)
        assert workout_plan.status == PLAN_STATUS_COMPLETED
        assert workout_plan.days_per_week == 3
        assert len(workout_plan.schedule) == 7
        assert workout_plan.schedule[0]["blocks"][0]["exercises"][0]["exerciseId"] == "0043"

        call = gateway.calls[0]
        assert call["provider"] == PROVIDER_MISTRAL
        assert call["fallback"] is False
        assert call["max_tokens"] == settings.WORKOUT_PLAN_MAX_TOKENS
        # No catalog client: the embedded sample list is in the prompt
        assert "Sample Exercises by Category" in call["messages"][1]["content"]

    def test_training_day_mismatch_fails(self, db_session, workout_plan):
        payload = workout_plan_payload(days_per_week=3)
        payload["schedule"][0]["isRestDay"] = True
        payload["schedule"][0]["blocks"] = []
        gateway = FakeGateway(_response(json.dumps(payload)))

        outcome = PlanOrchestrator(db_session, gateway).run_workout_plan(workout_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(workout_plan)
        assert workout_plan.error == "Validation failed: schedule: expected 3 training days, got 2"

    def test_plan_for_other_day_count_fails(self, db_session, workout_plan):
        payload = workout_plan_payload(days_per_week=5)
        payload["schedule"][1]["dayIndex"] = 0
        gateway = FakeGateway(_response(json.dumps(payload)))

        outcome = PlanOrchestrator(db_session, gateway).run_workout_plan(workout_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(workout_plan)
        assert workout_plan.days_per_week == 3
        assert workout_plan.schedule is None
        assert "schedule.1.dayIndex: duplicate day 0" in workout_plan.error
        assert "daysPerWeek: expected 3, got 5" in workout_plan.error
        assert "schedule: expected 3 training days, got 5" in workout_plan.error

    def test_training_day_without_blocks_fails(self, db_session, workout_plan):
        payload = workout_plan_payload(days_per_week=3)
        payload["schedule"][0]["blocks"] = []
        gateway = FakeGateway(_response(json.dumps(payload)))

        PlanOrchestrator(db_session, gateway).run_workout_plan(workout_plan.id)

        db_session.refresh(workout_plan)
        assert "schedule.0.blocks: training day has no blocks" in workout_plan.error

    def test_provider_error_has_no_fallback(self, db_session, workout_plan):
        gateway = FakeGateway(AIProviderError(PROVIDER_MISTRAL, "503"))

        PlanOrchestrator(db_session, gateway).run_workout_plan(workout_plan.id)

        db_session.refresh(workout_plan)
        assert workout_plan.error == "Failed to generate workout plan: Mistral API failed: 503"
        assert len(gateway.calls) == 1


class TestRecordRaces:
    def test_missing_plan_is_discarded(self, db_session, test_user):
        from uuid import uuid4

        gateway = FakeGateway()
        assert PlanOrchestrator(db_session, gateway).run_meal_plan(uuid4()) == OUTCOME_DISCARDED
        assert gateway.calls == []

    def test_plan_not_generating_is_skipped(self, db_session, meal_plan):
        fail_plan(meal_plan, "earlier failure")
        db_session.commit()
        gateway = FakeGateway()

        assert PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id) == OUTCOME_DISCARDED
        assert gateway.calls == []

    def test_deleted_during_generation_discards_result(self, db_session, meal_plan):
        plan_id = meal_plan.id

        class DeletingGateway(FakeGateway):
            def call(self, messages, **kwargs):
                db_session.delete(db_session.get(MealPlan, plan_id))
                db_session.commit()
                return super().call(messages, **kwargs)

        gateway = DeletingGateway(_response(json.dumps(meal_plan_payload())))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(plan_id)

        assert outcome == OUTCOME_DISCARDED
        assert db_session.query(MealPlan).filter(MealPlan.id == plan_id).count() == 0

    def test_expired_during_generation_is_not_overwritten(self, db_session, workout_plan):
        plan_id = workout_plan.id

        class ExpiringGateway(FakeGateway):
            def call(self, messages, **kwargs):
                fail_plan(db_session.get(WorkoutPlan, plan_id), STALE_GENERATION_ERROR)
                db_session.commit()
                return super().call(messages, **kwargs)

        gateway = ExpiringGateway(_response(json.dumps(workout_plan_payload(days_per_week=3))))

        outcome = PlanOrchestrator(db_session, gateway).run_workout_plan(plan_id)

        assert outcome == OUTCOME_DISCARDED
        db_session.refresh(workout_plan)
        assert workout_plan.status == PLAN_STATUS_FAILED
        assert workout_plan.error == STALE_GENERATION_ERROR
        assert workout_plan.schedule is None

    def test_save_failure_marks_plan_failed(self, db_session, meal_plan, monkeypatch):
        def broken_complete(plan, payload, model):
            raise RuntimeError("disk full")

        monkeypatch.setattr(plan_orchestrator, "complete_meal_plan", broken_complete)
        gateway = FakeGateway(_response(json.dumps(meal_plan_payload())))

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.status == PLAN_STATUS_FAILED
        assert meal_plan.error == SAVE_FAILED_ERROR

    def test_missing_profile_fails_plan(self, db_session, meal_plan, test_profile):
        db_session.delete(test_profile)
        db_session.commit()
        gateway = FakeGateway()

        outcome = PlanOrchestrator(db_session, gateway).run_meal_plan(meal_plan.id)

        assert outcome == OUTCOME_FAILED
        db_session.refresh(meal_plan)
        assert meal_plan.error == "User profile not found"
