"""
Tests for plan record lifecycle helpers

Weekly reuse, regeneration, stored-input recovery, staleness and progress.
"""
from datetime import date, datetime, timedelta, timezone

from models import MealPlan, PLAN_STATUS_FAILED, PLAN_STATUS_GENERATING
from schemas import GenerateMealPlanInput, GenerateWorkoutPlanInput, MacroGoals
from services.plan_records import (
    DEFAULT_MEAL_PLAN_TITLE,
    STALE_GENERATION_ERROR,
    build_status,
    estimate_progress,
    expire_stale_generation,
    fail_plan,
    get_week_start_date,
    meal_input_for,
    restart_generation,
    start_meal_plan,
    start_workout_plan,
    workout_input_for,
)


class TestWeekStart:
    def test_monday_is_its_own_week(self):
        assert get_week_start_date(date(2026, 10, 19)) == date(2026, 10, 19)

    def test_sunday_belongs_to_previous_monday(self):
        assert get_week_start_date(date(2026, 10, 25)) == date(2026, 10, 19)


class TestStartPlan:
    def test_new_plan_is_generating(self, db_session, test_user, test_profile):
        plan = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput())

        assert plan.status == PLAN_STATUS_GENERATING
        assert plan.title == DEFAULT_MEAL_PLAN_TITLE
        assert plan.goal == "Muscle Gain"
        assert plan.calories == 2856
        assert plan.macros == {"protein": 214, "carbs": 321, "fats": 79, "calories": 2856}
        assert plan.started_at is not None
        assert plan.week_start_date == get_week_start_date()

    def test_same_week_reuses_record(self, db_session, test_user, test_profile):
        today = date(2026, 10, 21)
        first = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput(), today=today)
        fail_plan(first, "boom")
        db_session.commit()

        second = start_meal_plan(
            db_session, test_user.id, test_profile, GenerateMealPlanInput(title="Take two"), today=today + timedelta(days=2)
        )

        assert second.id == first.id
        assert second.status == PLAN_STATUS_GENERATING
        assert second.error is None
        assert second.title == "Take two"
        assert db_session.query(MealPlan).count() == 1

    def test_next_week_creates_new_record(self, db_session, test_user, test_profile):
        first = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput(), today=date(2026, 10, 21))
        second = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput(), today=date(2026, 10, 28))
        assert first.id != second.id

    def test_workout_fields_from_resolved_preferences(self, db_session, test_user, test_profile):
        plan = start_workout_plan(db_session, test_user.id, test_profile, GenerateWorkoutPlanInput(split="upper-lower"))
        assert plan.focus == "hypertrophy"
        assert plan.split == "upper-lower"
        assert plan.days_per_week == 5
        assert plan.preferences == {"split": "upper-lower"}

    def test_restart_clears_error(self, db_session, test_user, test_profile):
        plan = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput())
        fail_plan(plan, "boom")
        db_session.commit()

        restart_generation(db_session, plan)

        assert plan.status == PLAN_STATUS_GENERATING
        assert plan.error is None
        assert plan.completed_at is None


class TestStoredInput:
    def test_preferences_round_trip(self, db_session, test_user, test_profile):
        sent = GenerateMealPlanInput(target_calories=2200, macro_goals=MacroGoals(protein=150), meals_per_day=4)
        plan = start_meal_plan(db_session, test_user.id, test_profile, sent)
        assert plan.preferences == {"targetCalories": 2200, "macroGoals": {"protein": 150.0}, "mealsPerDay": 4}
        assert meal_input_for(plan) == sent

    def test_degraded_meal_input_when_preferences_missing(self):
        plan = MealPlan(title="Old plan", goal="Weight Loss", calories=1800, preferences=None)
        rebuilt = meal_input_for(plan)
        assert rebuilt.title == "Old plan"
        assert rebuilt.goal == "Weight Loss"
        assert rebuilt.target_calories == 1800

    def test_degraded_meal_input_drops_out_of_range_calories(self):
        plan = MealPlan(title="Old plan", calories=9000, preferences={"targetCalories": "lots"})
        assert meal_input_for(plan).target_calories is None

    def test_degraded_workout_input(self, db_session, test_user, test_profile):
        plan = start_workout_plan(db_session, test_user.id, test_profile, GenerateWorkoutPlanInput(days_per_week=4))
        plan.preferences = None
        rebuilt = workout_input_for(plan)
        assert rebuilt.days_per_week == 4
        assert rebuilt.split == "full-body"


class TestStaleness:
    def _generating(self, db_session, test_user, test_profile, started):
        plan = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput())
        plan.started_at = started
        db_session.commit()
        return plan

    def test_fresh_generation_untouched(self, db_session, test_user, test_profile):
        started = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        plan = self._generating(db_session, test_user, test_profile, started)
        assert expire_stale_generation(plan, now=started + timedelta(minutes=14)) is False
        assert plan.status == PLAN_STATUS_GENERATING

    def test_stale_generation_failed(self, db_session, test_user, test_profile):
        started = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        plan = self._generating(db_session, test_user, test_profile, started)
        assert expire_stale_generation(plan, now=started + timedelta(minutes=16)) is True
        assert plan.status == PLAN_STATUS_FAILED
        assert plan.error == STALE_GENERATION_ERROR

    def test_naive_timestamps_treated_as_utc(self, db_session, test_user, test_profile):
        plan = self._generating(db_session, test_user, test_profile, datetime(2026, 10, 19, 12, 0))
        now = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)
        assert expire_stale_generation(plan, now=now) is True

    def test_terminal_plans_never_expire(self, db_session, test_user, test_profile):
        plan = self._generating(db_session, test_user, test_profile, datetime(2020, 1, 1, tzinfo=timezone.utc))
        fail_plan(plan, "boom")
        assert expire_stale_generation(plan) is False
        assert plan.error == "boom"


class TestProgress:
    def test_progress_estimates(self, db_session, test_user, test_profile):
        plan = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput())
        started = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        plan.started_at = started

        assert estimate_progress(plan, now=started) == 0
        assert estimate_progress(plan, now=started + timedelta(seconds=22.5)) == 50
        assert estimate_progress(plan, now=started + timedelta(minutes=10)) == 90

        fail_plan(plan, "boom")
        assert estimate_progress(plan, now=started) == 0

    def test_status_payload(self, db_session, test_user, test_profile):
        plan = start_meal_plan(db_session, test_user.id, test_profile, GenerateMealPlanInput())
        status = build_status(plan)
        assert status.id == plan.id
        assert status.status == PLAN_STATUS_GENERATING
        assert status.poll_interval_ms == 2000
        assert 0 <= status.progress <= 90
