"""
Integration tests for the Meal Plan API

POST /generate returns immediately with {id, status: "generating"}; the
Celery enqueue is captured, and generation itself is driven through the
orchestrator with a scripted gateway where a test needs a finished plan.
"""
import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from models import MealPlan, PLAN_STATUS_FAILED, PLAN_STATUS_GENERATING
from plan_test_helpers import FakeGateway, meal_plan_payload
from services.ai_gateway import AIResponse
from services.plan_orchestrator import PlanOrchestrator
from services.plan_records import STALE_GENERATION_ERROR


def _generate(client, headers, body=None):
    return client.post("/v1/plans/meal/generate", json=body if body is not None else {}, headers=headers)


class TestGenerateMealPlan:
    def test_starts_generation(self, client, db_session, test_profile, auth_headers, enqueued):
        response = _generate(client, auth_headers, {"title": "Bulk", "mealsPerDay": 3})

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "generating"
        assert enqueued == [("meal", data["id"])]

        plan = db_session.query(MealPlan).one()
        assert str(plan.id) == data["id"]
        assert plan.title == "Bulk"
        assert plan.preferences == {"title": "Bulk", "mealsPerDay": 3}

    def test_body_is_optional(self, client, test_profile, auth_headers, enqueued):
        response = client.post("/v1/plans/meal/generate", headers=auth_headers)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "generating"

    def test_same_week_reuses_plan(self, client, db_session, test_profile, auth_headers, enqueued):
        first = _generate(client, auth_headers).json()
        second = _generate(client, auth_headers).json()

        assert first["id"] == second["id"]
        assert db_session.query(MealPlan).count() == 1
        assert len(enqueued) == 2

    def test_requires_auth(self, client, test_profile, enqueued):
        response = _generate(client, {})
        assert response.status_code == 401
        assert enqueued == []

    def test_invalid_token(self, client, test_profile, enqueued):
        response = _generate(client, {"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_requires_profile(self, client, test_user, auth_headers, enqueued):
        response = _generate(client, auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "User profile not found. Please complete onboarding first."
        assert enqueued == []

    def test_invalid_input(self, client, db_session, test_profile, auth_headers, enqueued):
        response = _generate(client, auth_headers, {"targetCalories": 100})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid input"
        assert body["details"][0]["field"] == "targetCalories"
        assert db_session.query(MealPlan).count() == 0
        assert enqueued == []

    def test_enqueue_failure_fails_plan(self, client, db_session, test_profile, auth_headers, monkeypatch):
        from tasks import plan_tasks

        def broken_delay(plan_id):
            raise ConnectionError("broker down")

        monkeypatch.setattr(plan_tasks.generate_meal_plan_task, "delay", broken_delay)

        response = _generate(client, auth_headers)

        assert response.status_code == 503
        plan = db_session.query(MealPlan).one()
        assert plan.status == PLAN_STATUS_FAILED
        assert plan.error == "Failed to start plan generation"


class TestMealPlanStatus:
    def test_status_while_generating(self, client, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]

        response = client.get(f"/v1/plans/meal/{plan_id}/status", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == plan_id
        assert data["status"] == "generating"
        assert 0 <= data["progress"] <= 90
        assert data["error"] is None
        assert data["poll_interval_ms"] == 2000

    def test_stale_generation_reported_as_failed(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        plan = db_session.query(MealPlan).one()
        plan.started_at = datetime.now(timezone.utc) - timedelta(minutes=30)
        db_session.commit()

        data = client.get(f"/v1/plans/meal/{plan_id}/status", headers=auth_headers).json()

        assert data["status"] == "failed"
        assert data["error"] == STALE_GENERATION_ERROR
        assert data["progress"] == 0

    def test_other_users_plan_is_not_found(self, client, test_profile, auth_headers, other_auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        response = client.get(f"/v1/plans/meal/{plan_id}/status", headers=other_auth_headers)
        assert response.status_code == 404


class TestMealPlanEndToEnd:
    def test_generate_run_and_fetch(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]

        gateway = FakeGateway(AIResponse(
            content=json.dumps(meal_plan_payload()),
            provider="mistral",
            model="mistral-small-2503",
            finish_reason="stop",
        ))
        PlanOrchestrator(db_session, gateway).run_meal_plan(plan_id)

        status = client.get(f"/v1/plans/meal/{plan_id}/status", headers=auth_headers).json()
        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["completed_at"] is not None

        detail = client.get(f"/v1/plans/meal/{plan_id}", headers=auth_headers)
        assert detail.status_code == 200
        data = detail.json()
        assert data["status"] == "completed"
        assert len(data["days"]) == 7
        assert data["days"][0]["totalCalories"] == 2400
        assert data["grocery_list"][0]["quantity"] == "2 kg"
        assert data["model"] == "mistral-small-2503"

        listing = client.get("/v1/plans/meal", headers=auth_headers).json()
        assert [p["id"] for p in listing] == [plan_id]


class TestRegenerateMealPlan:
    def test_regenerate_failed_plan(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers, {"cuisinePreferences": ["filipino"]}).json()["id"]
        plan = db_session.query(MealPlan).one()
        plan.status = PLAN_STATUS_FAILED
        plan.error = "Validation failed: days: expected 7 days, got 6"
        db_session.commit()

        response = client.post(f"/v1/plans/meal/{plan_id}/regenerate", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"id": plan_id, "status": "generating"}
        db_session.refresh(plan)
        assert plan.status == PLAN_STATUS_GENERATING
        assert plan.error is None
        assert plan.preferences == {"cuisinePreferences": ["filipino"]}
        assert enqueued[-1] == ("meal", plan_id)

    def test_regenerate_unknown_plan(self, client, test_profile, auth_headers, enqueued):
        response = client.post(f"/v1/plans/meal/{uuid4()}/regenerate", headers=auth_headers)
        assert response.status_code == 404
        assert enqueued == []

    def test_regenerate_other_users_plan(self, client, test_profile, auth_headers, other_auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        response = client.post(f"/v1/plans/meal/{plan_id}/regenerate", headers=other_auth_headers)
        assert response.status_code == 404


class TestDeleteMealPlan:
    def test_delete_own_plan(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]

        response = client.delete(f"/v1/plans/meal/{plan_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert db_session.query(MealPlan).count() == 0
        assert client.get(f"/v1/plans/meal/{plan_id}", headers=auth_headers).status_code == 404

    def test_delete_missing_plan(self, client, test_user, auth_headers):
        response = client.delete(f"/v1/plans/meal/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404

    def test_delete_other_users_plan_forbidden(self, client, db_session, test_profile, auth_headers, other_auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]

        response = client.delete(f"/v1/plans/meal/{plan_id}", headers=other_auth_headers)

        assert response.status_code == 403
        assert db_session.query(MealPlan).count() == 1

    def test_list_is_scoped_to_user(self, client, test_profile, auth_headers, other_auth_headers, enqueued):
        _generate(client, auth_headers)
        assert client.get("/v1/plans/meal", headers=other_auth_headers).json() == []
