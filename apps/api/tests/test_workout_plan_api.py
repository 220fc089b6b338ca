"""
Integration tests for the Workout Plan API
"""
import json
from uuid import uuid4

from models import PLAN_STATUS_FAILED, WorkoutPlan
from plan_test_helpers import FakeGateway, workout_plan_payload
from services.ai_gateway import AIResponse
from services.plan_orchestrator import PlanOrchestrator


def _generate(client, headers, body=None):
    return client.post("/v1/plans/workout/generate", json=body if body is not None else {}, headers=headers)


class TestGenerateWorkoutPlan:
    def test_starts_generation(self, client, db_session, test_profile, auth_headers, enqueued):
        response = _generate(client, auth_headers, {"daysPerWeek": 3, "split": "full-body"})

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "generating"
        assert enqueued == [("workout", data["id"])]

        plan = db_session.query(WorkoutPlan).one()
        assert plan.days_per_week == 3
        assert plan.split == "full-body"
        assert plan.focus == "hypertrophy"
        assert plan.preferences == {"daysPerWeek": 3, "split": "full-body"}

    def test_same_week_reuses_plan(self, client, db_session, test_profile, auth_headers, enqueued):
        first = _generate(client, auth_headers).json()
        second = _generate(client, auth_headers, {"split": "upper-lower"}).json()

        assert first["id"] == second["id"]
        assert db_session.query(WorkoutPlan).one().split == "upper-lower"

    def test_requires_profile(self, client, test_user, auth_headers, enqueued):
        response = _generate(client, auth_headers)
        assert response.status_code == 400
        assert enqueued == []

    def test_invalid_input(self, client, test_profile, auth_headers, enqueued):
        response = _generate(client, auth_headers, {"daysPerWeek": 9})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "daysPerWeek"
        assert enqueued == []

    def test_unknown_split_rejected(self, client, test_profile, auth_headers, enqueued):
        assert _generate(client, auth_headers, {"split": "arms-only"}).status_code == 400

    def test_enqueue_failure_fails_plan(self, client, db_session, test_profile, auth_headers, monkeypatch):
        from tasks import plan_tasks

        def broken_delay(plan_id):
            raise ConnectionError("broker down")

        monkeypatch.setattr(plan_tasks.generate_workout_plan_task, "delay", broken_delay)

        assert _generate(client, auth_headers).status_code == 503
        assert db_session.query(WorkoutPlan).one().status == PLAN_STATUS_FAILED


class TestWorkoutPlanLifecycle:
    def test_generate_run_and_fetch(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers, {"daysPerWeek": 3}).json()["id"]

        gateway = FakeGateway(AIResponse(
            content=json.dumps(workout_plan_payload(days_per_week=3)),
            provider="groq",
            model="llama-3.3-70b-versatile",
            finish_reason="stop",
        ))
        PlanOrchestrator(db_session, gateway).run_workout_plan(plan_id)

        status = client.get(f"/v1/plans/workout/{plan_id}/status", headers=auth_headers).json()
        assert status["status"] == "completed"
        assert status["progress"] == 100

        data = client.get(f"/v1/plans/workout/{plan_id}", headers=auth_headers).json()
        assert data["days_per_week"] == 3
        assert len(data["schedule"]) == 7
        assert data["schedule"][0]["blocks"][0]["exercises"][0]["exerciseId"] == "0043"
        assert data["schedule"][1]["isRestDay"] is True
        assert data["model"] == "llama-3.3-70b-versatile"

    def test_failed_generation_is_reported(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers, {"daysPerWeek": 4}).json()["id"]

        gateway = FakeGateway(AIResponse(
            content=json.dumps(workout_plan_payload(days_per_week=3)),
            provider="groq",
            model="llama-3.3-70b-versatile",
            finish_reason="stop",
        ))
        PlanOrchestrator(db_session, gateway).run_workout_plan(plan_id)

        status = client.get(f"/v1/plans/workout/{plan_id}/status", headers=auth_headers).json()
        assert status["status"] == "failed"
        assert status["error"].startswith("Validation failed")
        assert status["progress"] == 0

    def test_regenerate(self, client, db_session, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        plan = db_session.query(WorkoutPlan).one()
        plan.status = PLAN_STATUS_FAILED
        db_session.commit()

        response = client.post(f"/v1/plans/workout/{plan_id}/regenerate", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "generating"
        assert enqueued[-1] == ("workout", plan_id)

    def test_other_user_cannot_read(self, client, test_profile, auth_headers, other_auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        assert client.get(f"/v1/plans/workout/{plan_id}", headers=other_auth_headers).status_code == 404
        assert client.get("/v1/plans/workout", headers=other_auth_headers).json() == []

    def test_list_own_plans(self, client, test_profile, auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]
        listing = client.get("/v1/plans/workout", headers=auth_headers).json()
        assert [p["id"] for p in listing] == [plan_id]
        assert listing[0]["status"] == "generating"


class TestDeleteWorkoutPlan:
    def test_delete_flow(self, client, db_session, test_profile, auth_headers, other_auth_headers, enqueued):
        plan_id = _generate(client, auth_headers).json()["id"]

        assert client.delete(f"/v1/plans/workout/{plan_id}", headers=other_auth_headers).status_code == 403
        response = client.delete(f"/v1/plans/workout/{plan_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Workout plan deleted successfully"}
        assert db_session.query(WorkoutPlan).count() == 0

    def test_delete_missing(self, client, test_user, auth_headers):
        assert client.delete(f"/v1/plans/workout/{uuid4()}", headers=auth_headers).status_code == 404
