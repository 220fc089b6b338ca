"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. Tables are created before
and dropped after every test, so nothing leaks between tests. Redis, the
Celery broker and the LLM providers are never contacted.
"""
import os
import sys

# Must be set before core.config is imported anywhere
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters-long")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["GROQ_API_KEY"] = "test-groq-key"
os.environ["MISTRAL_API_KEY"] = "test-mistral-key"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from uuid import uuid4  # noqa: E402

from core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from core.security import create_access_token  # noqa: E402
from models import User, UserProfile  # noqa: E402


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema and a session shared with the app for one test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """TestClient whose requests use the test's session."""
    from fastapi.testclient import TestClient
    from main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def test_user(db_session):
    user = User(email=f"test_{uuid4()}@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session):
    user = User(email=f"other_{uuid4()}@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_profile(db_session, test_user):
    """70kg / 175cm / 30y male, moderately active, building muscle."""
    profile = UserProfile(
        user_id=test_user.id,
        height_cm=175,
        weight_kg=70,
        age=30,
        gender="male",
        fitness_level="intermediate",
        primary_goal="muscle-gain",
        activity_level="moderately-active",
        dietary_preference="none",
        allergies=["peanuts"],
        meals_per_day=3,
        preferred_units="metric",
        bmr=1649,
        tdee=2556,
        target_calories=2856,
        macros_protein=214,
        macros_carbs=321,
        macros_fats=79,
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def auth_headers(test_user):
    token = create_access_token({"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(other_user):
    token = create_access_token({"sub": str(other_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def enqueued(monkeypatch):
    """Capture Celery .delay calls instead of talking to a broker."""
    from tasks import plan_tasks

    calls = []
    monkeypatch.setattr(plan_tasks.generate_meal_plan_task, "delay", lambda plan_id: calls.append(("meal", plan_id)))
    monkeypatch.setattr(plan_tasks.generate_workout_plan_task, "delay", lambda plan_id: calls.append(("workout", plan_id)))
    return calls

