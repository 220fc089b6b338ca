"""
Exercise Catalog Client

Read-only access to the public ExerciseDB catalog, used to seed workout
prompts with real exercise ids.

Failure semantics:
- every HTTP call goes through an injected CircuitBreaker
- per-equipment lookups that fail contribute nothing
- `fetch_exercises_for_workout` never raises; an empty list tells the
  prompt builder to use the embedded sample list instead

Successful per-equipment lookups are cached in Redis when available.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from core.cache import cache_key, get_cache, set_cache
from core.config import settings
from services.circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

PER_EQUIPMENT_LIMIT = 30
DEFAULT_WORKOUT_EXERCISE_LIMIT = 120
MAX_PROMPT_GROUPS = 15
MAX_PROMPT_EXERCISES_PER_GROUP = 8

# Profile/input vocabulary -> catalog vocabulary
EQUIPMENT_ALIASES: Dict[str, str] = {
    "dumbbells": "dumbbell",
    "barbells": "barbell",
    "bodyweight": "body weight",
    "kettlebells": "kettlebell",
    "cables": "cable",
    "bands": "band",
    "resistance bands": "band",
}


class ExerciseCatalogError(Exception):
    pass


@dataclass
class ExerciseForAI:
    id: str
    name: str
    equipment: List[str] = field(default_factory=list)
    body_parts: List[str] = field(default_factory=list)
    target_muscles: List[str] = field(default_factory=list)
    secondary_muscles: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, item: Dict) -> "ExerciseForAI":
        return cls(
            id=str(item.get("exerciseId") or item.get("id") or ""),
            name=item.get("name") or "",
            equipment=list(item.get("equipments") or []),
            body_parts=list(item.get("bodyParts") or []),
            target_muscles=list(item.get("targetMuscles") or []),
            secondary_muscles=list(item.get("secondaryMuscles") or []),
        )


def build_catalog_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        name="exercise_catalog",
        failure_threshold=settings.EXERCISE_CATALOG_BREAKER_THRESHOLD,
        reset_timeout_s=settings.EXERCISE_CATALOG_BREAKER_RESET_S,
    )


class ExerciseCatalogClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout_s: Optional[float] = None,
        session: Optional[requests.Session] = None,
        use_cache: bool = True,
    ):
        self.base_url = (base_url or settings.EXERCISEDB_API_URL).rstrip("/")
        self.breaker = breaker or build_catalog_breaker()
        self.timeout_s = timeout_s if timeout_s is not None else settings.EXERCISE_CATALOG_TIMEOUT_S
        self.session = session or requests.Session()
        self.use_cache = use_cache

    def _request(self, path: str, params: Dict) -> List[Dict]:
        response = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout_s)
        if response.status_code != 200:
            raise ExerciseCatalogError(f"ExerciseDB returned {response.status_code} for {path}")
        body = response.json()
        data = body.get("data") if isinstance(body, dict) else body
        if not isinstance(data, list):
            raise ExerciseCatalogError(f"Unexpected ExerciseDB payload for {path}")
        return data

    def _get_list(self, path: str, params: Dict) -> List[Dict]:
        return self.breaker.call(self._request, path, params)

    def get_exercises(self, limit: int = 20, offset: int = 0) -> List[Dict]:
        return self._get_list("/exercises", {"limit": limit, "offset": offset})

    def get_exercises_by_equipment(self, equipment: str, limit: int = PER_EQUIPMENT_LIMIT, offset: int = 0) -> List[Dict]:
        name = EQUIPMENT_ALIASES.get(equipment.strip().lower(), equipment.strip().lower())
        key = cache_key("exercisedb:equipment", name, limit, offset)
        if self.use_cache:
            cached = get_cache(key)
            if cached is not None:
                return cached

        path = f"/equipments/{requests.utils.quote(name)}/exercises"
        data = self._get_list(path, {"limit": limit, "offset": offset})
        if self.use_cache:
            set_cache(key, data, settings.CACHE_TTL_EXERCISES)
        return data

    def fetch_exercises_for_workout(
        self,
        equipment: Optional[List[str]] = None,
        limit: int = DEFAULT_WORKOUT_EXERCISE_LIMIT,
    ) -> List[ExerciseForAI]:
        """
        Exercises usable with the given equipment, deduplicated by id.

        Never raises. Returns [] when the catalog is unreachable.
        """
        items: List[Dict] = []
        try:
            if equipment:
                for equip in equipment:
                    try:
                        items.extend(self.get_exercises_by_equipment(equip, limit=PER_EQUIPMENT_LIMIT))
                    except CircuitOpenError:
                        logger.info("Exercise catalog circuit open, skipping remaining equipment")
                        break
                    except Exception as e:
                        logger.warning(f"Failed to fetch exercises for {equip}: {e}")
            else:
                items = self.get_exercises(limit=limit)
        except Exception as e:
            logger.warning(f"Failed to fetch exercises from ExerciseDB: {e}")
            return []

        unique: Dict[str, ExerciseForAI] = {}
        for item in items:
            exercise = ExerciseForAI.from_api(item)
            if exercise.id and exercise.id not in unique:
                unique[exercise.id] = exercise
        return list(unique.values())[:limit]


def group_exercises_by_muscle(exercises: List[ExerciseForAI]) -> Dict[str, List[ExerciseForAI]]:
    """Group by target muscle, then by body part; insertion order preserved."""
    grouped: Dict[str, List[ExerciseForAI]] = {}
    for exercise in exercises:
        for group in exercise.target_muscles + exercise.body_parts:
            bucket = grouped.setdefault(group, [])
            if all(existing.id != exercise.id for existing in bucket):
                bucket.append(exercise)
    return grouped


def format_exercises_for_ai(exercises: List[ExerciseForAI]) -> str:
    grouped = group_exercises_by_muscle(exercises)

    lines = ["**Available Exercises from ExerciseDB:**", ""]
    for group, members in list(grouped.items())[:MAX_PROMPT_GROUPS]:
        lines.append(f"{group.upper()}:")
        for ex in members[:MAX_PROMPT_EXERCISES_PER_GROUP]:
            lines.append(f"- ID: {ex.id} | {ex.name} | Equipment: {', '.join(ex.equipment)}")
        lines.append("")

    lines.append(
        '**IMPORTANT**: Use the exercise ID from the list above (e.g. "exerciseId": "0001"). '
        'If nothing suitable is listed, create a custom exercise with "exerciseId": null and a descriptive name.'
    )
    return "\n".join(lines)


SAMPLE_EXERCISES: Dict[str, List[ExerciseForAI]] = {
    "chest": [
        ExerciseForAI("0001", "Barbell Bench Press", ["barbell", "bench"]),
        ExerciseForAI("0072", "Dumbbell Fly", ["dumbbells", "bench"]),
        ExerciseForAI("0662", "Push-ups", ["bodyweight"]),
    ],
    "back": [
        ExerciseForAI("0027", "Barbell Bent Over Row", ["barbell"]),
        ExerciseForAI("0194", "Pull-ups", ["pull-up bar"]),
        ExerciseForAI("0329", "Dumbbell Row", ["dumbbells", "bench"]),
    ],
    "legs": [
        ExerciseForAI("0043", "Barbell Squat", ["barbell", "squat rack"]),
        ExerciseForAI("0355", "Dumbbell Lunges", ["dumbbells"]),
        ExerciseForAI("0589", "Bodyweight Squats", ["bodyweight"]),
    ],
    "shoulders": [
        ExerciseForAI("0089", "Barbell Overhead Press", ["barbell"]),
        ExerciseForAI("0293", "Dumbbell Lateral Raise", ["dumbbells"]),
        ExerciseForAI("0434", "Pike Push-ups", ["bodyweight"]),
    ],
    "arms": [
        ExerciseForAI("0134", "Barbell Curl", ["barbell"]),
        ExerciseForAI("0229", "Dumbbell Hammer Curl", ["dumbbells"]),
        ExerciseForAI("0543", "Diamond Push-ups", ["bodyweight"]),
    ],
}


def get_sample_exercises_by_category() -> str:
    """Embedded list used when the catalog cannot be reached."""
    lines = ["**Sample Exercises by Category** (use these IDs or similar):", ""]
    for category, members in SAMPLE_EXERCISES.items():
        lines.append(f"{category.upper()}:")
        for ex in members:
            lines.append(f"- ID: {ex.id} | {ex.name} | Equipment: {', '.join(ex.equipment)}")
        lines.append("")
    lines.append(
        'Reference exercises by their ID (e.g. "exerciseId": "0001"). '
        'If no suitable ID exists, set "exerciseId": null and give a descriptive "name".'
    )
    return "\n".join(lines)
