from __future__ import annotations
import logging
import re
from collections import Counter
from typing import Iterable

from exercise_search_service import ExerciseSearchService, ExerciseSearchFilters

logger = logging.getLogger(__name__)


class LibraryNotInitialized(ValueError):
    """Raised when the exercise library holds no exercises."""


RECOMMENDED_CATEGORY_ORDER = ["strength", "olympic weightlifting", "strongman", "plyometrics"]

DIFFICULTY_CATEGORY_ORDER = {
    "beginner": ["strength", "cardio", "stretching"],
    "intermediate": ["strength", "plyometrics", "strongman", "cardio"],
    "advanced": ["olympic weightlifting", "strongman", "plyometrics", "strength"],
}

DIFFICULTY_PRESCRIPTION = {
    "beginner": {"sets": 2, "reps": 10, "rest": 90},
    "intermediate": {"sets": 3, "reps": 12, "rest": 75},
    "advanced": {"sets": 4, "reps": 15, "rest": 60},
}

OPPOSING_MUSCLES = {
    "pectorals": ["latissimus dorsi", "rhomboids"],
    "latissimus dorsi": ["pectorals"],
    "biceps": ["triceps"],
    "triceps": ["biceps"],
    "quadriceps": ["hamstrings"],
    "hamstrings": ["quadriceps"],
    "abdominals": ["erector spinae"],
    "erector spinae": ["abdominals"],
}

CATEGORY_DESCRIPTIONS = {
    "strength": "Build muscle and increase strength with resistance training exercises",
    "cardio": "Improve cardiovascular health and endurance with aerobic exercises",
    "olympic weightlifting": "Master advanced weightlifting techniques like snatch and clean & jerk",
    "plyometrics": "Develop explosive power and speed with jump training",
    "strongman": "Build functional strength with real-world movement patterns",
    "stretching": "Improve flexibility and mobility with stretching exercises",
    "calisthenics": "Master bodyweight movements and functional fitness",
}
DEFAULT_CATEGORY_DESCRIPTION = "Various exercises for fitness and health"

COMMON_EQUIPMENT = {"barbell", "dumbbell", "none"}
MAJOR_MUSCLES = {"chest", "shoulders", "biceps", "triceps", "quads", "hamstrings"}


def _rank(category: str, order: list[str]) -> int:
    return order.index(category) if category in order else len(order)


def category_description(category: str) -> str:
    return CATEGORY_DESCRIPTIONS.get(category.lower(), DEFAULT_CATEGORY_DESCRIPTION)


def popularity_score(exercise: dict) -> int:
    """Score an exercise by category, common equipment and major muscles."""
    score = 0
    if exercise.get("category") == "strength":
        score += 3
    if any(e in COMMON_EQUIPMENT for e in exercise.get("equipment") or []):
        score += 2
    if any(m in MAJOR_MUSCLES for m in exercise.get("primary_muscles") or []):
        score += 1
    return score


class ExerciseLibrary:
    """Higher level exercise selection built on the search service."""

    def __init__(self, search: ExerciseSearchService) -> None:
        self.search = search
        self._initialized = False

    def initialize(self) -> None:
        if not self.search.has_exercises():
            raise LibraryNotInitialized(
                "exercise library is empty; import exercises first"
            )
        self._initialized = True
        logger.info("exercise library initialized")

    def is_initialized(self) -> bool:
        return self._initialized

    def get_exercise_by_name(self, name: str) -> dict | None:
        result = self.search.search(ExerciseSearchFilters(search_term=name, page_size=1))
        for exercise in result.data:
            if exercise["name"].lower() == name.lower():
                return exercise
        return None

    def get_recommended_exercises(
        self, max_lifts: Iterable[dict], target_muscles: list[str] | None = None
    ) -> list[dict]:
        """Suggest strength-first exercises not yet tracked as max lifts."""
        known = {lift["exercise_name"].lower() for lift in max_lifts}
        filters = ExerciseSearchFilters(page_size=50)
        if target_muscles:
            filters.primary_muscle = target_muscles[0]
        result = self.search.search(filters)
        fresh = [e for e in result.data if e["name"].lower() not in known]
        fresh.sort(key=lambda e: _rank(e.get("category", ""), RECOMMENDED_CATEGORY_ORDER))
        return fresh[:20]

    def get_complementary_exercises(self, exercise: dict) -> list[dict]:
        similar = self.search.get_similar_exercises(exercise["id"], max_results=10)
        own = exercise.get("primary_muscles") or []
        result = []
        for candidate in similar:
            if candidate["id"] == exercise["id"]:
                continue
            theirs = candidate.get("primary_muscles") or []
            same = any(m in own for m in theirs)
            opposing = any(
                opp in theirs for m in own for opp in OPPOSING_MUSCLES.get(m, [])
            )
            if same or opposing:
                result.append(candidate)
        return result[:10]

    def create_workout(
        self,
        target_muscles: list[str],
        available_equipment: Iterable[str] = (),
        difficulty: str = "intermediate",
        duration: int = 60,
    ) -> list[dict]:
        """Build a generated workout sized by ``duration`` in minutes."""
        if difficulty not in DIFFICULTY_PRESCRIPTION:
            raise ValueError("difficulty must be beginner, intermediate or advanced")
        filters = ExerciseSearchFilters(
            equipment=list(available_equipment),
            primary_muscle=target_muscles[0] if target_muscles else None,
        )
        exercises = list(self.search.search(filters).data)
        order = DIFFICULTY_CATEGORY_ORDER[difficulty]
        exercises.sort(key=lambda e: _rank(e.get("category", ""), order))
        count = min(duration // 10, len(exercises), 8)
        prescription = DIFFICULTY_PRESCRIPTION[difficulty]
        return [
            {
                "exercise": exercise,
                "sets": prescription["sets"],
                "reps": prescription["reps"],
                "rest": prescription["rest"],
                "notes": f"{difficulty} level workout",
            }
            for exercise in exercises[: max(count, 0)]
        ]

    def get_exercise_variations(self, name: str) -> list[dict]:
        base = self.get_exercise_by_name(name)
        if base is None:
            return []
        first_word = name.lower().split(" ")[0]
        result = self.search.search(ExerciseSearchFilters(search_term=first_word))
        lowered = name.lower()
        variations = [
            e
            for e in result.data
            if e["id"] != base["id"]
            and (
                first_word in e["name"].lower()
                or lowered in (e.get("variation_on") or [])
                or e["name"].lower() in (base.get("variation_on") or [])
            )
        ]
        return variations[:10]

    def get_library_stats(self) -> dict:
        exercises = self.search.library.fetch_all_exercises()
        by_category = Counter(e.get("category") for e in exercises if e.get("category"))
        by_equipment = Counter(eq for e in exercises for eq in e.get("equipment") or [])
        metadata = self.search.get_metadata()
        if metadata:
            return {
                "total_exercises": metadata["total_exercises"],
                "categories_count": len(metadata["categories"]),
                "equipment_count": len(metadata["equipment"]),
                "muscle_groups_count": len(metadata["muscles"]),
                "exercises_by_category": dict(by_category),
                "exercises_by_equipment": dict(by_equipment),
            }
        return {
            "total_exercises": len(exercises),
            "categories_count": len(self.search.get_categories()),
            "equipment_count": len(self.search.get_equipment()),
            "muscle_groups_count": len(self.search.get_muscle_groups()),
            "exercises_by_category": dict(by_category),
            "exercises_by_equipment": dict(by_equipment),
        }

    def get_enhanced_stats(self) -> dict:
        metadata = self.search.get_metadata()
        categories = self.search.get_categories()
        return {
            "total_exercises": (metadata or {}).get("total_exercises", 0),
            "categories_count": len(categories),
            "equipment_types": self.search.get_equipment(),
            "muscle_groups": self.search.get_muscle_groups(),
        }

    def get_exercises_by_categories(self) -> list[dict]:
        groups = []
        for category in self.search.get_categories():
            exercises = sorted(
                self.search.get_exercises_by_category(category).data,
                key=lambda e: e["name"].lower(),
            )
            groups.append(
                {
                    "id": re.sub(r"\s+", "_", category.lower()),
                    "name": category,
                    "description": category_description(category),
                    "exercises": exercises,
                    "exercise_count": len(exercises),
                }
            )
        return sorted(groups, key=lambda g: g["name"].lower())

    def get_popular_exercises(self, limit: int = 10) -> list[dict]:
        return self.search.get_popular_exercises(limit)
