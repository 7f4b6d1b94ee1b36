from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional

from db import ExerciseLibraryRepository, ExerciseQuery

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MIN_WIDE_PAGE_SIZE = 50
ARRAY_FILTERS = ("equipment", "primary_muscle", "secondary_muscle", "search_term")


@dataclass
class ExerciseSearchFilters:
    category: Optional[str] = None
    equipment: list[str] = field(default_factory=list)
    primary_muscle: Optional[str] = None
    secondary_muscle: Optional[str] = None
    search_term: Optional[str] = None
    difficulty: Optional[str] = None
    page_size: int = DEFAULT_PAGE_SIZE
    cursor: Optional[tuple[str, str]] = None
    sort_by: str = "name"
    sort_direction: str = "asc"

    def active_array_filters(self) -> list[str]:
        """Return present array-style filters in priority order."""
        present = []
        if self.equipment:
            present.append("equipment")
        if self.primary_muscle:
            present.append("primary_muscle")
        if self.secondary_muscle:
            present.append("secondary_muscle")
        if self.search_term and self.search_term.strip():
            present.append("search_term")
        return present


@dataclass
class SearchPlan:
    strategy: str
    query: ExerciseQuery
    backend_filter: Optional[str]
    memory_filters: list[str]
    fetch_size: int
    page_size: int

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "backend_filter": self.backend_filter,
            "memory_filters": self.memory_filters,
            "fetch_size": self.fetch_size,
            "page_size": self.page_size,
            "query": self.query.describe(),
        }


@dataclass
class PaginatedResult:
    data: list[dict]
    cursor: Optional[tuple[str, str]]
    has_more: bool

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "cursor": list(self.cursor) if self.cursor else None,
            "has_more": self.has_more,
        }


def matches_term(exercise: dict, term: str) -> bool:
    """Case-insensitive substring match over name, category, muscles and equipment."""
    term = term.lower().strip()
    if not term:
        return True
    if term in (exercise.get("name") or "").lower():
        return True
    if term in (exercise.get("category") or "").lower():
        return True
    muscles = (exercise.get("primary_muscles") or []) + (
        exercise.get("secondary_muscles") or []
    )
    if any(term in m.lower() for m in muscles):
        return True
    return any(term in e.lower() for e in exercise.get("equipment") or [])


class ExerciseSearchService:
    """Plan and run library searches within the one-array-filter restriction."""

    def __init__(self, library_repo: ExerciseLibraryRepository) -> None:
        self.library = library_repo
        self._metadata: dict | None = None
        self._categories: list[str] | None = None
        self._equipment: list[str] | None = None
        self._muscles: list[str] | None = None

    @staticmethod
    def _apply_array_filter(
        query: ExerciseQuery, filters: ExerciseSearchFilters, name: str
    ) -> None:
        if name == "equipment":
            if len(filters.equipment) == 1:
                query.where_array_contains("equipment", filters.equipment[0])
            else:
                query.where_array_contains_any(
                    "equipment", filters.equipment[: ExerciseQuery.MAX_DISJUNCTION]
                )
        elif name == "primary_muscle":
            query.where_array_contains("primary_muscles", filters.primary_muscle)
        elif name == "secondary_muscle":
            query.where_array_contains("secondary_muscles", filters.secondary_muscle)
        elif name == "search_term":
            query.where_array_contains(
                "search_keywords", filters.search_term.strip().lower()
            )

    def plan(self, filters: ExerciseSearchFilters) -> SearchPlan:
        """Choose the backend query and the filters left for in-memory matching."""
        page_size = filters.page_size or DEFAULT_PAGE_SIZE
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        active = filters.active_array_filters()
        query = ExerciseQuery()
        backend = active[0] if active else None
        if backend:
            self._apply_array_filter(query, filters, backend)
        if filters.category:
            query.where_equal("category", filters.category)

        if len(active) <= 1:
            if filters.difficulty:
                query.where_equal("difficulty", filters.difficulty)
            strategy = "single"
            memory: list[str] = []
            fetch_size = page_size
        else:
            strategy = "multi"
            memory = active[1:]
            if filters.difficulty:
                memory.append("difficulty")
            fetch_size = max(page_size, MIN_WIDE_PAGE_SIZE)

        query.order_by(filters.sort_by or "name", filters.sort_direction or "asc")
        query.limit(fetch_size)
        if filters.cursor:
            query.start_after(filters.cursor)
        return SearchPlan(strategy, query, backend, memory, fetch_size, page_size)

    @staticmethod
    def _matches(exercise: dict, filters: ExerciseSearchFilters, names: list[str]) -> bool:
        for name in names:
            if name == "equipment":
                if not set(filters.equipment) & set(exercise.get("equipment") or []):
                    return False
            elif name == "primary_muscle":
                if filters.primary_muscle not in (exercise.get("primary_muscles") or []):
                    return False
            elif name == "secondary_muscle":
                if filters.secondary_muscle not in (
                    exercise.get("secondary_muscles") or []
                ):
                    return False
            elif name == "search_term":
                if not matches_term(exercise, filters.search_term):
                    return False
            elif name == "difficulty":
                if exercise.get("difficulty") != filters.difficulty:
                    return False
        return True

    def search(self, filters: ExerciseSearchFilters | None = None) -> PaginatedResult:
        filters = filters or ExerciseSearchFilters()
        plan = self.plan(filters)
        logger.debug(
            "library search strategy=%s backend=%s memory=%s",
            plan.strategy,
            plan.backend_filter,
            plan.memory_filters,
        )
        docs = self.library.run(plan.query)
        last = docs[-1] if docs else None
        cursor = (last.get(plan.query.order_field) or "", last["id"]) if last else None
        has_more = len(docs) == plan.fetch_size
        if plan.strategy == "single":
            return PaginatedResult(docs, cursor, has_more)
        matched = [d for d in docs if self._matches(d, filters, plan.memory_filters)]
        return PaginatedResult(matched, cursor, has_more)

    def get_metadata(self) -> dict | None:
        if self._metadata is None:
            self._metadata = self.library.fetch_metadata()
        return self._metadata

    def _from_metadata(self, key: str, fallback) -> list[str]:
        metadata = self.get_metadata()
        if metadata and metadata.get(key):
            return list(metadata[key])
        logger.info("library metadata missing %s, scanning exercises", key)
        return fallback()

    def get_categories(self) -> list[str]:
        if self._categories is None:
            self._categories = self._from_metadata(
                "categories", lambda: self.library.distinct("category")
            )
        return self._categories

    def get_equipment(self) -> list[str]:
        if self._equipment is None:
            self._equipment = self._from_metadata(
                "equipment", lambda: self.library.distinct("equipment")
            )
        return self._equipment

    def get_muscle_groups(self) -> list[str]:
        if self._muscles is None:
            self._muscles = self._from_metadata(
                "muscles",
                lambda: sorted(
                    set(self.library.distinct("primary_muscles"))
                    | set(self.library.distinct("secondary_muscles"))
                ),
            )
        return self._muscles

    def get_exercise_by_id(self, exercise_id: str) -> dict | None:
        return self.library.fetch(exercise_id)

    def get_exercises_by_category(self, category: str, page_size: int = 20) -> PaginatedResult:
        return self.search(ExerciseSearchFilters(category=category, page_size=page_size))

    def get_exercises_by_muscle(self, muscle: str, page_size: int = 20) -> PaginatedResult:
        return self.search(ExerciseSearchFilters(primary_muscle=muscle, page_size=page_size))

    def get_exercises_by_equipment(
        self, equipment: str, page_size: int = 20
    ) -> PaginatedResult:
        return self.search(
            ExerciseSearchFilters(equipment=[equipment], page_size=page_size)
        )

    def get_popular_exercises(self, page_size: int = 10) -> list[dict]:
        query = (
            ExerciseQuery()
            .where_in("category", ["strength", "cardio", "plyometrics"])
            .order_by("name")
            .limit(page_size)
        )
        return self.library.run(query)

    def get_similar_exercises(self, exercise_id: str, max_results: int = 5) -> list[dict]:
        exercise = self.library.fetch(exercise_id)
        muscles = (exercise or {}).get("primary_muscles") or []
        if not muscles:
            return []
        query = (
            ExerciseQuery()
            .where_array_contains_any(
                "primary_muscles", muscles[: ExerciseQuery.MAX_DISJUNCTION]
            )
            .where_not_equal("id", exercise_id)
            .order_by("name")
            .limit(max_results)
        )
        return self.library.run(query)

    def clear_cache(self) -> None:
        self._metadata = None
        self._categories = None
        self._equipment = None
        self._muscles = None

    def has_exercises(self) -> bool:
        return self.library.count() > 0
