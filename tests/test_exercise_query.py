import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ExerciseLibraryRepository, ExerciseQuery, QueryError, search_keywords, slugify

SAMPLE = os.path.join(os.path.dirname(__file__), "data", "sample_exercises.json")


@pytest.fixture
def library(tmp_path):
    repo = ExerciseLibraryRepository(str(tmp_path / "library.db"))
    repo.import_json(SAMPLE)
    return repo


def names(rows):
    return [r["name"] for r in rows]


class TestQueryRestrictions:
    def test_second_array_filter_rejected(self):
        query = ExerciseQuery().where_array_contains("equipment", "barbell")
        with pytest.raises(QueryError):
            query.where_array_contains("primary_muscles", "pectorals")

    def test_disjunction_limit(self):
        with pytest.raises(QueryError):
            ExerciseQuery().where_array_contains_any(
                "equipment", [f"e{i}" for i in range(11)]
            )
        with pytest.raises(QueryError):
            ExerciseQuery().where_in("category", [f"c{i}" for i in range(11)])

    def test_invalid_fields_and_limits(self):
        with pytest.raises(QueryError):
            ExerciseQuery().order_by("equipment")
        with pytest.raises(QueryError):
            ExerciseQuery().order_by("name", "sideways")
        with pytest.raises(QueryError):
            ExerciseQuery().limit(0)
        with pytest.raises(QueryError):
            ExerciseQuery().where_equal("equipment", "barbell")
        with pytest.raises(QueryError):
            ExerciseQuery().where_array_contains("category", "strength")

    def test_query_error_is_value_error(self):
        assert issubclass(QueryError, ValueError)


class TestLibraryRepository:
    def test_import_counts_and_slug_ids(self, library):
        assert library.count() == 15
        bench = library.fetch("bench_press")
        assert bench["name"] == "Bench Press"
        assert bench["equipment"] == ["barbell"]
        assert "bench press" in bench["search_keywords"]
        assert library.fetch("missing") is None

    def test_array_contains_ordered_by_name(self, library):
        query = ExerciseQuery().where_array_contains("equipment", "barbell").order_by("name")
        assert names(library.run(query)) == [
            "Back Squat",
            "Barbell Row",
            "Bench Press",
            "Incline Bench Press",
            "Power Clean",
            "Romanian Deadlift",
        ]

    def test_cursor_pagination(self, library):
        first = library.run(
            ExerciseQuery().where_array_contains("equipment", "barbell").limit(2)
        )
        assert names(first) == ["Back Squat", "Barbell Row"]
        last = first[-1]
        second = library.run(
            ExerciseQuery()
            .where_array_contains("equipment", "barbell")
            .limit(2)
            .start_after((last["name"], last["id"]))
        )
        assert names(second) == ["Bench Press", "Incline Bench Press"]

    def test_descending_and_not_equal(self, library):
        query = (
            ExerciseQuery()
            .where_array_contains("primary_muscles", "pectorals")
            .where_not_equal("id", "bench_press")
            .order_by("name", "desc")
        )
        assert names(library.run(query)) == [
            "Push Up",
            "Incline Bench Press",
            "Dumbbell Bench Press",
        ]

    def test_array_contains_any_with_equality(self, library):
        query = (
            ExerciseQuery()
            .where_array_contains_any("equipment", ["dumbbell", "box"])
            .where_equal("category", "strength")
        )
        assert names(library.run(query)) == ["Bicep Curl", "Dumbbell Bench Press"]

    def test_upsert_keeps_created_at(self, library):
        before = library.fetch("bench_press")
        library.upsert({"id": "bench_press", "name": "Bench Press", "category": "strength", "equipment": ["barbell", "bench"]})
        after = library.fetch("bench_press")
        assert after["created_at"] == before["created_at"]
        assert after["equipment"] == ["barbell", "bench"]
        query = ExerciseQuery().where_array_contains("equipment", "bench")
        assert names(library.run(query)) == ["Bench Press"]

    def test_upsert_requires_name(self, library):
        with pytest.raises(ValueError):
            library.upsert({"category": "strength"})

    def test_metadata_and_distinct(self, library):
        metadata = library.fetch_metadata()
        assert metadata["total_exercises"] == 15
        assert metadata["categories"] == [
            "calisthenics",
            "cardio",
            "olympic weightlifting",
            "plyometrics",
            "strength",
            "strongman",
            "stretching",
        ]
        assert "barbell" in metadata["equipment"]
        assert "glutes" in metadata["muscles"]
        assert metadata["data_source"] == "sample_exercises.json"

    def test_delete(self, library):
        library.delete("push_up")
        assert library.fetch("push_up") is None
        query = ExerciseQuery().where_array_contains("equipment", "none")
        assert names(library.run(query)) == ["Hamstring Stretch"]
        with pytest.raises(ValueError, match="not found"):
            library.delete("push_up")
        library.delete_all()
        assert library.count() == 0
        assert library.fetch_metadata() is None


def test_keywords_and_slug():
    keywords = search_keywords(
        {"name": "Incline Bench Press", "category": "Strength", "equipment": ["Barbell"], "primary_muscles": ["pectorals"]}
    )
    assert "incline bench press" in keywords
    assert "bench" in keywords
    assert "strength" in keywords
    assert "barbell" in keywords
    assert slugify("Farmer's Walk (Heavy)") == "farmer_s_walk_heavy"
