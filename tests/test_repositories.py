import os
import sys

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    ChatMessageRepository,
    ExerciseLibraryRepository,
    MyExerciseRepository,
    SettingsRepository,
    WorkoutRepository,
    search_keywords,
    slugify,
)

DATA_FILE = os.path.join(os.path.dirname(__file__), "data", "sample_exercises.json")


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ENCRYPT_SETTINGS", raising=False)
    return str(tmp_path / "repo.db")


def test_slugify_and_keywords():
    assert slugify("Farmer's Walk") == "farmer_s_walk"
    words = search_keywords(
        {
            "name": "Back Squat",
            "category": "Strength",
            "equipment": ["Barbell"],
            "primary_muscles": ["quadriceps"],
        }
    )
    assert words == ["back", "back squat", "barbell", "quadriceps", "squat", "strength"]


class TestExerciseLibraryRepository:
    def test_import_and_metadata(self, db_file):
        repo = ExerciseLibraryRepository(db_file)
        assert repo.import_json(DATA_FILE) == 15
        assert repo.count() == 15
        metadata = repo.fetch_metadata()
        assert metadata["total_exercises"] == 15
        assert metadata["data_source"] == "sample_exercises.json"
        assert "strength" in metadata["categories"]
        assert "pectorals" in metadata["muscles"]

    def test_upsert_keeps_created_at(self, db_file):
        repo = ExerciseLibraryRepository(db_file)
        repo.upsert({"name": "Goblet Squat", "created_at": "2024-01-01T00:00:00"})
        repo.upsert({"name": "Goblet Squat", "equipment": ["kettlebell"]})
        exercise = repo.fetch("goblet_squat")
        assert exercise["created_at"] == "2024-01-01T00:00:00"
        assert exercise["equipment"] == ["kettlebell"]
        assert repo.distinct("equipment") == ["kettlebell"]
        with pytest.raises(ValueError):
            repo.upsert({"name": "  "})

    def test_delete(self, db_file):
        repo = ExerciseLibraryRepository(db_file)
        repo.upsert({"name": "Plank", "category": "core"})
        repo.delete("plank")
        assert repo.fetch("plank") is None
        assert repo.distinct("category") == []
        with pytest.raises(ValueError, match="not found"):
            repo.delete("plank")
        with pytest.raises(ValueError):
            repo.distinct("video")


class TestWorkoutRepository:
    def test_range_and_completion(self, db_file):
        repo = WorkoutRepository(db_file)
        first = repo.create("u1", "2024-05-01", "Push")
        repo.create("u1", "2024-05-03", "Pull")
        repo.create("u1", "2024-06-01", "Legs")
        repo.create("u2", "2024-05-02", "Other")
        rows = repo.fetch_for_user("u1", "2024-05-01", "2024-05-31")
        assert [r[2] for r in rows] == ["Pull", "Push"]
        assert repo.dates_in_range("u1", "2024-05-01", "2024-05-31") == [
            "2024-05-01",
            "2024-05-03",
        ]
        repo.set_completed(first, "2024-05-01T18:00:00", 50)
        detail = repo.fetch_detail(first)
        assert detail[5:] == (50, 1, "2024-05-01T18:00:00")
        with pytest.raises(ValueError, match="workout not found"):
            repo.fetch_detail(999)


class TestMyExerciseRepository:
    def test_add_list_remove(self, db_file):
        repo = MyExerciseRepository(db_file)
        repo.add("u1", {"id": "squat", "name": "squat", "category": None})
        generated = repo.add("u1", {"name": "Bench Press"})
        assert generated.startswith("exercise_")
        exercises = repo.fetch_all_exercises("u1")
        assert [e["name"] for e in exercises] == ["Bench Press", "squat"]
        assert "category" not in exercises[1]
        assert exercises[1]["equipment"] == []
        assert exercises[1]["description"] == ""
        assert repo.is_added("u1", "squat")
        assert not repo.is_added("u2", "squat")
        repo.remove("u1", "squat")
        with pytest.raises(ValueError):
            repo.remove("u1", "squat")
        with pytest.raises(ValueError):
            repo.add("u1", {"id": "x"})
        repo.clear("u1")
        assert repo.names("u1") == []


class TestChatMessageRepository:
    def test_recent_is_chronological(self, db_file):
        repo = ChatMessageRepository(db_file)
        repo.add("u1", "user", "first", "2024-05-01T10:00:00")
        repo.add("u1", "assistant", "second", "2024-05-01T10:00:05")
        repo.add("u1", "user", "third", "2024-05-01T10:01:00")
        assert [r[2] for r in repo.fetch_recent("u1", 2)] == ["second", "third"]
        assert repo.keep_latest("u1", 1) == 2
        assert repo.count("u1") == 1
        with pytest.raises(ValueError):
            repo.add("u1", "tool", "nope")


class TestSettingsRepository:
    def test_yaml_sync(self, db_file, tmp_path):
        yaml_path = tmp_path / "settings.yaml"
        yaml_path.write_text("weight_unit: lb\nrest_seconds: 120\n", encoding="utf-8")
        repo = SettingsRepository(db_file, str(yaml_path))
        assert repo.get_text("weight_unit", "kg") == "lb"
        assert repo.get_int("rest_seconds", 90) == 120
        assert repo.get_float("chat_temperature", 1.0) == pytest.approx(0.7)

        repo.set_int("chat_max_tokens", 500)
        data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        assert data["chat_max_tokens"] == 500
        assert data["weight_unit"] == "lb"

        yaml_path.write_text(
            yaml.safe_dump({**data, "weight_unit": "kg"}), encoding="utf-8"
        )
        assert repo.all_settings()["weight_unit"] == "kg"

    def test_rejects_invalid_values(self, db_file, tmp_path):
        repo = SettingsRepository(db_file, str(tmp_path / "settings.yaml"))
        with pytest.raises(ValueError):
            repo.set_text("chat_temperature", "3.5")
        with pytest.raises(ValueError, match="unknown setting"):
            repo.set_text("theme", "dark")
        assert repo.get_float("chat_temperature", 0.0) == pytest.approx(0.7)
