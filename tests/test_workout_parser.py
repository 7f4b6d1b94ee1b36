import os
import sys
import json

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from workout_parser import (
    WorkoutParseError,
    extract_workout_json,
    parse_workout_plan,
    repair_json,
    validate_ai_response,
)

FULL = {
    "title": "Push Day",
    "exercises": [
        {"name": "Bench Press", "sets": [{"reps": 8, "weight": 135}, {"reps": "6", "weight": "155"}]},
        {"name": "Dips", "sets": [{"reps": "12"}], "isMaxLift": True},
    ],
}


def test_full_schema():
    plan = parse_workout_plan(json.dumps(FULL))
    assert plan.title == "Push Day"
    assert plan.duration == 45
    assert plan.notes == ""
    assert plan.exercises[0].sets[0].reps == "8"
    assert plan.exercises[0].sets[0].weight == "135"
    assert plan.exercises[1].sets[0].weight == ""
    assert plan.exercises[1].is_max_lift is True


def test_simple_list_schema():
    plan = parse_workout_plan(
        [{"exercise": "Squat", "reps": 5, "sets": 3, "weight": 225}, {"exercise": "Lunge", "reps": "10", "sets": "2"}]
    )
    assert plan.title == "AI Generated Workout"
    assert [e.name for e in plan.exercises] == ["Squat", "Lunge"]
    assert len(plan.exercises[0].sets) == 3
    assert plan.exercises[0].sets[2].weight == "225"
    assert len(plan.exercises[1].sets) == 2


def test_simple_object_schema_with_title():
    plan = parse_workout_plan({"title": "Legs", "exercises": [{"exercise": "Squat", "reps": 5, "sets": 1}]})
    assert plan.title == "Legs"
    assert plan.exercises[0].sets[0].reps == "5"


def test_repair_on_parse_failure():
    raw = "{title: 'Leg Day', exercises: [{name: 'Squat', sets: [{reps: 5},]},]}"
    plan = parse_workout_plan(raw)
    assert plan.title == "Leg Day"
    assert plan.exercises[0].sets[0].reps == "5"


def test_repair_closes_brackets():
    assert json.loads(repair_json('{"a": [1, 2]')) == {"a": [1, 2]}
    assert json.loads(repair_json("[1, [2, 3")) == [1, [2, 3]]


def test_invalid_formats():
    with pytest.raises(WorkoutParseError):
        parse_workout_plan("definitely not json")
    with pytest.raises(WorkoutParseError):
        parse_workout_plan({"title": "", "exercises": []})
    with pytest.raises(WorkoutParseError):
        parse_workout_plan({"title": "X", "exercises": [{"name": "Squat", "sets": []}]})


def test_blank_text_fields_are_rejected():
    with pytest.raises(WorkoutParseError):
        parse_workout_plan({"title": "   ", "exercises": [{"name": "Squat", "sets": [{"reps": "5"}]}]})
    with pytest.raises(WorkoutParseError):
        parse_workout_plan({"title": "Legs", "exercises": [{"name": "Squat", "sets": [{"reps": " "}]}]})
    with pytest.raises(WorkoutParseError):
        parse_workout_plan([{"exercise": "Squat", "reps": " ", "sets": 3}])
    plan = parse_workout_plan(
        {"title": "  Legs ", "exercises": [{"name": " Squat", "sets": [{"reps": " 5 "}]}]}
    )
    assert plan.title == "Legs"
    assert plan.exercises[0].name == "Squat"
    assert plan.exercises[0].sets[0].reps == "5"


def test_extract_from_code_block():
    message = "Here you go:\n```json\n" + json.dumps(FULL) + "\n```\nEnjoy!"
    assert json.loads(extract_workout_json(message)) == FULL


def test_extract_from_prose_by_position():
    body = json.dumps(FULL)
    message = f"Try this {body} today"
    assert json.loads(extract_workout_json(message)) == FULL


def test_extract_skips_plain_chat():
    assert extract_workout_json("Hello there, how are you?") is None
    assert extract_workout_json("Rest well after your workout.") is None


def test_validate_ai_response():
    ok = validate_ai_response("```\n" + json.dumps(FULL) + "\n```")
    assert ok.is_valid
    assert ok.workout.title == "Push Day"
    missing = validate_ai_response("Rest well after your workout.")
    assert not missing.is_valid
    assert missing.error == "No valid JSON found in AI response"
    wrong = validate_ai_response(42)
    assert not wrong.is_valid
    assert "Expected string" in wrong.error
    bad = validate_ai_response('Workout: {"foo": 1}')
    assert not bad.is_valid
    assert "Invalid workout format" in bad.error
