"""Parse AI generated workout plans into validated models.

Assistant replies carry a workout either in the full format::

    {"title": "...", "exercises": [{"name": "...", "sets": [{"reps": "10"}]}]}

or a simpler list of ``{"exercise", "reps", "sets", "weight"}`` rows. Both
are normalized to :class:`WorkoutPlan`. JSON embedded in chat text is found
by :func:`extract_workout_json`, and common formatting slips are fixed by
:func:`repair_json`.
"""

from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "AI Generated Workout"
DEFAULT_DURATION = 45


class WorkoutParseError(ValueError):
    """Raised when text cannot be turned into a workout plan."""


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        raise ValueError("expected string or number")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float, str)):
        return str(value)
    raise ValueError("expected string or number")


class PlanSet(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    reps: str = Field(min_length=1)
    weight: str = ""
    notes: str = ""

    @field_validator("reps", mode="before")
    @classmethod
    def _reps_text(cls, v):
        return _as_text(v)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_text(cls, v):
        return _as_text(v) if v else ""

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, v):
        return v or ""


class PlanExercise(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(min_length=1)
    sets: list[PlanSet] = Field(min_length=1)
    notes: str = ""
    is_max_lift: bool = Field(False, alias="isMaxLift")

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, v):
        return v or ""


class WorkoutPlan(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1)
    exercises: list[PlanExercise] = Field(min_length=1)
    notes: str = ""
    duration: int = DEFAULT_DURATION

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, v):
        return v or ""

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_default(cls, v):
        return DEFAULT_DURATION if v is None else v


class SimpleExercise(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    exercise: str = Field(min_length=1)
    reps: str = Field(min_length=1)
    sets: int = Field(ge=1)
    weight: str = ""

    @field_validator("reps", mode="before")
    @classmethod
    def _reps_text(cls, v):
        return _as_text(v)

    @field_validator("sets", mode="before")
    @classmethod
    def _sets_number(cls, v):
        return int(float(_as_text(v)))

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_text(cls, v):
        return _as_text(v) if v else ""


class SimpleWorkout(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    exercises: list[SimpleExercise]
    title: Optional[str] = None


@dataclass
class ValidationResult:
    is_valid: bool
    workout: Optional[WorkoutPlan] = None
    error: Optional[str] = None


def _from_simple(obj: Any) -> WorkoutPlan:
    if isinstance(obj, list):
        simple = SimpleWorkout(exercises=obj)
    else:
        simple = SimpleWorkout.model_validate(obj)
    exercises = [
        PlanExercise(
            name=ex.exercise,
            sets=[PlanSet(reps=ex.reps, weight=ex.weight) for _ in range(ex.sets)],
        )
        for ex in simple.exercises
    ]
    return WorkoutPlan(
        title=simple.title or DEFAULT_TITLE,
        exercises=exercises,
        notes="",
        duration=DEFAULT_DURATION,
    )


def parse_workout_plan(raw: Any) -> WorkoutPlan:
    """Validate ``raw`` (JSON text or decoded object) as a workout plan."""
    if isinstance(raw, str):
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as parse_error:
            logger.warning("workout JSON invalid, attempting repair")
            try:
                obj = json.loads(repair_json(raw))
            except json.JSONDecodeError as repair_error:
                raise WorkoutParseError(
                    f"Invalid workout format: JSON Parse error: {parse_error}. "
                    f"Repair failed: {repair_error}"
                )
    else:
        obj = raw

    try:
        return WorkoutPlan.model_validate(obj)
    except ValidationError as full_error:
        try:
            return _from_simple(obj)
        except (ValidationError, ValueError, TypeError) as simple_error:
            logger.warning("workout plan matched neither format")
            raise WorkoutParseError(
                f"Invalid workout format. Full schema: {full_error}. "
                f"Simple schema: {simple_error}"
            )


WORKOUT_INDICATORS = [
    "json",
    "workout",
    "exercise",
    "title",
    "sets",
    "reps",
    "weight",
    "{",
    "[",
    "bench press",
    "squat",
    "deadlift",
    "workout plan",
    "exercises",
    '"name":',
    '"title":',
]

CODE_BLOCK_PATTERNS = [
    re.compile(r"```json\s*([\s\S]*?)\s*```"),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
    re.compile(r"`([^`]+)`"),
]

JSON_PATTERNS = [
    re.compile(r'(\{[^{}]*"exercises"[^{}]*\})', re.S),
    re.compile(r"(\{[\s\S]*?\})"),
    re.compile(r"(\[[\s\S]*?\])"),
]


def is_json_structure(text: str) -> bool:
    trimmed = text.strip()
    if not trimmed or trimmed[0] not in "{[":
        return False
    try:
        json.loads(trimmed)
    except json.JSONDecodeError:
        return False
    return True


def repair_json(text: str) -> str:
    """Fix trailing commas, bare keys, single quotes and unclosed brackets."""
    repaired = text.strip()
    repaired = re.sub(r",(\s*[}\]])", r"\1", repaired)
    repaired = re.sub(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)\s*:", r'\1"\2":', repaired)
    repaired = repaired.replace("'", '"')
    if repaired.startswith("{") and not repaired.endswith("}"):
        repaired += "}" * max(repaired.count("{") - repaired.count("}"), 0)
    if repaired.startswith("[") and not repaired.endswith("]"):
        repaired += "]" * max(repaired.count("[") - repaired.count("]"), 0)
    return repaired


def _usable(candidate: str) -> Optional[str]:
    if is_json_structure(candidate):
        return candidate.strip()
    repaired = repair_json(candidate)
    if is_json_structure(repaired):
        return repaired
    return None


def extract_workout_json(message: str) -> Optional[str]:
    """Return the first JSON object or array found in a chat message."""
    lowered = message.lower()
    if not any(indicator in lowered for indicator in WORKOUT_INDICATORS):
        return None

    for pattern in CODE_BLOCK_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1):
            found = _usable(match.group(1).strip())
            if found:
                return found

    for pattern in JSON_PATTERNS:
        match = pattern.search(message)
        if match:
            found = _usable(match.group(1))
            if found:
                return found

    obj_start, obj_end = message.find("{"), message.rfind("}")
    if obj_start >= 0 and obj_end > obj_start:
        found = _usable(message[obj_start : obj_end + 1])
        if found:
            return found

    arr_start, arr_end = message.find("["), message.rfind("]")
    if arr_start >= 0 and arr_end > arr_start:
        found = _usable(message[arr_start : arr_end + 1])
        if found:
            return found
    return None


def validate_ai_response(response: Any) -> ValidationResult:
    if not isinstance(response, str):
        return ValidationResult(
            False, error=f"Expected string response but received {type(response).__name__}"
        )
    extracted = extract_workout_json(response)
    if not extracted:
        return ValidationResult(False, error="No valid JSON found in AI response")
    try:
        workout = parse_workout_plan(extracted)
    except WorkoutParseError as e:
        return ValidationResult(False, error=str(e))
    return ValidationResult(True, workout=workout)
