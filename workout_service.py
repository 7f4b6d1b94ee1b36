from __future__ import annotations
import datetime
import logging
import uuid
from dataclasses import dataclass, field, asdict
from typing import Optional

from db import (
    WorkoutRepository,
    WorkoutExerciseRepository,
    WorkoutSetRepository,
    MaxLiftRepository,
    TemplateWorkoutRepository,
    TemplateExerciseRepository,
    TemplateSetRepository,
)
from algorithms.math_tools import MathTools
from algorithms.calendar_tools import month_bounds
from workout_parser import WorkoutPlan

logger = logging.getLogger(__name__)

DEFAULT_REPS = "10"


class WorkoutValidationError(ValueError):
    """Raised when a workout cannot be saved as entered."""


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class ExerciseSet:
    id: str = field(default_factory=_new_id)
    reps: str = DEFAULT_REPS
    weight: str = ""
    notes: str = ""


@dataclass
class WorkoutExercise:
    id: str = field(default_factory=_new_id)
    name: str = ""
    sets: list[ExerciseSet] = field(default_factory=lambda: [ExerciseSet()])
    notes: str = ""
    is_max_lift: bool = False
    library_exercise_id: Optional[str] = None


@dataclass
class Workout:
    user_id: str
    date: str
    title: str = ""
    exercises: list[WorkoutExercise] = field(default_factory=list)
    notes: str = ""
    duration: Optional[int] = None
    is_completed: bool = False
    completed_at: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Workout":
        exercises = []
        for ex in data.get("exercises") or []:
            sets = [
                ExerciseSet(
                    id=str(s.get("id") or _new_id()),
                    reps=str(s.get("reps") if s.get("reps") is not None else DEFAULT_REPS),
                    weight=str(s.get("weight") if s.get("weight") is not None else ""),
                    notes=s.get("notes") or "",
                )
                for s in ex.get("sets") or []
            ]
            exercises.append(
                WorkoutExercise(
                    id=str(ex.get("id") or _new_id()),
                    name=ex.get("name") or "",
                    sets=sets,
                    notes=ex.get("notes") or "",
                    is_max_lift=bool(ex.get("is_max_lift")),
                    library_exercise_id=ex.get("library_exercise_id"),
                )
            )
        return cls(
            id=data.get("id"),
            user_id=data["user_id"],
            date=data["date"],
            title=data.get("title") or "",
            exercises=exercises,
            notes=data.get("notes") or "",
            duration=data.get("duration"),
            is_completed=bool(data.get("is_completed")),
            completed_at=data.get("completed_at"),
        )


class WorkoutEditor:
    """In-memory editing of a workout before it is saved."""

    def __init__(
        self,
        workout: Workout | None = None,
        user_id: str = "",
        date: str | None = None,
    ) -> None:
        self.workout = workout or Workout(
            user_id=user_id, date=date or datetime.date.today().isoformat()
        )

    def _exercise(self, index: int) -> WorkoutExercise:
        if not 0 <= index < len(self.workout.exercises):
            raise ValueError("exercise not found")
        return self.workout.exercises[index]

    def _set(self, index: int, set_index: int) -> ExerciseSet:
        exercise = self._exercise(index)
        if not 0 <= set_index < len(exercise.sets):
            raise ValueError("set not found")
        return exercise.sets[set_index]

    def add_exercise(self, name: str = "") -> WorkoutExercise:
        exercise = WorkoutExercise(name=name)
        self.workout.exercises.append(exercise)
        return exercise

    def add_exercise_from_library(self, exercise: dict) -> WorkoutExercise:
        added = WorkoutExercise(name=exercise["name"], library_exercise_id=exercise.get("id"))
        self.workout.exercises.append(added)
        return added

    def remove_exercise(self, index: int) -> None:
        self._exercise(index)
        del self.workout.exercises[index]

    def update_exercise(
        self,
        index: int,
        name: str | None = None,
        notes: str | None = None,
        is_max_lift: bool | None = None,
    ) -> WorkoutExercise:
        exercise = self._exercise(index)
        if name is not None:
            exercise.name = name
        if notes is not None:
            exercise.notes = notes
        if is_max_lift is not None:
            exercise.is_max_lift = is_max_lift
        return exercise

    def add_set(self, index: int) -> ExerciseSet:
        new_set = ExerciseSet()
        self._exercise(index).sets.append(new_set)
        return new_set

    def remove_set(self, index: int, set_index: int) -> bool:
        """Remove a set unless it is the exercise's last one; return whether it went."""
        exercise = self._exercise(index)
        self._set(index, set_index)
        if len(exercise.sets) <= 1:
            return False
        del exercise.sets[set_index]
        return True

    def update_set(
        self,
        index: int,
        set_index: int,
        reps: str | None = None,
        weight: str | None = None,
        notes: str | None = None,
    ) -> ExerciseSet:
        target = self._set(index, set_index)
        if reps is not None:
            target.reps = str(reps)
        if weight is not None:
            target.weight = str(weight)
        if notes is not None:
            target.notes = notes
        return target

    def total_sets(self) -> int:
        return sum(len(e.sets) for e in self.workout.exercises)

    def validate(self) -> None:
        validate_workout(self.workout)


def validate_workout(workout: Workout) -> None:
    if not workout.title.strip():
        raise WorkoutValidationError("Please enter a workout title")
    if not workout.exercises:
        raise WorkoutValidationError("Please add at least one exercise")
    if any(not e.name.strip() for e in workout.exercises):
        raise WorkoutValidationError("Please fill in all exercise names")
    if any(not e.sets for e in workout.exercises):
        raise WorkoutValidationError("Please add at least one set to every exercise")
    if any(not str(s.reps).strip() for e in workout.exercises for s in e.sets):
        raise WorkoutValidationError("Please fill in reps for every set")


def heaviest_set(exercise: WorkoutExercise) -> ExerciseSet | None:
    """Return the first set with the largest parsed weight."""
    best = None
    best_weight = 0.0
    for s in exercise.sets:
        weight = MathTools.parse_number(s.weight) or 0.0
        if best is None or weight > best_weight:
            best = s
            best_weight = weight
    return best


class WorkoutService:
    """Persist workouts, max lifts and favorite templates."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        exercise_repo: WorkoutExerciseRepository,
        set_repo: WorkoutSetRepository,
        max_lift_repo: MaxLiftRepository,
        template_repo: TemplateWorkoutRepository,
        template_exercise_repo: TemplateExerciseRepository,
        template_set_repo: TemplateSetRepository,
    ) -> None:
        self.workouts = workout_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.max_lifts = max_lift_repo
        self.templates = template_repo
        self.template_exercises = template_exercise_repo
        self.template_sets = template_set_repo

    def _write_exercises(self, workout_id: int, workout: Workout) -> None:
        for pos, exercise in enumerate(workout.exercises):
            ex_id = self.exercises.add(
                workout_id,
                pos,
                exercise.name.strip(),
                exercise.notes or None,
                exercise.is_max_lift,
                exercise.library_exercise_id,
            )
            for set_pos, s in enumerate(exercise.sets):
                self.sets.add(ex_id, set_pos, str(s.reps).strip(), s.weight or None, s.notes or None)

    def save(self, workout: Workout) -> int:
        """Create or replace a workout and return its id."""
        validate_workout(workout)
        if workout.id is None:
            workout.id = self.workouts.create(
                workout.user_id,
                workout.date,
                workout.title.strip(),
                workout.notes or None,
                workout.duration,
                workout.is_completed,
                workout.completed_at,
            )
        else:
            self.workouts.update(
                workout.id,
                workout.date,
                workout.title.strip(),
                workout.notes or None,
                workout.duration,
            )
            self.exercises.delete_for_workout(workout.id)
        self._write_exercises(workout.id, workout)
        logger.info("saved workout %s for %s", workout.id, workout.user_id)
        return workout.id

    def get(self, workout_id: int) -> Workout:
        wid, user_id, date, title, notes, duration, completed, completed_at = (
            self.workouts.fetch_detail(workout_id)
        )
        exercises = []
        for ex_id, name, ex_notes, is_max, lib_id in self.exercises.fetch_for_workout(wid):
            sets = [
                ExerciseSet(id=str(sid), reps=reps, weight=weight or "", notes=s_notes or "")
                for sid, reps, weight, s_notes in self.sets.fetch_for_exercise(ex_id)
            ]
            exercises.append(
                WorkoutExercise(
                    id=str(ex_id),
                    name=name,
                    sets=sets,
                    notes=ex_notes or "",
                    is_max_lift=bool(is_max),
                    library_exercise_id=lib_id,
                )
            )
        return Workout(
            id=wid,
            user_id=user_id,
            date=date,
            title=title,
            exercises=exercises,
            notes=notes or "",
            duration=duration,
            is_completed=bool(completed),
            completed_at=completed_at,
        )

    def list_for_user(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[Workout]:
        rows = self.workouts.fetch_for_user(user_id, start_date, end_date, limit=limit)
        return [self.get(r[0]) for r in rows]

    def delete(self, workout_id: int) -> None:
        self.workouts.delete(workout_id)

    def complete(self, workout_id: int, duration: int | None = None) -> Workout:
        completed_at = datetime.datetime.now().isoformat(timespec="seconds")
        self.workouts.set_completed(workout_id, completed_at, duration)
        return self.get(workout_id)

    def workout_dates(self, user_id: str, year: int, month: int) -> list[str]:
        start, end = month_bounds(year, month)
        return self.workouts.dates_in_range(user_id, start.isoformat(), end.isoformat())

    def extract_max_lifts(self, workout: Workout) -> list[dict]:
        lifts = []
        for exercise in workout.exercises:
            if not exercise.is_max_lift or not exercise.sets:
                continue
            best = heaviest_set(exercise)
            weight = MathTools.parse_number(best.weight) if best else None
            if weight is None or weight <= 0:
                continue
            lifts.append(
                {
                    "exercise_name": exercise.name,
                    "weight": weight,
                    "reps": best.reps,
                    "date": workout.date,
                    "workout_id": workout.id,
                    "notes": exercise.notes.strip() or None,
                }
            )
        return lifts

    def save_max_lifts(self, workout: Workout) -> list[int]:
        ids = []
        for lift in self.extract_max_lifts(workout):
            ids.append(self.max_lifts.add(workout.user_id, **lift))
        return ids

    def list_max_lifts(self, user_id: str, exercise_name: str | None = None) -> list[dict]:
        return [
            {
                "id": lid,
                "exercise_name": name,
                "weight": weight,
                "reps": reps,
                "date": date,
                "workout_id": wid,
                "notes": notes,
            }
            for lid, name, weight, reps, date, wid, notes in self.max_lifts.fetch_for_user(
                user_id, exercise_name
            )
        ]

    def best_lifts(self, user_id: str) -> list[dict]:
        """Return the heaviest recorded lift per exercise with an estimated 1RM."""
        best: dict[str, dict] = {}
        for lift in self.list_max_lifts(user_id):
            key = lift["exercise_name"].lower()
            if key not in best or lift["weight"] > best[key]["weight"]:
                best[key] = lift
        result = []
        for lift in best.values():
            reps = MathTools.parse_number(lift["reps"])
            estimate = None
            if reps is not None and reps >= 1:
                estimate = round(MathTools.epley_1rm(lift["weight"], int(reps)), 2)
            result.append({**lift, "estimated_1rm": estimate})
        return sorted(result, key=lambda l: l["exercise_name"].lower())

    def save_as_template(self, workout_id: int, name: str | None = None) -> int:
        workout = self.get(workout_id)
        template_id = self.templates.create(
            workout.user_id, name or workout.title, workout.notes or None
        )
        for pos, exercise in enumerate(workout.exercises):
            ex_id = self.template_exercises.add(template_id, pos, exercise.name, exercise.notes or None)
            for set_pos, s in enumerate(exercise.sets):
                self.template_sets.add(ex_id, set_pos, s.reps, s.weight or None, s.notes or None)
        return template_id

    def get_template(self, template_id: int) -> dict:
        tid, user_id, name, notes = self.templates.fetch_detail(template_id)
        exercises = []
        for ex_id, ex_name, ex_notes in self.template_exercises.fetch_for_template(tid):
            sets = [
                {"reps": reps, "weight": weight or "", "notes": s_notes or ""}
                for _sid, reps, weight, s_notes in self.template_sets.fetch_for_exercise(ex_id)
            ]
            exercises.append({"name": ex_name, "notes": ex_notes or "", "sets": sets})
        return {"id": tid, "user_id": user_id, "name": name, "notes": notes or "", "exercises": exercises}

    def list_templates(self, user_id: str) -> list[dict]:
        return [
            {"id": tid, "name": name, "notes": notes or "", "last_used": last_used}
            for tid, name, notes, last_used in self.templates.fetch_for_user(user_id)
        ]

    def delete_template(self, template_id: int) -> None:
        self.templates.delete(template_id)

    def create_from_template(self, template_id: int, date: str) -> int:
        template = self.get_template(template_id)
        workout = Workout(
            user_id=template["user_id"],
            date=date,
            title=template["name"],
            notes=template["notes"],
            exercises=[
                WorkoutExercise(
                    name=ex["name"],
                    notes=ex["notes"],
                    sets=[ExerciseSet(reps=s["reps"], weight=s["weight"], notes=s["notes"]) for s in ex["sets"]]
                    or [ExerciseSet()],
                )
                for ex in template["exercises"]
            ],
        )
        workout_id = self.save(workout)
        self.templates.update_last_used(template_id)
        return workout_id

    def create_from_plan(self, user_id: str, plan: WorkoutPlan, date: str | None = None) -> Workout:
        """Save a parsed AI workout plan as a new workout."""
        workout = Workout(
            user_id=user_id,
            date=date or datetime.date.today().isoformat(),
            title=plan.title,
            notes=plan.notes or "",
            duration=plan.duration,
            exercises=[
                WorkoutExercise(
                    name=ex.name,
                    notes=ex.notes or "",
                    is_max_lift=ex.is_max_lift,
                    sets=[
                        ExerciseSet(reps=s.reps, weight=s.weight or "", notes=s.notes or "")
                        for s in ex.sets
                    ]
                    or [ExerciseSet()],
                )
                for ex in plan.exercises
            ],
        )
        self.save(workout)
        return workout
