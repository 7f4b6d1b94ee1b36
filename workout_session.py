from __future__ import annotations
import datetime
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from workout_service import Workout

logger = logging.getLogger(__name__)

DEFAULT_REST_SECONDS = 90


def format_time(seconds: int) -> str:
    """Format ``seconds`` as ``MM:SS``."""
    seconds = max(int(seconds), 0)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@dataclass
class WorkoutStep:
    id: str
    exercise_id: str
    exercise_name: str
    set_id: str
    set_number: int
    total_sets: int
    reps: str
    weight: str
    completed: bool = False

    @property
    def is_last_set(self) -> bool:
        return self.set_number == self.total_sets


class WorkoutSession:
    """Track progress through a workout with a stopwatch and rest timer.

    Time is read from ``clock`` (seconds, monotonic) so elapsed and rest
    values are computed on demand instead of by a ticking callback.
    """

    def __init__(
        self,
        workout: Workout,
        rest_seconds: int = DEFAULT_REST_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.workout = workout
        self.rest_seconds = rest_seconds
        self._clock = clock
        self.steps: list[WorkoutStep] = []
        for exercise in workout.exercises:
            for number, s in enumerate(exercise.sets, start=1):
                self.steps.append(
                    WorkoutStep(
                        id=f"{exercise.id}-{s.id}",
                        exercise_id=exercise.id,
                        exercise_name=exercise.name,
                        set_id=s.id,
                        set_number=number,
                        total_sets=len(exercise.sets),
                        reps=s.reps,
                        weight=s.weight,
                    )
                )
        self._accumulated = 0.0
        self._started_at: Optional[float] = self._clock()
        self._rest_started_at: Optional[float] = None
        self.completed = False

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> int:
        total = self._accumulated
        if self._started_at is not None:
            total += self._clock() - self._started_at
        return int(total)

    def toggle_timer(self) -> bool:
        """Pause or resume the stopwatch; return whether it is now running."""
        if self._started_at is None:
            self._started_at = self._clock()
        else:
            self._accumulated += self._clock() - self._started_at
            self._started_at = None
        return self.is_running

    @property
    def rest_remaining(self) -> int:
        if self._rest_started_at is None:
            return 0
        remaining = self.rest_seconds - int(self._clock() - self._rest_started_at)
        if remaining <= 0:
            self._rest_started_at = None
            return 0
        return remaining

    @property
    def is_resting(self) -> bool:
        return self.rest_remaining > 0

    def skip_rest(self) -> None:
        self._rest_started_at = None

    def _step(self, step_id: str) -> WorkoutStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise ValueError("step not found")

    def complete_step(self, step_id: str) -> WorkoutStep:
        step = self._step(step_id)
        step.completed = True
        if not step.is_last_set and self.rest_seconds > 0:
            self._rest_started_at = self._clock()
        if self.steps and all(s.completed for s in self.steps):
            self.completed = True
            logger.info("all sets done for workout %s", self.workout.id)
        return step

    def uncomplete_step(self, step_id: str) -> WorkoutStep:
        step = self._step(step_id)
        step.completed = False
        self.completed = False
        return step

    def completed_count(self) -> int:
        return sum(1 for s in self.steps if s.completed)

    def progress(self) -> float:
        if not self.steps:
            return 0.0
        return self.completed_count() / len(self.steps) * 100

    def current_step(self) -> Optional[WorkoutStep]:
        for step in self.steps:
            if not step.completed:
                return step
        return None

    def finish(self) -> Workout:
        """Stop the stopwatch and return the workout marked completed."""
        if self._started_at is not None:
            self.toggle_timer()
        self.skip_rest()
        self.workout.is_completed = True
        self.workout.completed_at = datetime.datetime.now().isoformat(timespec="seconds")
        self.workout.duration = self.elapsed // 60
        return self.workout

    def to_dict(self) -> dict:
        return {
            "workout_id": self.workout.id,
            "elapsed": self.elapsed,
            "elapsed_display": format_time(self.elapsed),
            "is_running": self.is_running,
            "rest_remaining": self.rest_remaining,
            "rest_display": format_time(self.rest_remaining),
            "progress": self.progress(),
            "completed": self.completed,
            "steps": [
                {
                    "id": s.id,
                    "exercise_name": s.exercise_name,
                    "set_number": s.set_number,
                    "total_sets": s.total_sets,
                    "reps": s.reps,
                    "weight": s.weight,
                    "completed": s.completed,
                }
                for s in self.steps
            ],
        }
