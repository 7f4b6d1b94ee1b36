import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from workout_service import ExerciseSet, Workout, WorkoutExercise
from workout_session import WorkoutSession, format_time


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workout():
    return Workout(
        id=7,
        user_id="u1",
        date="2024-05-01",
        title="Legs",
        exercises=[
            WorkoutExercise(
                id="e1",
                name="Squat",
                sets=[ExerciseSet(id="s1", reps="5", weight="100"), ExerciseSet(id="s2", reps="5", weight="100")],
            ),
            WorkoutExercise(id="e2", name="Lunge", sets=[ExerciseSet(id="s3", reps="10")]),
        ],
    )


def test_steps_follow_exercise_order(workout, clock):
    session = WorkoutSession(workout, clock=clock)
    assert [s.id for s in session.steps] == ["e1-s1", "e1-s2", "e2-s3"]
    assert session.steps[1].set_number == 2
    assert session.steps[1].is_last_set
    assert session.current_step().id == "e1-s1"


def test_rest_timer_after_set(workout, clock):
    session = WorkoutSession(workout, clock=clock)
    session.complete_step("e1-s1")
    assert session.rest_remaining == 90
    clock.advance(30)
    assert session.rest_remaining == 60
    assert session.is_resting
    clock.advance(60)
    assert session.rest_remaining == 0
    assert not session.is_resting


def test_no_rest_after_last_set_of_exercise(workout, clock):
    session = WorkoutSession(workout, rest_seconds=60, clock=clock)
    session.complete_step("e1-s2")
    assert session.rest_remaining == 0
    session.complete_step("e1-s1")
    assert session.rest_remaining == 60
    session.skip_rest()
    assert session.rest_remaining == 0


def test_progress_and_completion(workout, clock):
    session = WorkoutSession(workout, clock=clock)
    session.complete_step("e1-s1")
    assert session.progress() == pytest.approx(100 / 3)
    session.complete_step("e1-s2")
    session.complete_step("e2-s3")
    assert session.completed
    assert session.progress() == 100
    session.uncomplete_step("e2-s3")
    assert not session.completed
    with pytest.raises(ValueError):
        session.complete_step("e9-s9")


def test_stopwatch_pause_and_finish(workout, clock):
    session = WorkoutSession(workout, clock=clock)
    clock.advance(65)
    assert session.elapsed == 65
    assert session.toggle_timer() is False
    clock.advance(100)
    assert session.elapsed == 65
    assert session.toggle_timer() is True
    clock.advance(60)
    finished = session.finish()
    assert session.elapsed == 125
    assert finished.duration == 2
    assert finished.is_completed
    assert finished.completed_at is not None
    assert not session.is_running


def test_empty_workout_progress(clock):
    session = WorkoutSession(Workout(user_id="u1", date="2024-05-01"), clock=clock)
    assert session.progress() == 0
    assert session.current_step() is None


def test_format_time():
    assert format_time(0) == "00:00"
    assert format_time(65) == "01:05"
    assert format_time(3600) == "60:00"
