import os
import sys
import datetime

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.calendar_tools import (
    month_grid,
    shift_month,
    relative_label,
    is_past,
    is_future,
    is_upcoming,
    has_workout,
)
from algorithms import MathTools, WeightConverter

TODAY = datetime.date(2024, 5, 10)


def test_month_grid_offsets():
    september = month_grid(2024, 9)
    assert september[0] == datetime.date(2024, 9, 1)
    assert len(september) == 30
    february = month_grid(2024, 2)
    assert february[:4] == [None, None, None, None]
    assert february[4] == datetime.date(2024, 2, 1)
    assert len(february) == 33


def test_shift_month():
    assert shift_month(2024, 1, -1) == (2023, 12)
    assert shift_month(2024, 12, 1) == (2025, 1)
    assert shift_month(2024, 5, 14) == (2025, 7)


def test_relative_label():
    assert relative_label("2024-05-10", TODAY) == "Today"
    assert relative_label("2024-05-11", TODAY) == "Tomorrow"
    assert relative_label(datetime.date(2024, 5, 9), TODAY) == "Yesterday"
    assert relative_label("2024-05-20", TODAY) == "Mon, May 20"


def test_past_future_upcoming():
    assert is_past("2024-05-09", TODAY)
    assert not is_past("2024-05-10", TODAY)
    assert is_future("2024-05-11", TODAY)
    assert is_upcoming("2024-05-10", today=TODAY)
    assert not is_upcoming("2024-05-12", is_completed=True, today=TODAY)
    assert not is_upcoming("2024-05-01", today=TODAY)


def test_has_workout():
    dates = ["2024-05-01", "2024-05-03T10:00:00"]
    assert has_workout(datetime.date(2024, 5, 3), dates)
    assert not has_workout("2024-05-02", dates)


def test_math_helpers():
    assert MathTools.epley_1rm(100, 1) == 100
    assert round(MathTools.epley_1rm(100, 10), 2) == 133.3
    assert MathTools.parse_number("82.5 kg") == 82.5
    assert MathTools.parse_number("bodyweight") is None
    assert WeightConverter.convert(100, "kg", "lb") == 220.46
    assert WeightConverter.convert(100, "kg", "kg") == 100
