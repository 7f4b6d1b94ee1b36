from .math_tools import MathTools
from .weight_converter import WeightConverter
from . import calendar_tools

__all__ = ["MathTools", "WeightConverter", "calendar_tools"]
