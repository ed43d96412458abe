from .math_tools import MathTools
from .muscle_load import MuscleLoadCalculator

__all__ = ["MathTools", "MuscleLoadCalculator"]
