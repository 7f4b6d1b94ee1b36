import re


class MathTools:
    """Provides the numeric helpers used for lift tracking."""

    EPL_COEFF: float = 0.0333

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @classmethod
    def epley_1rm(cls, weight: float, reps: int, factor: float = 1.0) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        if reps <= 1:
            return weight * factor
        return weight * (1 + cls.EPL_COEFF * reps) * factor

    @staticmethod
    def parse_number(text: str | None) -> float | None:
        """Return the leading number of free text such as ``"100 kg"`` or ``None``."""
        if text is None:
            return None
        match = re.match(r"\s*(-?\d+(?:\.\d+)?)", str(text))
        return float(match.group(1)) if match else None

    @staticmethod
    def volume(sets: list[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol
