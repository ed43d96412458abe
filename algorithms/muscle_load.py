from collections import Counter
from typing import Callable, Dict, Iterable, List

from .math_tools import MathTools


class MuscleLoadCalculator:
    """Turn exercise occurrences into a coarse per-muscle load score."""

    MIN_SCORE: int = 1
    MAX_SCORE: int = 3

    @staticmethod
    def count_exercises(workouts: Iterable[List[dict]]) -> Dict[int, int]:
        """Count how often each ``exercise_id`` appears across ``workouts``."""
        counts: Counter = Counter()
        for exercises in workouts:
            for entry in exercises or []:
                if not isinstance(entry, dict):
                    continue
                eid = entry.get("exercise_id")
                if isinstance(eid, bool):
                    continue
                try:
                    counts[int(eid)] += 1
                except (TypeError, ValueError, OverflowError):
                    continue
        return dict(counts)

    @classmethod
    def scores(
        cls,
        exercises_done: Dict[int, int],
        muscles_for: Callable[[int], List[str]],
    ) -> Dict[str, int]:
        """Return ``muscle -> score`` in the range 1..3.

        Every muscle is normalised by the total number of exercise
        occurrences, not by the per-muscle sum.
        """
        total = sum(exercises_done.values())
        if total == 0:
            return {}
        used: Dict[str, int] = {}
        for eid, count in exercises_done.items():
            for muscle in muscles_for(eid):
                used[muscle] = used.get(muscle, 0) + count
        return {
            muscle: int(
                MathTools.clamp(
                    MathTools.round_half_up(amount / total * 3 + 1),
                    cls.MIN_SCORE,
                    cls.MAX_SCORE,
                )
            )
            for muscle, amount in used.items()
        }
