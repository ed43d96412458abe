from __future__ import annotations
import datetime
import logging
from typing import Callable, Dict, Optional

from auth import RequestContext
from caches import ExerciseCatalog
from db import WorkoutRepository
from algorithms import MuscleLoadCalculator

logger = logging.getLogger(__name__)


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        catalog: ExerciseCatalog,
        today: Callable[[], datetime.date] | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.catalog = catalog
        self.today = today or datetime.date.today

    def muscle_usage(self, user_id: int, timespan_days: int) -> Dict[str, int]:
        """Return a 1..3 load score per muscle over the last ``timespan_days``."""
        try:
            since = self.today() - datetime.timedelta(days=timespan_days)
        except OverflowError:
            since = datetime.date.min
        workouts = self.workouts.fetch_finished_since(user_id, since.isoformat())
        done = MuscleLoadCalculator.count_exercises(workouts)
        return MuscleLoadCalculator.scores(done, self.catalog.get_muscles)

    def user_muscles(self, ctx: RequestContext) -> Optional[Dict[str, int]]:
        post = ctx.fields(["timespan"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        return self.muscle_usage(ctx.user_id, int(post["timespan"]))
