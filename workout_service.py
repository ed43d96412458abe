import datetime
import json
import logging
from typing import Any, Callable, List, Optional

from auth import RequestContext
from caches import ExerciseCatalog
from db import CalendarRepository, WorkoutRepository
from validation import normalize_date

logger = logging.getLogger(__name__)

EMPTY_DIET = {"breakfast": [], "lunch": [], "dinner": [], "snacks": []}


def _exercise_list(value: Any) -> Optional[list]:
    """Accept an exercise list or its JSON text."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, list) else None


def _dump(value: Any) -> Optional[str]:
    """Serialize ``value`` for storage, or ``None`` if it holds NaN or Infinity."""
    try:
        return json.dumps(value, allow_nan=False)
    except ValueError:
        return None


class WorkoutService:
    """Workout logging, templates and diet entries for the signed-in user."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        calendar_repo: CalendarRepository,
        catalog: ExerciseCatalog,
        today: Callable[[], datetime.date] | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.calendar = calendar_repo
        self.catalog = catalog
        self.today = today or datetime.date.today

    def workout_dates(self, ctx: RequestContext) -> Optional[List[str]]:
        post = ctx.fields(["date"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        month = normalize_date(post["date"])[:7]
        return self.workouts.fetch_dates_in_month(ctx.user_id, month)

    def workouts_on(self, ctx: RequestContext) -> Optional[List[dict]]:
        post = ctx.fields(["date"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        rows = self.workouts.fetch_on_date(ctx.user_id, normalize_date(post["date"]))
        for row in rows:
            row["json"] = json.loads(row["json"]) if row["json"] else []
            row["isFinished"] = bool(row["isFinished"])
        return rows

    def finished_dates(self, ctx: RequestContext) -> Optional[List[dict]]:
        if not ctx.is_logged_in():
            return None
        return self.workouts.fetch_finished_dates(ctx.user_id)

    def save_workout(self, ctx: RequestContext) -> Optional[int]:
        post = ctx.fields(["name", "json", "time", "date"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        exercises = _exercise_list(post["json"])
        if exercises is None or not isinstance(post["name"], str):
            return None
        exercises = _dump(exercises)
        time = post["time"] if isinstance(post["time"], str) else _dump(post["time"])
        if exercises is None or time is None:
            return None
        workout_id = self.workouts.create(ctx.user_id, post["name"], exercises, time)
        calendar_id = self.calendar.ensure_day(ctx.user_id, normalize_date(post["date"]))
        self.calendar.link_workout(calendar_id, workout_id)
        logger.debug("Saved workout %s for user %s", workout_id, ctx.user_id)
        return workout_id

    def finish_workout(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["id"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        self.workouts.finish(int(post["id"]), ctx.user_id)
        return True

    def templates(self, ctx: RequestContext) -> Optional[List[dict]]:
        if not ctx.is_logged_in():
            return None
        result = []
        for row in self.workouts.fetch_templates(ctx.user_id):
            exercises = json.loads(row["json"]) if row["json"] else []
            for exercise in exercises:
                if isinstance(exercise, dict) and "exercise_id" in exercise:
                    try:
                        exercise["name"] = self.catalog.get_name(int(exercise["exercise_id"]))
                    except (TypeError, ValueError, OverflowError):
                        exercise["name"] = None
            result.append({"id": row["id"], "name": row["name"], "json": exercises})
        return result

    def save_template(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["name", "json"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        exercises = _exercise_list(post["json"])
        if exercises is None or not isinstance(post["name"], str):
            return None
        exercises = _dump(exercises)
        if exercises is None:
            return None
        self.workouts.create(ctx.user_id, post["name"], exercises, is_template=True)
        return True

    def delete_template(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["id"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        self.workouts.delete_template(int(post["id"]), ctx.user_id)
        return True

    def _load_diet(self, user_id: int, date: str) -> dict:
        row = self.calendar.fetch_day(user_id, date)
        if row is None or not row["diet"]:
            return {key: [] for key in EMPTY_DIET}
        return json.loads(row["diet"])

    def diet(self, ctx: RequestContext) -> Optional[dict]:
        post = ctx.fields(["date"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        return self._load_diet(ctx.user_id, normalize_date(post["date"]))

    def add_diet(self, ctx: RequestContext) -> Optional[bool]:
        post = ctx.fields(["json"])
        if post is None:
            return None
        if not ctx.is_logged_in():
            return None
        diet = _dump(post["json"])
        if diet is None:
            return None
        calendar_id = self.calendar.ensure_day(ctx.user_id, self.today().isoformat())
        self.calendar.set_diet(calendar_id, diet)
        return True
