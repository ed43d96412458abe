import datetime
import logging
from typing import Callable, Optional
from fastapi import (
    FastAPI,
    HTTPException,
    Body,
    APIRouter,
    Request,
    Header,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from account_service import AccountError, AccountService
from admin_service import AdminService, MutationResult
from auth import MISSING_REASON, AuthorizationGate, RequestContext, ResponseSink
from caches import ExerciseCatalog, SchemaSnapshot
from config import ServerConfig
from db import (
    UserRepository,
    SessionRepository,
    ResetTokenRepository,
    ExerciseRepository,
    WorkoutRepository,
    CalendarRepository,
    TableRepository,
)
from password_service import PasswordService
from reset_service import PasswordResetService, ResetNotifier
from settings_schema import ServerSettings
from stats_service import StatisticsService
from token_service import TokenService
from workout_service import WorkoutService

logger = logging.getLogger(__name__)


class FitnessAPI:
    """Provides REST endpoints for the fitness tracker."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        settings: ServerSettings | None = None,
        notifier: ResetNotifier | None = None,
        now: Callable[[], datetime.datetime] | None = None,
        today: Callable[[], datetime.date] | None = None,
    ) -> None:
        self.settings = settings or ServerConfig.load(yaml_path, db_path=db_path)
        db_path = self.settings.db_path
        self.db_path = db_path
        self.users = UserRepository(db_path)
        self.sessions = SessionRepository(db_path)
        self.reset_tokens = ResetTokenRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.workouts = WorkoutRepository(db_path)
        self.calendar = CalendarRepository(db_path)
        self.tables = TableRepository(db_path)
        self.schema = SchemaSnapshot(self.tables)
        self.catalog = ExerciseCatalog(self.exercises)
        self.tokens = TokenService(self.sessions, self.settings.session_token_bytes)
        self.passwords = PasswordService(self.settings.bcrypt_rounds)
        self.accounts = AccountService(self.users, self.tokens, self.passwords)
        self.workout_service = WorkoutService(
            self.workouts, self.calendar, self.catalog, today=today
        )
        self.statistics = StatisticsService(self.workouts, self.catalog, today=today)
        self.admin = AdminService(
            self.tables, self.schema, page_size=self.settings.admin_page_size
        )
        self.notifier = notifier or ResetNotifier(self.settings.email_server)
        self.resets = PasswordResetService(
            self.users,
            self.reset_tokens,
            self.passwords,
            self.notifier,
            email_secret=self.settings.email_token,
            token_bytes=self.settings.reset_token_bytes,
            ttl_minutes=self.settings.reset_token_ttl_minutes,
            now=now,
        )
        self.app = FastAPI(
            title="Fitness API",
            description="REST API for workout logging, diet tracking and administration",
        )
        self._setup_routes()

    def _context(self, body: Optional[dict], token: Optional[str]) -> RequestContext:
        sink = ResponseSink()
        gate = AuthorizationGate(token, self.tokens, self.users, self.schema, sink)
        return RequestContext(body, gate, sink)

    def _answer(
        self, ctx: RequestContext, result, payload: Optional[dict] = None
    ) -> JSONResponse:
        if result is None:
            ctx.sink.respond_missing()
        else:
            ctx.sink.respond_success(payload)
        return ctx.sink.take()

    def _answer_mutation(
        self, ctx: RequestContext, result: Optional[MutationResult]
    ) -> JSONResponse:
        if result is None:
            ctx.sink.respond_missing()
        elif result is MutationResult.FAILED:
            ctx.sink.respond(500, {"reason": "SQL error"})
        else:
            if result is MutationResult.CATALOG_CHANGED:
                self.catalog.rebuild()
            ctx.sink.respond_success()
        return ctx.sink.take()

    def _setup_routes(self) -> None:
        workouts_router = APIRouter(prefix="/api/workouts", tags=["Workouts"])
        templates_router = APIRouter(prefix="/api/templates", tags=["Templates"])
        diet_router = APIRouter(prefix="/api/diet", tags=["Diet"])
        reset_router = APIRouter(prefix="/api/reset", tags=["Password Reset"])
        admin_router = APIRouter(prefix="/api/admin", tags=["Admin"])

        @self.app.exception_handler(RequestValidationError)
        async def invalid_request(request: Request, exc: RequestValidationError):
            logger.debug("Unparseable request to %s", request.url.path)
            return JSONResponse(
                status_code=400, content={"reason": MISSING_REASON, "success": False}
            )

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.tables.fetch_tables()
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                logger.exception("Health check failed")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.get("/api/user")
        def user_details(x_token: str | None = Header(None)):
            logger.debug("/api/user")
            ctx = self._context(None, x_token)
            details = self.accounts.details(ctx)
            return self._answer(ctx, details, details)

        @self.app.post("/api/user/muscles")
        def user_muscles(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/user/muscles")
            ctx = self._context(body, x_token)
            muscles = self.statistics.user_muscles(ctx)
            return self._answer(ctx, muscles, {"muscles": muscles})

        @self.app.post("/api/login")
        def login(body: dict | None = Body(None), x_token: str | None = Header(None)):
            logger.debug("/api/login")
            ctx = self._context(body, x_token)
            token = self.accounts.login(ctx)
            if isinstance(token, AccountError):
                ctx.sink.respond(400, {"reason": token.value})
            return self._answer(ctx, token, {"token": token})

        @self.app.post("/api/signup")
        def signup(body: dict | None = Body(None), x_token: str | None = Header(None)):
            logger.debug("/api/signup")
            ctx = self._context(body, x_token)
            token = self.accounts.register(ctx)
            if isinstance(token, AccountError):
                ctx.sink.respond(400, {"reason": token.value})
            return self._answer(ctx, token, {"token": token})

        @self.app.get("/api/exercises")
        def exercises(x_token: str | None = Header(None)):
            logger.debug("/api/exercises")
            ctx = self._context(None, x_token)
            if ctx.is_logged_in():
                ctx.sink.respond_success({"json": self.catalog.all()})
            return ctx.sink.take()

        @diet_router.post("")
        def diet(body: dict | None = Body(None), x_token: str | None = Header(None)):
            logger.debug("/api/diet")
            ctx = self._context(body, x_token)
            result = self.workout_service.diet(ctx)
            return self._answer(ctx, result, {"json": result})

        @diet_router.post("/add")
        def diet_add(body: dict | None = Body(None), x_token: str | None = Header(None)):
            logger.debug("/api/diet/add")
            ctx = self._context(body, x_token)
            return self._answer(ctx, self.workout_service.add_diet(ctx))

        @templates_router.get("")
        def templates(x_token: str | None = Header(None)):
            logger.debug("/api/templates")
            ctx = self._context(None, x_token)
            result = self.workout_service.templates(ctx)
            return self._answer(ctx, result, {"templates": result})

        @templates_router.post("/save")
        def save_template(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/templates/save")
            ctx = self._context(body, x_token)
            return self._answer(ctx, self.workout_service.save_template(ctx))

        @templates_router.post("/delete")
        def delete_template(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/templates/delete")
            ctx = self._context(body, x_token)
            return self._answer(ctx, self.workout_service.delete_template(ctx))

        @workouts_router.get("/finished")
        def workouts_finished(x_token: str | None = Header(None)):
            logger.debug("/api/workouts/finished")
            ctx = self._context(None, x_token)
            dates = self.workout_service.finished_dates(ctx)
            return self._answer(ctx, dates, {"dates": dates})

        @workouts_router.post("/finish")
        def finish_workout(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/workouts/finish")
            ctx = self._context(body, x_token)
            return self._answer(ctx, self.workout_service.finish_workout(ctx))

        @workouts_router.post("/dates")
        def workout_dates(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/workouts/dates")
            ctx = self._context(body, x_token)
            dates = self.workout_service.workout_dates(ctx)
            return self._answer(ctx, dates, {"dates": dates})

        @workouts_router.post("/data")
        def workout_data(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/workouts/data")
            ctx = self._context(body, x_token)
            data = self.workout_service.workouts_on(ctx)
            return self._answer(ctx, data, {"data": data})

        @workouts_router.post("/save")
        def save_workout(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/workouts/save")
            ctx = self._context(body, x_token)
            workout_id = self.workout_service.save_workout(ctx)
            return self._answer(ctx, workout_id, {"id": workout_id})

        @reset_router.post("")
        def reset_password(body: dict | None = Body(None)):
            logger.debug("/api/reset")
            ctx = self._context(body, None)
            return self._answer(ctx, self.resets.redeem(ctx))

        @reset_router.post("/generate")
        def reset_generate(body: dict | None = Body(None)):
            logger.debug("/api/reset/generate")
            ctx = self._context(body, None)
            return self._answer(ctx, self.resets.request_reset(ctx))

        @reset_router.post("/validate")
        def reset_validate(body: dict | None = Body(None)):
            logger.debug("/api/reset/validate")
            ctx = self._context(body, None)
            return self._answer(ctx, self.resets.validate(ctx))

        @admin_router.get("/tables")
        def admin_tables(x_token: str | None = Header(None)):
            logger.debug("/api/admin/tables")
            ctx = self._context(None, x_token)
            tables = self.admin.list_tables(ctx)
            return self._answer(ctx, tables, {"tables": tables})

        @admin_router.post("/data")
        def admin_data(body: dict | None = Body(None), x_token: str | None = Header(None)):
            logger.debug("/api/admin/data")
            ctx = self._context(body, x_token)
            data = self.admin.get_table_data(ctx)
            return self._answer(ctx, data, {"json": data})

        @admin_router.post("/update")
        def admin_update(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/admin/update")
            ctx = self._context(body, x_token)
            return self._answer_mutation(ctx, self.admin.update_table_data(ctx))

        @admin_router.post("/delete")
        def admin_delete(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/admin/delete")
            ctx = self._context(body, x_token)
            return self._answer_mutation(ctx, self.admin.delete_table_data(ctx))

        @admin_router.post("/insert")
        def admin_insert(
            body: dict | None = Body(None), x_token: str | None = Header(None)
        ):
            logger.debug("/api/admin/insert")
            ctx = self._context(body, x_token)
            return self._answer_mutation(ctx, self.admin.insert_table_data(ctx))

        self.app.include_router(workouts_router)
        self.app.include_router(templates_router)
        self.app.include_router(diet_router)
        self.app.include_router(reset_router)
        self.app.include_router(admin_router)


if __name__ == "__main__":
    import uvicorn
    from log_config import setup_logging

    api = FitnessAPI()
    setup_logging(api.settings.log_level)
    uvicorn.run(api.app)
