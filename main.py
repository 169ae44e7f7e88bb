import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import expenses
from config import Settings, get_settings
from database import Database
from errors import LedgerError, PersistenceError, ValidationError
from logging_config import configure_logging
from schemas import Envelope

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------------------
# Lifespan: the process owns the database handle, not the request code
# ----------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database = Database(settings.DATABASE_URL)
    app.state.db = database

    logger.info("Connecting to database...")
    await database.create_all()
    if settings.DEMO_USER_ENABLED:
        await auth.ensure_demo_user(database, settings, app.state.pwd_context)
    logger.info("%s ready (%s)", settings.APP_NAME, settings.APP_ENV)
    try:
        yield
    finally:
        await database.dispose()
        logger.info("Database connections closed")

# ----------------------------------------------------------------------------
# Error envelopes
# ----------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        body = Envelope(message=exc.message)
        if isinstance(exc, ValidationError):
            body.errors = exc.errors
        content = body.to_json()
        if isinstance(exc, PersistenceError) and not settings.is_production and exc.details:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
        content = Envelope(message="Request failed").to_json()
        if not settings.is_production:
            content["details"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=Envelope(message=str(exc.detail)).to_json(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            errors.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=Envelope(message="Validation failed", errors=errors).to_json(),
        )

# ----------------------------------------------------------------------------
# App setup
# ----------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    settings.check()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.pwd_context = auth.make_password_context(settings.BCRYPT_ROUNDS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.get("/")
    async def read_root():
        return {"message": "API is running..."}

    @app.get("/health")
    async def health(request: Request):
        try:
            await request.app.state.db.ping()
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"backend": "running", "database": "unavailable"},
            )
        return {"backend": "running", "database": "available"}

    app.include_router(auth.router)
    app.include_router(expenses.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
