from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promptshelf.config import settings
from promptshelf.database import get_db, init_db
from promptshelf.logging_config import get_logger, setup_logging
from promptshelf.routers import prompts
from promptshelf.services.errors import (
    InvalidPromptStateError,
    PromptConflictError,
    PromptNotFoundError,
    PromptServiceError,
    PromptStorageError,
)

setup_logging(settings.log_level)
logger = get_logger("main")

APP_VERSION = "0.1.0"

app = FastAPI(
    title="PromptShelf API",
    description="Versioned prompt storage with a single active version per key",
    version=APP_VERSION,
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(prompts.router)

ERROR_STATUS = {
    PromptNotFoundError: 404,
    PromptConflictError: 409,
    InvalidPromptStateError: 409,
    PromptStorageError: 500,
}


@app.exception_handler(PromptServiceError)
async def prompt_service_error_handler(request: Request, exc: PromptServiceError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    # Storage failures were already logged with full context where they happened.
    if status_code < 500:
        logger.info(
            "Request rejected",
            extra={"context": {"path": request.url.path, "code": exc.code, **exc.context}},
        )
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


@app.on_event("startup")
def create_tables() -> None:
    init_db()
    logger.info("Database schema ready")


@app.get("/health")
def health(db: Session = Depends(get_db)):
    database = "connected"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database probe failed", extra={"context": {"error": str(exc)}})
        database = "error"

    return {
        "status": "healthy" if database == "connected" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "version": APP_VERSION,
    }
