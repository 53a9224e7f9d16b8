import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from footytrail_push.api.router import router
from footytrail_push.core.config import get_settings
from footytrail_push.core.errors import StoreError
from footytrail_push.db.session import get_db

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="FootyTrail push dispatcher", version="1.0")

app.include_router(router)


@app.exception_handler(StoreError)
def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "dispatch_store_error method=%s path=%s detail=%s",
        request.method,
        request.url.path,
        str(exc),
    )
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(SQLAlchemyError)
def handle_db_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.warning(
        "db_unavailable method=%s path=%s detail=%s",
        request.method,
        request.url.path,
        str(exc),
    )
    return JSONResponse(status_code=500, content={"error": "db_unavailable"})


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unexpected_error")
    return JSONResponse(status_code=500, content={"error": str(exc) or "server_error"})


@app.get("/health")
def health() -> dict:
    return {"ok": True, "env": settings.APP_ENV}


@app.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    """Round-trips ``SELECT 1`` through the job store."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health_store_unavailable detail=%s", exc)
        return JSONResponse(
            status_code=503,
            content={"ok": False, "env": settings.APP_ENV, "store": "down"},
        )
    return {"ok": True, "env": settings.APP_ENV, "store": "up"}
