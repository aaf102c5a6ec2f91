from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.api.routes.health import router as health_router
from app.api.routes.auth import router as auth_router
from app.api.routes.users import router as users_router
from app.api.routes.permissions import router as permissions_router
from app.api.routes.chat import router as chat_router
from app.api.routes.tokens import router as tokens_router
from app.api.routes.pricing import router as pricing_router
from app.api.routes.payments import router as payments_router
from app.api.routes.notifications import router as notifications_router
from app.api.routes.exercises import router as exercises_router
from app.api.routes.lessons import router as lessons_router
from app.api.routes.teacher import router as teacher_router
from app.api.routes.student import router as student_router
from app.api.routes.admin import router as admin_router
from app.api.routes.llm import router as llm_router
from app.db.session import SessionLocal
from app.services.user_service import ensure_bootstrap_admin


logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def envelope(request_id: str, data: Any = None, error: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"request_id": request_id, "data": data, "error": error}


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = req_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    req_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    detail = exc.detail
    # Giữ nguyên detail dạng dict (QUOTA_EXCEEDED, NOT_PENDING, ...)
    if isinstance(detail, dict):
        code = str(detail.get("code") or "HTTP_ERROR")
        message = detail.get("message") or detail.get("reason") or str(detail)
        error = {"code": code, "message": message, "details": detail}
    else:
        error = {"code": "HTTP_ERROR", "message": str(detail)}

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(request_id=req_id, data=None, error=error),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    req_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return JSONResponse(
        status_code=422,
        content=envelope(
            request_id=req_id,
            data=None,
            error={
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": {"errors": exc.errors()},
            },
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    logger.exception("unhandled error request_id=%s path=%s", req_id, request.url.path)
    return JSONResponse(
        status_code=500,
        content=envelope(
            request_id=req_id,
            data=None,
            error={"code": "INTERNAL_ERROR", "message": str(exc)},
        ),
    )


@app.on_event("startup")
def bootstrap_admin():
    """Create the configured admin account (safe to run repeatedly)."""
    db = SessionLocal()
    try:
        u = ensure_bootstrap_admin(db)
        if u:
            logger.info("bootstrap admin ready id=%s", u.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("bootstrap admin skipped: %s", e)
    finally:
        db.close()


app.include_router(health_router, prefix="/api")
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(permissions_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(tokens_router, prefix="/api")
app.include_router(pricing_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(exercises_router, prefix="/api")
app.include_router(lessons_router, prefix="/api")
app.include_router(teacher_router, prefix="/api")
app.include_router(student_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(llm_router, prefix="/api")
