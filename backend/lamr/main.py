"""
LAMR - Medical Records & QR Emergency Access API
Hospitals, patients and medical records with role-scoped access.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .api import admin, auth, hospitals, medical_records, patients, qr_codes
from .core.audit_middleware import AuditMiddleware
from .core.config import settings
from .core.exceptions import (
    AccessDenied,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    StoreError,
    TokenError,
)
from .core.permissions import CONCEALED_KINDS, DenyReason
from .models import base
from .seed_demo import seed_demo_data

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # NOTE: In production, use Alembic migrations instead of create_all()
    base.Base.metadata.create_all(bind=base.engine)
    if settings.SEED_DEMO_DATA:
        seed_demo_data()
    logger.info("%s %s started", settings.APP_NAME, settings.VERSION)
    yield


app = FastAPI(
    title="LAMR Medical Records API",
    description=(
        "Hospital directory, patient registry and medical records with "
        "role-scoped access and QR-code emergency lookup."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)


# ── Error mapping ────────────────────────────────────────────────────────────

@app.exception_handler(TokenError)
async def token_error_handler(request: Request, exc: TokenError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": exc.message, "code": exc.code},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    # Patient and record denials never reveal which rule failed
    if exc.reason == DenyReason.RESTRICTED_ACCESS_LEVEL:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Patient has restricted record access"},
        )
    if exc.kind in CONCEALED_KINDS:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Not found or access denied"},
        )
    if exc.reason == DenyReason.NOT_FOUND:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Not found"})
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # the request session has already been rolled back by get_db
    logger.warning("Store error on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    if isinstance(exc, IntegrityError):
        error = ConflictError("Request conflicts with stored data")
        status_code = status.HTTP_409_CONFLICT
    else:
        error = StoreError("Storage temporarily unavailable")
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content={"detail": error.message, "code": error.code})


app.include_router(auth.router, prefix="/api/v1")
app.include_router(hospitals.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(medical_records.router, prefix="/api/v1")
app.include_router(qr_codes.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
