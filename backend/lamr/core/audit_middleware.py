"""
Audit logging middleware.
Records every request to PHI endpoints (patients, medical records, QR lookups).
"""
import hashlib
import logging

from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..models import base
from ..models.audit import AuditLog
from .exceptions import TokenError
from .security import token_service

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Requests under these paths touch PHI and are logged
PHI_PATH_PREFIXES = (
    f"{API_PREFIX}/patients",
    f"{API_PREFIX}/medical-records",
    f"{API_PREFIX}/qr",
)

# QR routes addressed by the public code rather than a patient id
QR_CODE_ROUTES = {"validate", "scan", "patient-records"}

ACTION_MAP = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def qr_code_digest(code: str) -> str:
    """Stand-in for a QR code in the audit trail; live codes are never stored."""
    return "sha256:" + hashlib.sha256(code.encode("utf-8")).hexdigest()


def _resource(path: str):
    """Split ``/api/v1/<type>/<id>/...`` into (type, id, path to record)."""
    parts = [p for p in path[len(API_PREFIX):].split("/") if p]
    resource_type = parts[0] if parts else "unknown"
    resource_id = parts[1] if len(parts) > 1 else "collection"
    if resource_type == "qr" and len(parts) > 2:
        resource_id = parts[2]
        if parts[1] in QR_CODE_ROUTES:
            resource_id = qr_code_digest(parts[2])
            path = f"{API_PREFIX}/qr/{parts[1]}/{resource_id}"
    return resource_type, resource_id, path


def _caller_id(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return "anonymous"
    try:
        return token_service.verify(auth_header[7:]).subject_id
    except TokenError:
        return "anonymous"


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that logs access to PHI endpoints into ``audit_logs``."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        path = request.url.path
        if not path.startswith(PHI_PATH_PREFIXES):
            return response
        if request.method not in ACTION_MAP:
            return response

        user_id = _caller_id(request)
        resource_type, resource_id, path = _resource(path)

        db = base.SessionLocal()
        try:
            db.add(AuditLog(
                user_id=user_id,
                action=ACTION_MAP[request.method],
                resource_type=resource_type,
                resource_id=resource_id,
                ip_address=request.client.host if request.client else None,
                request_method=request.method,
                request_path=path,
                status_code=str(response.status_code),
                user_agent=request.headers.get("User-Agent"),
            ))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "Audit log write failed for %s %s (user=%s): %s",
                request.method, path, user_id, exc,
            )
        finally:
            db.close()

        return response
