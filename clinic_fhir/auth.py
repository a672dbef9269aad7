"""
Bearer-token tenant resolution.

The token identifies a clinic user; its clinic id scopes every FHIR lookup
made on that request.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .database import get_db
from .repository import ClinicalRecordRepository


@dataclass(frozen=True)
class TenantContext:
    """Caller identity resolved from the bearer token."""
    clinic_id: str
    user_id: str
    role: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_tenant(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> TenantContext:
    """
    FastAPI dependency resolving ``Authorization: Bearer <token>`` to a tenant.

    Raises:
        HTTPException 401: Missing, malformed, unknown or revoked token
    """
    if not authorization or not authorization.strip().lower().startswith("bearer "):
        raise _unauthorized("Missing or invalid Authorization header")

    token_value = authorization.strip()[7:].strip()  # after "Bearer "
    if not token_value:
        raise _unauthorized("Missing or invalid Authorization header")

    token = ClinicalRecordRepository(db).get_access_token(token_value)
    if token is None:
        raise _unauthorized("Invalid or revoked token")

    tenant = TenantContext(clinic_id=token.clinic_id, user_id=token.user_id, role=token.role)
    # Read back by the error handlers in main.py
    request.state.tenant = tenant
    return tenant
