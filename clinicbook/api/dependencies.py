# ============================================================================
# FILE: clinicbook/api/dependencies.py
# Authentication and tenant-scoping dependencies
# ============================================================================
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from clinicbook.config.database import get_db
from clinicbook.config.settings import settings
from clinicbook.core.results import Failure
from clinicbook.core.tenant import TenantContext, TenantScopingError, assert_clinic_id
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.services.booking.booking_service import BookingAdmissionController

logger = logging.getLogger(__name__)

# ============================================================================
# Security Schemes
# ============================================================================

jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    auto_error=False,
    description="Access token issued by the identity provider, carrying a clinic_id claim"
)


# ============================================================================
# JWT Token Functions
# ============================================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Production tokens come from the identity provider; this signs tokens with
    the same secret for local development and tests.

    Args:
        data: Dictionary with claims (should include 'sub' and 'clinic_id')
        expires_delta: Optional custom expiration time
    """
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access"
    })

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


# ============================================================================
# Tenant Dependencies
# ============================================================================

async def get_tenant_context(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(jwt_security)
) -> TenantContext:
    """
    Resolve the caller's clinic from the bearer token.

    Usage in routes:
        @router.get("/patients")
        def list_patients(tenant_db: TenantScopedSession = Depends(get_tenant_db)):
            ...

    Raises:
        HTTPException 401: token invalid
        HTTPException 403: token carries no usable clinic_id
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)

    try:
        clinic_id = assert_clinic_id(payload.get("clinic_id"))
    except TenantScopingError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not bound to a clinic"
        )

    return TenantContext(
        clinic_id=clinic_id,
        user_id=payload.get("sub"),
        role=payload.get("role"),
    )


def get_tenant_db(
        tenant: TenantContext = Depends(get_tenant_context),
        db: Session = Depends(get_db)
) -> TenantScopedSession:
    """Database access confined to the caller's clinic"""
    return TenantScopedSession(db, tenant.clinic_id)


# ============================================================================
# Application-scoped collaborators (built once in create_app)
# ============================================================================

def get_booking_controller(request: Request) -> BookingAdmissionController:
    return request.app.state.booking_controller


def get_confirmation_enqueuer(request: Request):
    return request.app.state.confirmation_enqueuer


# ============================================================================
# Helpers
# ============================================================================

def failure_response(failure: Failure, headers: Optional[dict] = None) -> JSONResponse:
    """Render a service Failure as {code, message, details?}"""
    return JSONResponse(status_code=failure.status, content=failure.to_dict(), headers=headers)
