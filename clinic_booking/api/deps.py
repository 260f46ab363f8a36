from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, UserRole, TokenPayload
)
from ..models import Doctor, User
from ..services.appointment_service import AppointmentService
from ..services.notification_service import NotificationSink, build_notifier
from ..services.payment_service import RazorpayGateway, build_gateway

logger = logging.getLogger(__name__)

_notifier = build_notifier()
_gateway = build_gateway()

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token = credentials.credentials

    # Verify token
    token_payload = verify_token(token)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active or user.is_archived:
        raise AuthenticationError("User account is deactivated")

    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

# Specific role dependencies
async def get_admin_user(
    current_user: User = Depends(require_role([UserRole.ADMIN]))
) -> User:
    """Require admin role."""
    return current_user

async def get_patient_user(
    current_user: User = Depends(require_role([UserRole.PATIENT]))
) -> User:
    """Require patient role."""
    return current_user

async def get_current_doctor(
    current_user: User = Depends(require_role([UserRole.DOCTOR])),
    db: Session = Depends(get_db)
) -> Doctor:
    """Resolve the doctor profile behind a doctor account."""
    doctor = db.query(Doctor).filter(Doctor.user_id == current_user.id).first()
    if not doctor or doctor.is_archived:
        raise AuthorizationError("No active doctor profile for this account")
    return doctor

# Collaborators, overridable in tests
def get_clock() -> Clock:
    return system_clock

def get_notifier() -> NotificationSink:
    return _notifier

def get_payment_gateway() -> Optional[RazorpayGateway]:
    return _gateway

def get_appointment_service(
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
    clock: Clock = Depends(get_clock)
) -> AppointmentService:
    return AppointmentService(db, notifier=notifier, clock=clock)

# Rate limiting dependency
async def booking_rate_limit(
    current_user: User = Depends(get_current_user),
    redis_client = Depends(get_redis)
) -> None:
    """Fixed one-hour window on booking attempts per user."""
    key = f"rate_limit:booking:{current_user.id}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, 3600, 1)
    else:
        if int(current_requests) >= settings.BOOKING_RATE_LIMIT:
            logger.warning(f"Booking rate limit reached for user {current_user.id}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many booking attempts. Please try again later."
            )
        redis_client.incr(key)
