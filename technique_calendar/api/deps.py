# technique_calendar/api/deps.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from technique_calendar.core.config import settings
from technique_calendar.services.calendar_connection_service import CalendarConnectionService
from technique_calendar.services.calendar_event_service import CalendarEventService
from technique_calendar.utils.dependencies import get_service

# Tokens are issued by the external identity provider
bearer_scheme = HTTPBearer(auto_error=False)

# Service dependencies
get_connection_service = get_service(CalendarConnectionService)
get_event_service = get_service(CalendarEventService)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    Get the id of the authenticated user.

    Args:
        credentials: Bearer token from the Authorization header

    Returns:
        The ``sub`` claim of the identity provider token

    Raises:
        HTTPException: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise _credentials_exception()

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options={"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)},
        )
    except JWTError:
        raise _credentials_exception()

    user_id = payload.get("sub")
    if not user_id:
        raise _credentials_exception()
    return str(user_id)
