# technique_calendar/api/routes/calendar_auth.py
import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from technique_calendar.api import deps
from technique_calendar.core.config import settings
from technique_calendar.core.constants import CalendarProvider, CallbackOutcome
from technique_calendar.core.exceptions import BusinessException
from technique_calendar.schemas.calendar import AuthorizationUrl, CalendarConnectionStatus
from technique_calendar.services.calendar_connection_service import CalendarConnectionService

router = APIRouter()
logger = logging.getLogger(__name__)


def settings_redirect(**params: str) -> RedirectResponse:
    """Send the browser back to the frontend settings page."""
    url = f"{settings.FRONTEND_URL}{settings.CALENDAR_SETTINGS_PATH}?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/connections", response_model=List[CalendarConnectionStatus])
def list_connections(
    user_id: str = Depends(deps.get_current_user_id),
    connection_service: CalendarConnectionService = Depends(deps.get_connection_service),
):
    """List the calendars the current user has connected."""
    return connection_service.list_connections(user_id)


@router.get("/{provider}/status", response_model=CalendarConnectionStatus)
def connection_status(
    provider: CalendarProvider,
    user_id: str = Depends(deps.get_current_user_id),
    connection_service: CalendarConnectionService = Depends(deps.get_connection_service),
):
    return connection_service.get_status(user_id, provider)


@router.get("/{provider}/authorize", response_model=AuthorizationUrl)
def authorize(
    provider: CalendarProvider,
    user_id: str = Depends(deps.get_current_user_id),
    connection_service: CalendarConnectionService = Depends(deps.get_connection_service),
):
    """Start the OAuth flow; the frontend navigates to the returned URL."""
    return AuthorizationUrl(
        authorization_url=connection_service.begin_connect(user_id, provider)
    )


@router.get("/{provider}/callback", response_class=RedirectResponse)
def oauth_callback(
    provider: CalendarProvider,
    state: Optional[str] = None,
    code: Optional[str] = None,
    error: Optional[str] = None,
    connection_service: CalendarConnectionService = Depends(deps.get_connection_service),
):
    """
    Public OAuth callback, the provider redirects the browser here.

    Always answers with a redirect to the settings page carrying either
    ``calendar=connected`` or ``calendar=error`` and a reason code.
    """
    try:
        connection_service.complete_connect(
            state, code=code, error=error, provider=provider
        )
    except BusinessException as e:
        logger.warning(f"Calendar connection failed: {e.code}")
        return settings_redirect(
            calendar=CallbackOutcome.ERROR, reason=e.callback_reason, provider=provider.value
        )
    except Exception:
        logger.exception("Unexpected error completing calendar connection")
        return settings_redirect(
            calendar=CallbackOutcome.ERROR, reason="server_error", provider=provider.value
        )

    return settings_redirect(calendar=CallbackOutcome.CONNECTED, provider=provider.value)


@router.delete("/{provider}/connection")
def disconnect(
    provider: CalendarProvider,
    user_id: str = Depends(deps.get_current_user_id),
    connection_service: CalendarConnectionService = Depends(deps.get_connection_service),
):
    """Disconnect a calendar. Succeeds when nothing is connected."""
    connection_service.disconnect(user_id, provider)
    return {"success": True, "provider": provider.value}
