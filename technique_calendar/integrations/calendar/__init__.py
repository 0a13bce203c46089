from functools import lru_cache

from technique_calendar.core.config import settings
from technique_calendar.core.constants import CalendarProvider
from technique_calendar.integrations.calendar.base import CalendarProviderClient
from technique_calendar.integrations.calendar.google import GoogleCalendarClient
from technique_calendar.integrations.calendar.microsoft import MicrosoftCalendarClient


def callback_url(provider: CalendarProvider) -> str:
    return f"{settings.SERVER_HOST}{settings.API_V1_STR}/calendar/{provider.value}/callback"


@lru_cache(maxsize=None)
def get_provider_client(provider: CalendarProvider) -> CalendarProviderClient:
    """Adapter for ``provider`` configured from settings."""
    provider = CalendarProvider(provider)
    if provider == CalendarProvider.GOOGLE:
        return GoogleCalendarClient(
            settings.GOOGLE_CLIENT_ID,
            settings.GOOGLE_CLIENT_SECRET,
            callback_url(provider),
            timeout=settings.PROVIDER_TIMEOUT,
        )
    return MicrosoftCalendarClient(
        settings.MICROSOFT_CLIENT_ID,
        settings.MICROSOFT_CLIENT_SECRET,
        callback_url(provider),
        timeout=settings.PROVIDER_TIMEOUT,
        tenant=settings.MICROSOFT_TENANT,
    )
