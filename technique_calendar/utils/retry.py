import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from technique_calendar.core.config import settings
from technique_calendar.core.exceptions import ProviderTimeoutException

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A failed database write is tried once more before surfacing
DB_WRITE_ATTEMPTS = 2


def provider_retrying() -> Retrying:
    """Retry policy for provider calls: only timeouts, with exponential backoff."""
    return Retrying(
        stop=stop_after_attempt(settings.PROVIDER_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.PROVIDER_BACKOFF_SECONDS, max=8),
        retry=retry_if_exception_type(ProviderTimeoutException),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def db_write_retrying() -> Retrying:
    return Retrying(
        stop=stop_after_attempt(DB_WRITE_ATTEMPTS),
        retry=retry_if_exception_type(SQLAlchemyError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def call_provider(func: Callable[..., T], *args, **kwargs) -> T:
    """Call a provider adapter method under the provider retry policy."""
    for attempt in provider_retrying():
        with attempt:
            result = func(*args, **kwargs)
    return result
