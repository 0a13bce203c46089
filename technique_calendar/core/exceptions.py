# technique_calendar/core/exceptions.py
from typing import Dict, Any, Optional
from fastapi import status


class BusinessException(Exception):
    """Base exception for business rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "business_error"
    # Reason reported to the frontend when this error ends an OAuth callback
    callback_reason = "auth_failed"

    def __init__(
        self, message: str, code: str = None, details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


# Resource-related exceptions
class ResourceNotFoundException(BusinessException):
    """Exception raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "resource_not_found"


class ValidationException(BusinessException):
    """Exception raised when input validation fails."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "validation_error"


# Authentication exceptions
class AuthenticationException(BusinessException):
    """Exception raised for authentication failures."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "authentication_error"


# External Service exceptions
class ExternalServiceException(BusinessException):
    """Exception raised when an external service call fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "external_service_error"


class ServiceTimeoutException(BusinessException):
    """Exception raised when an external service times out."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "service_timeout"


# Calendar connection exceptions
class InvalidStateException(BusinessException):
    """The OAuth state is malformed, unknown, expired, reused or bound to another user."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_state"


class ConnectionDeniedException(BusinessException):
    """The user declined consent at the provider."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "connect_failed"


class TokenExchangeFailedException(BusinessException):
    """The provider rejected the authorization code."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "token_exchange_failed"
    callback_reason = "token_exchange_failed"


class NoCalendarFoundException(BusinessException):
    """The provider account has no primary calendar."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "no_calendar_found"
    callback_reason = "no_primary_calendar"


class NoConnectionException(BusinessException):
    """The user has not connected this calendar provider."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_connected"


class ReauthRequiredException(AuthenticationException):
    """Stored credentials can no longer be used; the user must reconnect."""

    error_code = "reauth_required"


class ProviderTimeoutException(ServiceTimeoutException):
    """A provider call timed out or the connection failed."""

    error_code = "provider_timeout"
    callback_reason = "token_exchange_failed"


class ProviderErrorException(ExternalServiceException):
    """
    A provider returned an unexpected status.

    ``provider_status`` is kept for internal decisions and logs only, it is
    never part of the response body.
    """

    error_code = "provider_error"
    callback_reason = "token_exchange_failed"

    def __init__(
        self,
        message: str = "The calendar provider returned an error",
        provider_status: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.provider_status = provider_status


class PersistenceFailedException(BusinessException):
    """A database write failed after being retried."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "persistence_failed"
    callback_reason = "database_error"
