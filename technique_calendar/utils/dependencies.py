from typing import Any, Callable, Dict, Type, TypeVar, cast

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from technique_calendar.db.session import get_db

# Type variable for service classes
T = TypeVar("T")

# Global registry of service factories
_service_registry: Dict[Type[Any], Callable[..., Any]] = {}


def register_service(service_class: Type[T], factory: Callable[..., T]) -> None:
    """
    Register a service factory function.

    Args:
        service_class: The class of the service
        factory: Function that creates an instance of the service from a session
    """
    _service_registry[service_class] = factory


def get_service(service_class: Type[T]) -> Callable[..., T]:
    """
    Get a dependency provider for a service.

    The factory is looked up when a request is served, so services registered
    at startup replace the default ``service_class(db)`` factory.

    Args:
        service_class: The class of the service to provide

    Returns:
        A FastAPI dependency that provides the service
    """
    def _get_service(request: Request, db: Session = Depends(get_db)) -> T:
        # One instance per request
        service_key = f"service:{service_class.__name__}"
        if hasattr(request.state, service_key):
            return cast(T, getattr(request.state, service_key))

        factory = _service_registry.get(service_class, service_class)
        service = factory(db)
        setattr(request.state, service_key, service)
        return service

    return _get_service
