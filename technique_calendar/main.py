# technique_calendar/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from technique_calendar.api.api import api_router
from technique_calendar.core.config import settings
from technique_calendar.core.error_handlers import register_exception_handlers
from technique_calendar.core.middleware import register_middlewares
from technique_calendar.db.base import Base, engine
from technique_calendar.services import register_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Technique Calendar API {app.version}")

    if settings.ENVIRONMENT == "development":
        # Schema is managed outside the service everywhere else
        import technique_calendar.models  # noqa: F401
        Base.metadata.create_all(bind=engine)

    register_services()
    logger.info("Services registered")

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title="Technique Calendar API",
    description="Calendar connections and review events for surgical technique resources",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

register_middlewares(app)

if settings.BACKEND_CORS_ORIGINS:
    allowed_origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS]
    logger.info(f"Setting up CORS with allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": "Welcome to the Technique Calendar API"}


@app.get("/health")
def health():
    return {"status": "ok"}


def create_app():
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
