import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.epicq.epicq_config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def create_app() -> FastAPI:
    """Create FastAPI app"""
    from src.epicq.epicq_routes import lifespan, router

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.VERSION,
        description="Hospital onboarding, recruitment periods and alerts for the EPIC-Q study",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ALLOW_ORIGINS.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/epicq")

    return app


app = create_app()
