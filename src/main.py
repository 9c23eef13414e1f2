"""
EPIC-Q Management API entry point
"""
import uvicorn
from fastapi import FastAPI

from src.epicq.epicq_config import settings
from src.epicq.epicq_main import app


def get_app() -> FastAPI:
    return app


if __name__ == "__main__":
    uvicorn.run("src.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
