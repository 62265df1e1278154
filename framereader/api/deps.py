"""FastAPI dependencies for the FrameReader API."""

from fastapi import Request

from framereader.config import Settings, get_settings
from framereader.services.job_store import JobStore
from framereader.services.scheduler import QueueScheduler


def get_settings_dep(request: Request) -> Settings:
    """Dependency for the settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_store(request: Request) -> JobStore:
    """Dependency for the job store wired in the app lifespan."""
    return request.app.state.store


def get_scheduler(request: Request) -> QueueScheduler:
    """Dependency for the queue scheduler wired in the app lifespan."""
    return request.app.state.scheduler
