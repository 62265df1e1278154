"""HTTP API for FrameReader."""

from framereader.api.routes import router

__all__ = ["router"]
