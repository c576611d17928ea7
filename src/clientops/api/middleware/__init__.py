"""API middleware package."""

from src.clientops.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
