"""HTTP-маршруты FastAPI."""

from .routes import configure_routes, router

__all__ = ["configure_routes", "router"]
