"""API layer module.

Contains FastAPI routers, dependency providers and middleware.
"""

from storeseed.api.health import router as health_router
from storeseed.api.runs import router as runs_router

__all__ = [
    "health_router",
    "runs_router",
]
