"""API routers."""

from notifier.routers.unsubscribe import router as unsubscribe_router
from notifier.routers.watches import router as watches_router

__all__ = [
    "unsubscribe_router",
    "watches_router",
]
