from .accounts import router as accounts_router
from .logs import router as logs_router
from .sync import router as sync_router
from .system import router as system_router

__all__ = ["accounts_router", "logs_router", "sync_router", "system_router"]
