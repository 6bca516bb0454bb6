# Routers package
from routers.admin import router as admin_router
from routers.agents import router as agents_router
from routers.health import router as health_router
from routers.users import router as users_router
from routers.wallet import router as wallet_router
from routers.webhooks import router as webhooks_router

__all__ = [
    "admin_router", "agents_router", "health_router",
    "users_router", "wallet_router", "webhooks_router",
]
