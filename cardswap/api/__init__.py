from cardswap.api.addresses import router as addresses_router
from cardswap.api.health import router as health_router
from cardswap.api.maintenance import router as maintenance_router
from cardswap.api.notifications import router as notifications_router
from cardswap.api.proposals import router as proposals_router

__all__ = [
    "addresses_router",
    "health_router",
    "maintenance_router",
    "notifications_router",
    "proposals_router",
]
