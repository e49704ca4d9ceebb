from sftrigger.api.routes.health import router as health_router
from sftrigger.api.routes.stats import router as stats_router
from sftrigger.api.routes.triggers import router as triggers_router

__all__ = ["health_router", "stats_router", "triggers_router"]
