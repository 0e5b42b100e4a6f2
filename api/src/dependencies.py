"""
FastAPI dependency injection for settings, metrics and request details.

Provides injectable dependencies for:
- Application settings (bound to the running app)
- Prometheus metric groups
- Client address extraction

All dependencies use FastAPI's dependency injection system so tests can
swap them through ``app.dependency_overrides``.
"""

from fastapi import Request

from api.src.config import Settings, get_settings
from shared.metrics import LoadMetrics, setup_metrics


# ============================================================================
# SETTINGS
# ============================================================================


def get_app_settings(request: Request) -> Settings:
    """
    Get the settings the running application was built with.

    Falls back to the process-wide cached settings when the app carries
    none.

    Example:
        @router.get("/info")
        async def info(settings: Settings = Depends(get_app_settings)):
            return {"port": settings.port}
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        return get_settings()
    return settings


# ============================================================================
# METRICS
# ============================================================================


def get_load_metrics() -> LoadMetrics:
    """Get the load endpoint metrics registered on the default registry."""
    _, load_metrics = setup_metrics()
    return load_metrics


# ============================================================================
# REQUEST DETAILS
# ============================================================================


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Checks X-Forwarded-For header first (for proxies),
    then falls back to client host.

    Args:
        request: HTTP request

    Returns:
        Client IP address
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, get the first one
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
