"""Common Pydantic models shared across services."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class ServiceInfo(BaseModel):
    """Service information model."""

    model_config = ConfigDict(use_enum_values=True)

    service_name: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    status: HealthStatus = Field(..., description="Service health status")
    uptime_seconds: float = Field(..., ge=0, description="Service uptime in seconds")
    environment: str = Field(..., description="Deployment environment")
