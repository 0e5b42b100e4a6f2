"""Shared Pydantic models."""

from .common import (
    HealthStatus,
    ServiceInfo,
)

__all__ = [
    "HealthStatus",
    "ServiceInfo",
]
