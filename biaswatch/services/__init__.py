"""Business logic services."""

from .bias_service import AssetOverview, BiasService, ServiceStatus


__all__ = [
    "AssetOverview",
    "BiasService",
    "ServiceStatus",
]
