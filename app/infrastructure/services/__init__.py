"""
Dependency injection services.

Provides type aliases and provider functions for FastAPI dependency injection.
"""

from infrastructure.services.dependencies import DeliveryServiceDep, SettingsDep
from infrastructure.services.providers import get_delivery_service, get_settings

__all__ = [
    "SettingsDep",
    "DeliveryServiceDep",
    "get_settings",
    "get_delivery_service",
]
