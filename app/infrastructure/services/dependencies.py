"""
Type aliases for FastAPI dependency injection.

Provides annotated type hints for common infrastructure dependencies.
"""

from typing import Annotated

from fastapi import Depends

from infrastructure.configuration import Settings
from infrastructure.delivery import DeliveryService
from infrastructure.services.providers import get_delivery_service, get_settings

# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Delivery service dependency
DeliveryServiceDep = Annotated[DeliveryService, Depends(get_delivery_service)]

__all__ = [
    "SettingsDep",
    "DeliveryServiceDep",
]
