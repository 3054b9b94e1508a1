"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache
from typing import TYPE_CHECKING

from infrastructure.configuration import Settings

if TYPE_CHECKING:
    from infrastructure.delivery import DeliveryService


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    The @lru_cache decorator ensures only ONE instance is created per process.

    Infrastructure packages should use this directly:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Application code should use the DI type alias for testability:
        from infrastructure.services import SettingsDep

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_delivery_service() -> "DeliveryService":
    """
    Get application-scoped delivery service singleton.

    The API routes and the scheduled jobs share this instance, so with the
    in-memory backend they operate on the same records.

    Returns:
        DeliveryService: Cached service built from application settings.
    """
    # Import here to avoid circular dependency
    from infrastructure.delivery import DeliveryService

    return DeliveryService(settings=get_settings())
