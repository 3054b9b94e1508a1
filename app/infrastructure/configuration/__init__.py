"""Infrastructure configuration module - public API.

This module provides centralized configuration management for the delivery
service using Pydantic BaseSettings with domain-based organization.

Exports:
    Settings: Main settings class (for testing/overrides)
    DeliverySettings: Delivery retry queue settings class (for testing)

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    # Access settings
    resend_key = settings.resend.RESEND_API_KEY
    aws_region = settings.aws.AWS_REGION
    backend = settings.delivery.backend

    # Check environment
    if settings.is_production:
        # Production-specific logic...
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure.delivery import DeliverySettings

__all__ = ["Settings", "DeliverySettings"]
