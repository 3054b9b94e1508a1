"""Delivery service configuration settings - main aggregator."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Integration settings
from infrastructure.configuration.integrations import (
    AwsSettings,
    ResendSettings,
    TwilioSettings,
)

# Infrastructure settings
from infrastructure.configuration.infrastructure import (
    DeliverySettings,
    ServerSettings,
)


class Settings(BaseSettings):
    """Delivery service configuration settings - main aggregator.

    Aggregates all domain-specific settings into a single configuration object.
    Settings are organized by concern:

    - **Integrations**: Outbound providers (Resend, Twilio) and AWS storage
    - **Infrastructure**: Core system configurations (delivery retry queue, server)

    Environment Variables:
        PREFIX: Environment prefix for non-production deployments
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        GIT_SHA: Git commit SHA for deployment tracking

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        # Access integration settings
        resend_key = settings.resend.RESEND_API_KEY
        aws_region = settings.aws.AWS_REGION

        # Access infrastructure settings
        batch_size = settings.delivery.batch_size

        # Check environment
        if settings.is_production:
            # Production-specific logic...
        ```
    """

    # Application-level settings
    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    # Integration settings
    aws: AwsSettings
    resend: ResendSettings
    twilio: TwilioSettings

    # Infrastructure settings
    server: ServerSettings
    delivery: DeliverySettings

    @property
    def is_production(self) -> bool:
        """Check if the application is running in production.

        Returns:
            True if PREFIX is empty (production), False otherwise.
        """
        return not bool(self.PREFIX)

    def __init__(self, **kwargs):
        """Initialize Settings with automatic subsettings instantiation.

        Args:
            **kwargs: Optional overrides for specific settings sections.
        """
        settings_map = {
            # Integrations
            "aws": AwsSettings,
            "resend": ResendSettings,
            "twilio": TwilioSettings,
            # Infrastructure
            "server": ServerSettings,
            "delivery": DeliverySettings,
        }

        for setting_name, setting_class in settings_map.items():
            if setting_name not in kwargs:
                kwargs[setting_name] = setting_class()

        super().__init__(**kwargs)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )
