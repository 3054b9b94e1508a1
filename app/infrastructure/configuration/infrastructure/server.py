"""Server infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class ServerSettings(InfrastructureSettings):
    """HTTP server and scheduler runtime configuration.

    Environment Variables:
        BACKEND_URL: Backend API base URL (default: http://127.0.0.1:8000)
        SCHEDULED_TASKS_ENABLED: Run the periodic delivery jobs in-process
        MANUAL_TRIGGER_RATE_LIMIT: slowapi limit for manual trigger routes

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        if settings.server.SCHEDULED_TASKS_ENABLED:
            ...
        ```
    """

    BACKEND_URL: str = Field(default="http://127.0.0.1:8000", alias="BACKEND_URL")
    SCHEDULED_TASKS_ENABLED: bool = Field(
        default=True, alias="SCHEDULED_TASKS_ENABLED"
    )
    MANUAL_TRIGGER_RATE_LIMIT: str = Field(
        default="6/minute", alias="MANUAL_TRIGGER_RATE_LIMIT"
    )
