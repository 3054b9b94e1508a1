"""Resend email integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class ResendSettings(IntegrationSettings):
    """Resend transactional email API configuration.

    Environment Variables:
        RESEND_API_KEY: Resend API key (email channel disabled when unset)
        RESEND_API_URL: Resend API base URL
        RESEND_FROM_ADDRESS: Default sender address

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        if settings.resend.RESEND_API_KEY:
            ...
        ```
    """

    RESEND_API_KEY: str | None = Field(default=None, alias="RESEND_API_KEY")
    RESEND_API_URL: str = Field(
        default="https://api.resend.com", alias="RESEND_API_URL"
    )
    RESEND_FROM_ADDRESS: str = Field(
        default="Pittsford Performance Care <onboarding@resend.dev>",
        alias="RESEND_FROM_ADDRESS",
    )
