"""Twilio SMS integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class TwilioSettings(IntegrationSettings):
    """Twilio Messages API configuration.

    Environment Variables:
        TWILIO_ACCOUNT_SID: Twilio account SID (SMS channel disabled when unset)
        TWILIO_AUTH_TOKEN: Twilio auth token
        TWILIO_PHONE_NUMBER: Sending phone number (E.164)
        TWILIO_API_URL: Twilio API base URL
    """

    TWILIO_ACCOUNT_SID: str | None = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER: str | None = Field(default=None, alias="TWILIO_PHONE_NUMBER")
    TWILIO_API_URL: str = Field(
        default="https://api.twilio.com", alias="TWILIO_API_URL"
    )

    @property
    def is_configured(self) -> bool:
        """True when every credential needed to send is present."""
        return bool(
            self.TWILIO_ACCOUNT_SID
            and self.TWILIO_AUTH_TOKEN
            and self.TWILIO_PHONE_NUMBER
        )
