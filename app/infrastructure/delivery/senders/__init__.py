"""Channel senders.

Each sender attempts one delivery and classifies the outcome as an
OperationResult.
"""

from infrastructure.delivery.senders.base import Sender, render_template
from infrastructure.delivery.senders.email import EmailSender
from infrastructure.delivery.senders.sms import SmsSender
from infrastructure.delivery.senders.webhook import WebhookSender

__all__ = [
    "Sender",
    "render_template",
    "WebhookSender",
    "EmailSender",
    "SmsSender",
]
