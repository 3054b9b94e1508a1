"""Infrastructure layer for the notification delivery service.

Centralized infrastructure components:
- configuration: Settings management (Settings, DeliverySettings)
- logging: Structured logging setup and context binding
- operations: Operation results and error classification
- delivery: Retry scheduler, stores, senders and rate limiting
- audit: Delivery audit log
- services: Dependency injection services (SettingsDep, DeliveryServiceDep, get_settings)
"""

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
]
