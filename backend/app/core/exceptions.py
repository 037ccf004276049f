"""
Unified base exception classes for all services.

Each service extends ServiceError with its own base (e.g. ReferralServiceError)
so routers can translate any of them with a single `except` clause.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class InvalidTransitionError(ServiceError):
    """Raised when a status change is not allowed by the entity's state machine."""

    def __init__(self, entity: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"{entity}: transição inválida {current} -> {target}", 409)
