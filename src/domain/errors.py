"""
Failure taxonomy shared by every lifecycle manager.

    FreightError
    +-- NotFound
    |   +-- SubscriptionNotFound
    +-- Unauthorized
    +-- InvalidState
    +-- QuotaExceeded
    +-- Conflict          (only kind a caller may retry)
    +-- ValidationError

Each error carries a stable machine-readable ``code`` and a human-readable
``reason``.  Storage errors never leave the service layer; the unit of work
translates them into ``Conflict``.
"""

from __future__ import annotations

from typing import Any, Optional


class FreightError(Exception):
    code: str = "FREIGHT_ERROR"
    retryable: bool = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.reason, "retryable": self.retryable}


class NotFound(FreightError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class SubscriptionNotFound(NotFound):
    code = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self, user_id: int):
        super().__init__("Subscription for user", user_id)


class Unauthorized(FreightError):
    code = "UNAUTHORIZED"


class InvalidState(FreightError):
    """Raised when an entity's status does not permit the transition."""

    code = "INVALID_STATE"


class Conflict(FreightError):
    """A concurrent writer won a single-winner transition."""

    code = "CONFLICT"
    retryable = True


class ValidationError(FreightError):
    code = "VALIDATION_ERROR"


class QuotaExceeded(FreightError):
    code = "QUOTA_EXCEEDED"

    def __init__(
        self,
        reason: str,
        *,
        limit: Optional[int] = None,
        used: Optional[int] = None,
        remaining: Optional[int] = None,
        upgrade_to: Optional[str] = None,
    ):
        super().__init__(reason)
        self.limit = limit
        self.used = used
        self.remaining = remaining
        self.upgrade_to = upgrade_to

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            limit=self.limit,
            used=self.used,
            remaining=self.remaining,
            upgrade_to=self.upgrade_to,
        )
        return data
