"""
Custom Exceptions
Tagged error variants raised by the claim lifecycle services.

Every error carries a machine-readable ``kind`` and a ``details`` payload so
callers (and batch result records) can branch on the variant instead of the
message text.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Closed set of error variants."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION = "validation"
    ALREADY_EXISTS = "already_exists"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    UNEXPECTED = "unexpected"


class ClaimLifecycleError(Exception):
    """Base exception for claim lifecycle errors."""

    kind: ErrorKind

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for batch results and audit records."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": {
                key: value.value if isinstance(value, Enum) else value
                for key, value in self.details.items()
            },
        }


class NotFoundError(ClaimLifecycleError):
    """Raised when a claim or related record is missing"""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            resource=resource,
            identifier=str(identifier),
        )
        self.resource = resource
        self.identifier = str(identifier)


class InvalidTransitionError(ClaimLifecycleError):
    """Raised when the requested status is not reachable from the current one"""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        claim_id: Optional[str],
        from_status: Any,
        to_status: Any,
        allowed: Optional[list[Any]] = None,
    ):
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        allowed_values = [getattr(s, "value", s) for s in (allowed or [])]
        super().__init__(
            f"Invalid status transition from '{from_value}' to '{to_value}'",
            claim_id=claim_id,
            from_status=from_value,
            to_status=to_value,
            allowed=allowed_values,
        )
        self.claim_id = claim_id
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed_values


class ValidationError(ClaimLifecycleError):
    """Raised when required data is missing or inconsistent"""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: Optional[list[str]] = None, **details: Any):
        super().__init__(message, errors=errors or [], **details)
        self.errors = errors or []


class AlreadyExistsError(ClaimLifecycleError):
    """Raised when a secondary claim is already linked to the primary"""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, resource: str, identifier: Any, existing_id: Optional[str] = None):
        super().__init__(
            f"{resource} already exists for {identifier}",
            resource=resource,
            identifier=str(identifier),
            existing_id=existing_id,
        )
        self.resource = resource
        self.identifier = str(identifier)
        self.existing_id = existing_id


class ConcurrentModificationError(ClaimLifecycleError):
    """Raised when the stored claim changed between read and write"""

    kind = ErrorKind.CONCURRENT_MODIFICATION

    def __init__(self, claim_id: str, expected: Any = None, actual: Any = None):
        expected_value = getattr(expected, "value", expected)
        actual_value = getattr(actual, "value", actual)
        super().__init__(
            f"Claim {claim_id} was modified concurrently "
            f"(expected {expected_value!r}, found {actual_value!r}); re-read and retry",
            claim_id=claim_id,
            expected=expected_value,
            actual=actual_value,
        )
        self.claim_id = claim_id
        self.expected = expected_value
        self.actual = actual_value


class UnexpectedError(ClaimLifecycleError):
    """Wraps a failure outside the lifecycle error set (store outage, bad input)"""

    kind = ErrorKind.UNEXPECTED

    def __init__(self, cause: BaseException):
        super().__init__(
            f"{type(cause).__name__}: {cause}",
            error_type=type(cause).__name__,
        )
        self.cause = cause
