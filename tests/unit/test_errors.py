"""
Unit tests for claim lifecycle errors.
"""

from src.core.enums import ClaimStatus
from src.utils.errors import (
    AlreadyExistsError,
    ClaimLifecycleError,
    ConcurrentModificationError,
    ErrorKind,
    InvalidTransitionError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)


class TestErrorVariants:
    """Tests for error kinds and payloads."""

    def test_every_variant_is_a_lifecycle_error(self):
        errors = [
            NotFoundError("Claim", "c-1"),
            InvalidTransitionError("c-1", ClaimStatus.DRAFT, ClaimStatus.PAID),
            ValidationError("bad data"),
            AlreadyExistsError("Secondary claim", "CLM-1"),
            ConcurrentModificationError("c-1"),
            UnexpectedError(RuntimeError("boom")),
        ]

        assert all(isinstance(e, ClaimLifecycleError) for e in errors)
        assert [e.kind for e in errors] == list(ErrorKind)

    def test_invalid_transition_payload(self):
        error = InvalidTransitionError(
            "c-1", ClaimStatus.DRAFT, ClaimStatus.PAID, allowed=[ClaimStatus.SUBMITTED]
        )

        assert str(error) == "Invalid status transition from 'draft' to 'paid'"
        assert error.to_dict() == {
            "kind": "invalid_transition",
            "message": "Invalid status transition from 'draft' to 'paid'",
            "details": {
                "claim_id": "c-1",
                "from_status": "draft",
                "to_status": "paid",
                "allowed": ["submitted"],
            },
        }

    def test_validation_errors_list(self):
        error = ValidationError("bad", errors=["a", "b"], claim_id="c-2")

        assert error.errors == ["a", "b"]
        assert error.details["claim_id"] == "c-2"

    def test_already_exists_keeps_existing_id(self):
        error = AlreadyExistsError("Secondary claim", "CLM-1", existing_id="s-9")

        assert error.existing_id == "s-9"
        assert error.to_dict()["details"]["existing_id"] == "s-9"

    def test_concurrent_modification_values(self):
        error = ConcurrentModificationError(
            "c-1", expected=ClaimStatus.SUBMITTED, actual=ClaimStatus.ACKNOWLEDGED
        )

        assert error.expected == "submitted"
        assert error.actual == "acknowledged"
        assert "re-read and retry" in error.message

    def test_unexpected_error_wraps_cause(self):
        cause = RuntimeError("database unavailable")
        error = UnexpectedError(cause)

        assert error.kind == ErrorKind.UNEXPECTED
        assert error.cause is cause
        assert error.message == "RuntimeError: database unavailable"
        assert error.to_dict()["details"] == {"error_type": "RuntimeError"}
