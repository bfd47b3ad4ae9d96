"""
Unit tests for core enumerations.
"""

from src.core.enums import (
    AgingBucket,
    ClaimStatus,
    COBRule,
    ReadinessCheckName,
    StatusChangeSource,
)


class TestClaimStatus:
    """Tests for ClaimStatus enum."""

    def test_status_count(self):
        assert len(ClaimStatus) == 15

    def test_values_are_snake_case(self):
        assert ClaimStatus.APPROVED_FOR_PAYMENT.value == "approved_for_payment"
        assert ClaimStatus("partially_paid") == ClaimStatus.PARTIALLY_PAID

    def test_string_comparison(self):
        assert ClaimStatus.PAID == "paid"


class TestSupportingEnums:
    """Tests for supporting enums."""

    def test_status_change_sources(self):
        assert {s.value for s in StatusChangeSource} == {"manual", "edi_277", "portal", "api"}

    def test_aging_bucket_labels(self):
        assert [b.value for b in AgingBucket] == ["0-30", "31-60", "61-90", "91-120", "120+"]

    def test_cob_rules_in_precedence_order(self):
        assert [r.value for r in COBRule] == [
            "subscriber",
            "court_order",
            "birthday",
            "active_coverage",
            "default_order",
        ]

    def test_readiness_checks(self):
        assert len(ReadinessCheckName) == 5
