"""
Core Enumerations for the Claim Lifecycle Core.

Claim states, submission tracking, status-change sources and the
vocabulary used by deadline tracking and coordination of benefits.
"""

from enum import Enum


# =============================================================================
# Claim Lifecycle Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    DRAFT -> SUBMITTED | CANCELLED
    SUBMITTED -> ACKNOWLEDGED | REJECTED | CANCELLED
    ACKNOWLEDGED -> PENDING | UNDER_REVIEW | PENDED | DENIED | PAID
    PENDING -> UNDER_REVIEW | PENDED | DENIED | PAID | PARTIALLY_PAID
    UNDER_REVIEW -> PENDED | APPROVED_FOR_PAYMENT | DENIED | PAID | PARTIALLY_PAID
    PENDED -> UNDER_REVIEW | PENDING | DENIED | PAID
    APPROVED_FOR_PAYMENT -> PAID | PARTIALLY_PAID
    PAID -> CLOSED | APPEALED
    PARTIALLY_PAID -> PAID | APPEALED | CLOSED
    DENIED -> APPEALED | CLOSED
    REJECTED -> RESUBMITTED | CLOSED
    APPEALED -> UNDER_REVIEW | PAID | PARTIALLY_PAID | DENIED | CLOSED
    RESUBMITTED -> SUBMITTED
    CANCELLED, CLOSED are terminal
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    PENDED = "pended"
    APPROVED_FOR_PAYMENT = "approved_for_payment"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    DENIED = "denied"
    REJECTED = "rejected"
    APPEALED = "appealed"
    RESUBMITTED = "resubmitted"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class SubmissionStatus(str, Enum):
    """Coarse clearinghouse transit tracking, independent of ClaimStatus."""

    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    CLEARING_HOUSE = "clearing_house"
    SENT_TO_PAYER = "sent_to_payer"
    ACKNOWLEDGED = "acknowledged"


class StatusChangeSource(str, Enum):
    """Origin of a status change."""

    MANUAL = "manual"  # Staff action
    EDI_277 = "edi_277"  # Inbound payer status response
    PORTAL = "portal"  # Payer portal lookup
    API = "api"  # Direct API call


# =============================================================================
# Deadline & Aging Enums
# =============================================================================


class DeadlineSeverity(str, Enum):
    """Timely filing alert severity."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class AgingBucket(str, Enum):
    """Days-since-submission buckets for aging reports."""

    DAYS_0_30 = "0-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_91_120 = "91-120"
    DAYS_120_PLUS = "120+"


# =============================================================================
# Coordination of Benefits Enums
# =============================================================================


class RelationshipToInsured(str, Enum):
    """Patient relationship to the plan subscriber."""

    SELF = "self"
    SPOUSE = "spouse"
    CHILD = "child"
    OTHER = "other"


class COBRule(str, Enum):
    """Rule that decided a coordination-of-benefits order."""

    SUBSCRIBER = "subscriber"  # Patient is the subscriber on one plan
    COURT_ORDER = "court_order"  # Custody/court decree names the primary plan
    BIRTHDAY = "birthday"  # Parent with earlier month/day is primary
    ACTIVE_COVERAGE = "active_coverage"  # Active coverage beats retiree/COBRA
    DEFAULT_ORDER = "default_order"  # Undetermined, caller order kept


class ReadinessCheckName(str, Enum):
    """Named checks evaluated before secondary claim filing."""

    IS_PRIMARY_CLAIM = "is_primary_claim"
    HAS_SECONDARY_INSURANCE = "has_secondary_insurance"
    EOB_RECEIVED = "eob_received"
    PRIMARY_PAID = "primary_paid"
    SECONDARY_NOT_FILED = "secondary_not_filed"


# =============================================================================
# Audit Enums
# =============================================================================


class AuditAction(str, Enum):
    """Actions recorded to the audit sink."""

    STATUS_CHANGED = "status_changed"
    PRIMARY_PAYMENT_RECORDED = "primary_payment_recorded"
    SECONDARY_CLAIM_GENERATED = "secondary_claim_generated"
    TIMELY_FILING_WARNING = "timely_filing_warning"
    TIMELY_FILING_CRITICAL = "timely_filing_critical"
    STALE_CLAIM_DETECTED = "stale_claim_detected"
    STATUS_INQUIRY_GENERATED = "status_inquiry_generated"
