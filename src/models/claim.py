"""
Claim Storage Model.

One row per claim: the columns the store filters or guards on are broken
out and indexed, the full claim document lives in a JSON column.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimeStampedModel


class ClaimRecord(Base, TimeStampedModel):
    """
    Persisted claim.

    ``status`` and ``secondary_claim_id`` are the optimistic-concurrency
    columns: guarded writes are UPDATE ... WHERE on their stored values.
    """

    __tablename__ = "claims"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Claim ID",
    )
    claim_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        comment="Provider-assigned claim number",
    )
    clearinghouse_claim_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Clearinghouse-assigned claim ID",
    )
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
        comment="Current lifecycle status",
    )
    payer_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="Billed payer",
    )
    submitted_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="First submission timestamp",
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_secondary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_secondary_insurance: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    secondary_claim_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
        comment="Linked secondary claim (set once)",
    )
    document: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        comment="Full claim document",
    )

    __table_args__ = (
        Index("ix_claims_cob_ready", "is_primary", "has_secondary_insurance", "status"),
    )

    def __repr__(self) -> str:
        return f"<ClaimRecord {self.claim_number or self.id} status={self.status}>"
