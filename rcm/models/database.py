"""
SQLAlchemy models for claims, remittance batches and payment postings.

Models:
- Claim: a billed service awaiting or having received reimbursement
- RemittanceBatch: one payer remittance transmission (ERA)
- RemittanceLineItem: one claim-level entry inside a batch
- PaymentPosting: the durable result of applying a line (or a manual
  payment) to a claim

Money columns are Numeric(12, 2) and surface as `Decimal`.

Invariants held by the schema:
- `claims.paid_amount` is between 0 and `claims.total_charged` (CHECK)
- at most one posting per (claim, batch) pair (UNIQUE)
- line items are owned by their batch (cascade); postings reference, but
  never own, a claim

Claims and batches are never deleted. Claims only change status through the
claim ledger; batches are archived by stamping `archived_at`.
"""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship

from rcm.config.database import Base, TimestampMixin
from rcm.models.enums import BatchStatus, ClaimStatus

Money = Numeric(12, 2, asdecimal=True)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Claim(Base, TimestampMixin):
    """
    Billed healthcare service.

    Attributes:
        claim_number: Unique claim identifier referenced by remittances
        patient_id: Patient reference
        patient_name: Display name (optional)
        provider_id: Billing provider
        service_date: Date of service
        total_charged: Total charged amount
        paid_amount: Cumulative paid amount (starts at 0)
        adjustment_amount: Cumulative payer adjustments
        procedure_code / diagnosis_code: CPT and ICD-10 codes as billed
        status: ClaimStatus

    Relationships:
        postings: PaymentPosting rows applied to this claim
    """

    __tablename__ = "claims"
    __table_args__ = (
        CheckConstraint("total_charged >= 0", name="ck_claims_total_charged_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_claims_paid_non_negative"),
        CheckConstraint("paid_amount <= total_charged", name="ck_claims_paid_within_charges"),
    )

    id = Column(Integer, primary_key=True, index=True)
    claim_number = Column(String(50), unique=True, nullable=False, index=True)
    patient_id = Column(String(50), index=True)
    patient_name = Column(String(255))
    provider_id = Column(String(50), index=True)

    service_date = Column(Date)
    procedure_code = Column(String(10))
    diagnosis_code = Column(String(10))

    total_charged = Column(Money, nullable=False, default=0)
    paid_amount = Column(Money, nullable=False, default=0)
    adjustment_amount = Column(Money, nullable=False, default=0)

    status = Column(
        SQLEnum(ClaimStatus, values_callable=_enum_values, name="claim_status"),
        default=ClaimStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    submitted_at = Column(DateTime)

    postings = relationship("PaymentPosting", back_populates="claim")


class RemittanceBatch(Base, TimestampMixin):
    """
    Remittance batch (ERA).

    Attributes:
        era_number: Human-readable unique batch number
        provider_id: Provider the remittance was received for
        payer_name / check_number / check_date: Payment identification
        total_amount: Declared total of the remittance
        claims_count: Declared number of claim lines
        status: BatchStatus (pending, posted, exception, failed)
        auto_posted: Set once the auto-posting engine has run
        exceptions: Ordered list of human-readable exception strings
        file_name / raw_content: Uploaded file as received
        parse_errors: Structural errors found while parsing the upload
        processed_at / processed_by: Last posting attempt
        created_by: Operator who ingested the batch
        archived_at: Set when archived (batches are never hard-deleted)

    Relationships:
        line_items: Owned line items in stored order
        postings: PaymentPosting rows created from this batch
    """

    __tablename__ = "remittance_batches"

    id = Column(Integer, primary_key=True, index=True)
    era_number = Column(String(50), unique=True, nullable=False, index=True)
    provider_id = Column(String(50), nullable=False, index=True)

    payer_name = Column(String(255), index=True)
    check_number = Column(String(50))
    check_date = Column(Date)
    total_amount = Column(Money, nullable=False, default=0)
    claims_count = Column(Integer, nullable=False, default=0)

    status = Column(
        SQLEnum(BatchStatus, values_callable=_enum_values, name="batch_status"),
        default=BatchStatus.PENDING,
        nullable=False,
        index=True,
    )
    auto_posted = Column(Boolean, default=False, nullable=False)
    exceptions = Column(JSON, default=list, nullable=False)

    file_name = Column(String(255))
    raw_content = Column(Text)
    parse_errors = Column(JSON)

    processed_at = Column(DateTime, index=True)
    processed_by = Column(String(50))
    created_by = Column(String(50))
    archived_at = Column(DateTime)

    line_items = relationship(
        "RemittanceLineItem",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="RemittanceLineItem.line_number",
    )
    postings = relationship("PaymentPosting", back_populates="batch")


class RemittanceLineItem(Base, TimestampMixin):
    """
    One claim-level entry inside a remittance batch.

    Read-only after creation except for the `posted` marker (and its
    timestamp) set by the auto-posting engine.
    """

    __tablename__ = "remittance_line_items"
    __table_args__ = (
        UniqueConstraint("batch_id", "line_number", name="uq_line_item_batch_line"),
    )

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("remittance_batches.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)

    claim_number = Column(String(50), nullable=False, index=True)
    patient_name = Column(String(255))
    service_date = Column(Date)

    charged_amount = Column(Money, nullable=False, default=0)
    paid_amount = Column(Money, nullable=False, default=0)
    adjustment_amount = Column(Money, nullable=False, default=0)
    adjustment_reason = Column(String(20))

    posted = Column(Boolean, default=False, nullable=False)
    posted_at = Column(DateTime)

    batch = relationship("RemittanceBatch", back_populates="line_items")


class PaymentPosting(Base):
    """
    Immutable record of one payment/adjustment applied to a claim.

    `batch_id` is null for manual postings. The unique constraint on
    (claim_id, batch_id) keeps a batch from posting to the same claim twice.
    """

    __tablename__ = "payment_postings"
    __table_args__ = (
        UniqueConstraint("claim_id", "batch_id", name="uq_payment_posting_claim_batch"),
    )

    id = Column(Integer, primary_key=True, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("remittance_batches.id"), index=True)
    line_item_id = Column(Integer, ForeignKey("remittance_line_items.id"))

    paid_amount = Column(Money, nullable=False)
    adjustment_amount = Column(Money, nullable=False, default=0)
    adjustment_reason = Column(String(20))

    posted_at = Column(DateTime, nullable=False, index=True)
    posted_by = Column(String(50), nullable=False, index=True)
    auto_posted = Column(Boolean, nullable=False, default=False)

    claim = relationship("Claim", back_populates="postings")
    batch = relationship("RemittanceBatch", back_populates="postings")


__all__ = [
    "ClaimStatus",
    "BatchStatus",
    "Claim",
    "RemittanceBatch",
    "RemittanceLineItem",
    "PaymentPosting",
]
