"""
Status enumerations for database models.

Enums are string enums for JSON serialization and database storage.
"""
import enum


class ClaimStatus(str, enum.Enum):
    """Claim lifecycle status."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    DENIED = "denied"
    EXCEPTION = "exception"


# Claims a remittance may post against. Denied and exception claims are
# recovery flows; draft claims were never billed and paid claims are closed.
POSTABLE_CLAIM_STATUSES = frozenset(
    {
        ClaimStatus.SUBMITTED,
        ClaimStatus.PARTIALLY_PAID,
        ClaimStatus.DENIED,
        ClaimStatus.EXCEPTION,
    }
)


class BatchStatus(str, enum.Enum):
    """Remittance batch (ERA) status."""

    PENDING = "pending"
    POSTED = "posted"
    EXCEPTION = "exception"
    FAILED = "failed"


# Batches an operator may send back to pending for another posting attempt
REOPENABLE_BATCH_STATUSES = frozenset({BatchStatus.EXCEPTION, BatchStatus.FAILED})
