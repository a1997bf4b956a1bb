"""
Database models package.

    from rcm.models import Claim, RemittanceBatch
    from rcm.models.enums import BatchStatus
"""
from rcm.models.enums import (
    BatchStatus,
    ClaimStatus,
    POSTABLE_CLAIM_STATUSES,
    REOPENABLE_BATCH_STATUSES,
)
from rcm.models.database import (
    Claim,
    PaymentPosting,
    RemittanceBatch,
    RemittanceLineItem,
)

__all__ = [
    # Enums
    "BatchStatus",
    "ClaimStatus",
    "POSTABLE_CLAIM_STATUSES",
    "REOPENABLE_BATCH_STATUSES",
    # Claims
    "Claim",
    "PaymentPosting",
    # Remittances
    "RemittanceBatch",
    "RemittanceLineItem",
]
