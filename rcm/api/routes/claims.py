"""Claim endpoints: lookup with aging, manual posting, field validation."""
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from rcm.api.dependencies import get_audit_sink, get_cache
from rcm.api.middleware.auth import get_current_operator
from rcm.config.database import get_db
from rcm.models.database import Claim
from rcm.services.audit import AuditSink
from rcm.services.posting.ledger import ClaimLedger
from rcm.utils.cache import Cache, invalidate_posting_stats
from rcm.utils.decimal_utils import money_to_str, to_money
from rcm.utils.errors import NotFoundError, PostingRejectedError
from rcm.utils.logger import get_logger
from rcm.utils.rcm_utils import (
    calculate_collection_priority,
    calculate_days_in_ar,
    format_currency,
    get_aging_bucket,
    get_collectability_score,
    validate_claim_data,
)

router = APIRouter()
logger = get_logger(__name__)


class ManualPostingRequest(BaseModel):
    """Payment entered by an operator outside any remittance batch."""

    paid_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2, alias="paidAmount")
    adjustment_amount: Decimal = Field(
        Decimal("0"), ge=0, max_digits=12, decimal_places=2, alias="adjustmentAmount"
    )
    adjustment_reason: Optional[str] = Field(None, max_length=20, alias="adjustmentReason")

    model_config = {"populate_by_name": True}


def claim_to_dict(claim: Claim) -> dict:
    balance = to_money(claim.total_charged) - to_money(claim.paid_amount)
    days_in_ar = calculate_days_in_ar(claim.submitted_at or claim.service_date)
    return {
        "id": claim.id,
        "claimNumber": claim.claim_number,
        "patientId": claim.patient_id,
        "providerId": claim.provider_id,
        "serviceDate": claim.service_date.isoformat() if claim.service_date else None,
        "procedureCode": claim.procedure_code,
        "diagnosisCode": claim.diagnosis_code,
        "status": claim.status.value,
        "totalCharged": money_to_str(claim.total_charged),
        "paidAmount": money_to_str(claim.paid_amount),
        "adjustmentAmount": money_to_str(claim.adjustment_amount),
        "balance": str(balance),
        "balanceDisplay": format_currency(balance),
        "daysInAR": days_in_ar,
        "agingBucket": get_aging_bucket(days_in_ar),
        "collectabilityScore": get_collectability_score(days_in_ar),
        "collectionPriority": calculate_collection_priority(balance, days_in_ar),
    }


@router.post("/claims/validate")
async def validate_claim(payload: Dict[str, Any] = Body(...)):
    """
    Check claim fields before billing.

    Always 200: `{"isValid": bool, "errors": [...]}`.
    """
    return validate_claim_data(payload).to_dict()


@router.get("/claims/{claim_number}")
async def get_claim(claim_number: str, db: Session = Depends(get_db)):
    """Claim financial state with its AR aging and collectability."""
    lookup = ClaimLedger(db).lookup_claim(claim_number)
    if not lookup.ok:
        raise NotFoundError("Claim", claim_number)
    return claim_to_dict(lookup.value)


@router.post("/claims/{claim_number}/postings", status_code=status.HTTP_201_CREATED)
async def post_manual_payment(
    claim_number: str,
    request: ManualPostingRequest,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    cache: Optional[Cache] = Depends(get_cache),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """
    Post a payment by hand through the claim ledger.

    Rejections map to 404 (unknown claim), 409 (claim not postable) or 422
    (amount exceeds the unpaid balance).
    """
    result = ClaimLedger(db).apply_posting(
        claim_number,
        request.paid_amount,
        request.adjustment_amount,
        request.adjustment_reason,
        operator_id,
        batch_id=None,
        auto_posted=False,
    )
    if not result.ok:
        raise PostingRejectedError(result.error_kind, result.message)

    audit_sink.record(
        "claim.manual_post",
        "claim",
        claim_number,
        operator_id,
        {"posting_id": result.value.posting_id, "paid_amount": str(result.value.paid_amount)},
    )
    invalidate_posting_stats(cache, operator_id)
    return result.value.to_dict()
