"""ERA (remittance batch) endpoints."""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from rcm.api.dependencies import get_audit_sink, get_cache
from rcm.api.middleware.auth import get_current_operator
from rcm.config.database import get_db
from rcm.config.settings import get_max_upload_bytes
from rcm.models.database import RemittanceBatch
from rcm.services.audit import AuditSink
from rcm.services.posting.bulk import BulkBatchProcessor
from rcm.services.posting.engine import AutoPostingEngine
from rcm.services.posting.stats import PostingStatsAggregator
from rcm.services.remittance.store import RemittanceBatchStore
from rcm.utils.cache import Cache
from rcm.utils.decimal_utils import money_to_str
from rcm.utils.errors import ValidationError
from rcm.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


class BulkPostRequest(BaseModel):
    era_ids: List[Union[int, str]] = Field(..., alias="eraIds", min_length=1, max_length=500)

    model_config = {"populate_by_name": True}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def batch_to_dict(batch: RemittanceBatch, include_lines: bool = False) -> dict:
    data = {
        "id": batch.id,
        "eraNumber": batch.era_number,
        "providerId": batch.provider_id,
        "payerName": batch.payer_name,
        "checkNumber": batch.check_number,
        "checkDate": _iso(batch.check_date),
        "totalAmount": money_to_str(batch.total_amount),
        "claimsCount": batch.claims_count,
        "status": batch.status.value,
        "autoPosted": batch.auto_posted,
        "exceptions": list(batch.exceptions or []),
        "fileName": batch.file_name,
        "createdAt": _iso(batch.created_at),
        "processedAt": _iso(batch.processed_at),
        "processedBy": batch.processed_by,
        "archivedAt": _iso(batch.archived_at),
    }
    if include_lines:
        data["parseErrors"] = list(batch.parse_errors or [])
        data["lineItems"] = [
            {
                "id": line.id,
                "lineNumber": line.line_number,
                "claimNumber": line.claim_number,
                "patientName": line.patient_name,
                "serviceDate": _iso(line.service_date),
                "chargedAmount": money_to_str(line.charged_amount),
                "paidAmount": money_to_str(line.paid_amount),
                "adjustmentAmount": money_to_str(line.adjustment_amount),
                "adjustmentReason": line.adjustment_reason,
                "posted": line.posted,
                "postedAt": _iso(line.posted_at),
            }
            for line in batch.line_items
        ]
    return data


@router.get("/eras")
async def get_era_queue(
    status_filter: Optional[str] = Query(None, alias="status"),
    payer: Optional[str] = Query(None, max_length=255),
    include_archived: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
):
    """
    ERA work queue for the calling provider, newest first.

    **Parameters:**
    - `status` (optional): pending, posted, exception or failed
    - `payer` (optional): case-insensitive substring of the payer name
    - `include_archived`: include archived batches
    """
    store = RemittanceBatchStore(db)
    batches = store.get_queue(
        operator_id,
        status=status_filter,
        payer_name_contains=payer,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )
    return {"eras": [batch_to_dict(batch) for batch in batches], "count": len(batches)}


@router.post("/eras/upload", status_code=status.HTTP_201_CREATED)
async def upload_era_file(
    file: UploadFile = File(...),
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """
    Upload an ERA file (X12 835 or CSV).

    Malformed files are stored too: they come back with status `exception` or
    `failed` and their parse errors, ready for manual correction.
    """
    max_bytes = get_max_upload_bytes()
    content = await file.read(max_bytes + 1)
    if not content:
        raise ValidationError("No ERA file uploaded")
    if len(content) > max_bytes:
        raise ValidationError("ERA file is too large", details={"max_bytes": max_bytes})

    file_name = file.filename or "era.txt"
    logger.info("Received ERA upload", file_name=file_name, size=len(content), operator_id=operator_id)

    batch = RemittanceBatchStore(db, audit_sink=audit_sink).create_from_upload(
        operator_id, content, file_name, operator_id
    )
    return {
        "eraId": batch.id,
        "eraNumber": batch.era_number,
        "fileName": batch.file_name,
        "status": batch.status.value,
        "claimsCount": batch.claims_count,
        "parseErrors": list(batch.parse_errors or []),
    }


@router.post("/eras/bulk-post")
async def bulk_post_eras(
    request: BulkPostRequest,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    cache: Optional[Cache] = Depends(get_cache),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """
    Move already-validated pending ERAs to posted without claim-level posting.

    Always returns 200 with one `{id, success, error?}` entry per requested id.
    """
    processor = BulkBatchProcessor(db, audit_sink=audit_sink, cache=cache)
    results = processor.bulk_post(request.era_ids, operator_id, provider_id=operator_id)
    return [result.to_dict() for result in results]


@router.get("/eras/stats")
async def get_posting_stats(
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    cache: Optional[Cache] = Depends(get_cache),
):
    """Trailing-window posting metrics for the calling operator."""
    return PostingStatsAggregator(db, cache=cache).get_posting_stats(operator_id).to_dict()


@router.get("/eras/{era_id}")
async def get_era(
    era_id: int,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
):
    batch = RemittanceBatchStore(db).get(era_id, provider_id=operator_id)
    return batch_to_dict(batch, include_lines=True)


@router.post("/eras/{era_id}/auto-post")
async def auto_post_era(
    era_id: int,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    cache: Optional[Cache] = Depends(get_cache),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """
    Auto-post every line of an ERA.

    Lines that cannot be posted are reported in `exceptions`; the response is
    still 200. Only an unknown ERA gives 404.
    """
    engine = AutoPostingEngine(db, audit_sink=audit_sink, cache=cache)
    summary = engine.auto_post_batch(era_id, operator_id, provider_id=operator_id)
    return summary.to_dict()


@router.post("/eras/{era_id}/reopen")
async def reopen_era(
    era_id: int,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """Send an `exception` or `failed` ERA back to `pending` after manual correction."""
    batch = RemittanceBatchStore(db, audit_sink=audit_sink).reopen(era_id, operator_id, provider_id=operator_id)
    return batch_to_dict(batch)


@router.post("/eras/{era_id}/archive")
async def archive_era(
    era_id: int,
    operator_id: str = Depends(get_current_operator),
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    batch = RemittanceBatchStore(db, audit_sink=audit_sink).archive(era_id, operator_id, provider_id=operator_id)
    return batch_to_dict(batch)
