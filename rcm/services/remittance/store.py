"""
Remittance batch store.

Creates remittance batches (ERAs) with their line items and serves the
operator work queue. A batch and its lines are written in one transaction.
Malformed content is still stored: the batch lands in `exception` (some
lines recovered) or `failed` (nothing recovered) with the parse errors as
its exceptions, waiting for manual correction and `reopen`.

Batches are never deleted; `archive` hides them from the queue.
"""
import secrets
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rcm.models.database import RemittanceBatch, RemittanceLineItem
from rcm.models.enums import BatchStatus, REOPENABLE_BATCH_STATUSES
from rcm.services.audit import AuditSink, default_audit_sink
from rcm.services.integrations.payer_adapter import PayerAdapter
from rcm.services.remittance.era_parser import ParsedERA, parse_era_data
from rcm.utils.clock import utcnow
from rcm.utils.errors import ConflictError, InvalidArgumentError, NotFoundError
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE_LIMIT = 100
MAX_QUEUE_LIMIT = 500


def generate_era_number() -> str:
    """`ERA-YYYYMMDDHHMMSS-xxxxxx`; the random suffix keeps same-second uploads apart."""
    return f"ERA-{utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(3)}"


def parse_batch_status(value: Union[BatchStatus, str, None]) -> Optional[BatchStatus]:
    if value is None or isinstance(value, BatchStatus):
        return value
    try:
        return BatchStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(status.value for status in BatchStatus)
        raise InvalidArgumentError(f"Unknown ERA status '{value}'", details={"allowed": allowed}) from None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _decode(raw: Union[bytes, str]) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8-sig", errors="replace")
    return raw


class RemittanceBatchStore:
    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None):
        self.db = db
        self.audit_sink = audit_sink or default_audit_sink

    def get(self, era_id: int, provider_id: Optional[str] = None) -> RemittanceBatch:
        """
        Load a batch.

        Raises:
            NotFoundError: If it does not exist or belongs to another provider
        """
        batch = self.db.get(RemittanceBatch, era_id)
        if batch is None or (provider_id is not None and batch.provider_id != provider_id):
            raise NotFoundError("ERA", era_id)
        return batch

    def get_queue(
        self,
        provider_id: str,
        status: Union[BatchStatus, str, None] = None,
        payer_name_contains: Optional[str] = None,
        include_archived: bool = False,
        limit: int = DEFAULT_QUEUE_LIMIT,
        offset: int = 0,
    ) -> List[RemittanceBatch]:
        """
        The provider's batches, newest first.

        Args:
            provider_id: Owning provider
            status: Optional status filter
            payer_name_contains: Case-insensitive substring of the payer name
            include_archived: Include archived batches
            limit / offset: Paging (limit capped at MAX_QUEUE_LIMIT)

        Raises:
            InvalidArgumentError: For an unknown status value
        """
        query = self.db.query(RemittanceBatch).filter(RemittanceBatch.provider_id == provider_id)

        batch_status = parse_batch_status(status)
        if batch_status is not None:
            query = query.filter(RemittanceBatch.status == batch_status)
        if payer_name_contains:
            pattern = f"%{_escape_like(payer_name_contains.strip())}%"
            query = query.filter(RemittanceBatch.payer_name.ilike(pattern, escape="\\"))
        if not include_archived:
            query = query.filter(RemittanceBatch.archived_at.is_(None))

        limit = max(1, min(limit, MAX_QUEUE_LIMIT))
        return (
            query.order_by(RemittanceBatch.created_at.desc(), RemittanceBatch.id.desc())
            .offset(max(offset, 0))
            .limit(limit)
            .all()
        )

    def create_from_upload(
        self,
        provider_id: str,
        raw_content: Union[bytes, str],
        file_name: str,
        operator_id: Optional[str] = None,
    ) -> RemittanceBatch:
        """
        Store an uploaded remittance file as a new batch.

        Raises:
            SQLAlchemyError: If the batch cannot be written (nothing is kept)
        """
        text = _decode(raw_content)
        parsed = parse_era_data(raw_content)
        batch = self._create_batch(provider_id, text, file_name, parsed, operator_id)
        self.audit_sink.record(
            "era.upload",
            "remittance_batch",
            batch.id,
            operator_id or provider_id,
            {"era_number": batch.era_number, "status": batch.status.value, "claims_count": batch.claims_count},
        )
        return batch

    def create_from_fetch(
        self,
        adapter: PayerAdapter,
        check_number: str,
        provider_id: str,
        operator_id: Optional[str] = None,
    ) -> RemittanceBatch:
        """Pull a remittance from a payer connection and store it like an upload."""
        with adapter:
            fetched = adapter.fetch_remittance(check_number)
        batch = self.create_from_upload(provider_id, fetched.content, fetched.file_name, operator_id)
        if fetched.payer_name and not batch.payer_name:
            batch.payer_name = fetched.payer_name
            self._commit("Failed to record payer name", batch.id)
        logger.info("Remittance fetched", adapter=adapter.name, check_number=check_number, era_id=batch.id)
        return batch

    def _create_batch(
        self,
        provider_id: str,
        text: str,
        file_name: str,
        parsed: ParsedERA,
        operator_id: Optional[str],
    ) -> RemittanceBatch:
        if parsed.is_valid:
            status, exceptions = BatchStatus.PENDING, []
        elif parsed.claims:
            status, exceptions = BatchStatus.EXCEPTION, list(parsed.errors)
        else:
            status, exceptions = BatchStatus.FAILED, list(parsed.errors)

        batch = RemittanceBatch(
            era_number=generate_era_number(),
            provider_id=provider_id,
            payer_name=parsed.payer_name,
            check_number=parsed.check_number,
            check_date=parsed.check_date,
            total_amount=parsed.total_amount,
            claims_count=len(parsed.claims),
            status=status,
            auto_posted=False,
            exceptions=exceptions,
            file_name=file_name,
            raw_content=text,
            parse_errors=list(parsed.errors) or None,
            created_by=operator_id or provider_id,
        )
        batch.line_items = [
            RemittanceLineItem(
                line_number=position,
                claim_number=claim.claim_number,
                patient_name=claim.patient_name,
                service_date=claim.service_date,
                charged_amount=claim.charged_amount,
                paid_amount=claim.paid_amount,
                adjustment_amount=claim.adjustment_amount,
                adjustment_reason=claim.adjustment_reason,
            )
            for position, claim in enumerate(parsed.claims, start=1)
        ]
        self.db.add(batch)
        self._commit("Failed to store ERA", None)

        logger.info(
            "ERA stored",
            era_id=batch.id,
            era_number=batch.era_number,
            provider_id=provider_id,
            status=status.value,
            claims_count=batch.claims_count,
            parse_errors=len(parsed.errors),
        )
        return batch

    def reopen(self, era_id: int, operator_id: str, provider_id: Optional[str] = None) -> RemittanceBatch:
        """
        Send an `exception` or `failed` batch back to `pending` and clear its exceptions.

        Raises:
            NotFoundError: If the batch does not exist
            ConflictError: If the batch is in any other status or archived
        """
        conditions = [
            RemittanceBatch.id == era_id,
            RemittanceBatch.status.in_(list(REOPENABLE_BATCH_STATUSES)),
            RemittanceBatch.archived_at.is_(None),
        ]
        if provider_id is not None:
            conditions.append(RemittanceBatch.provider_id == provider_id)

        statement = (
            update(RemittanceBatch)
            .where(*conditions)
            .values(status=BatchStatus.PENDING, exceptions=[], updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        rowcount = self.db.execute(statement).rowcount
        self._commit("Failed to reopen ERA", era_id)

        batch = self.get(era_id, provider_id)
        self.db.refresh(batch)
        if rowcount == 0:
            raise ConflictError(
                f"ERA {era_id} cannot be reopened from status {batch.status.value}",
                details={"status": batch.status.value, "archived": batch.archived_at is not None},
            )

        self.audit_sink.record("era.reopen", "remittance_batch", era_id, operator_id, {})
        logger.info("ERA reopened", era_id=era_id, operator_id=operator_id)
        return batch

    def archive(self, era_id: int, operator_id: str, provider_id: Optional[str] = None) -> RemittanceBatch:
        """Hide a batch from the queue. Archiving twice keeps the first timestamp."""
        batch = self.get(era_id, provider_id)
        if batch.archived_at is None:
            batch.archived_at = utcnow()
            self._commit("Failed to archive ERA", era_id)
            self.audit_sink.record("era.archive", "remittance_batch", era_id, operator_id, {})
            logger.info("ERA archived", era_id=era_id, operator_id=operator_id)
        return batch

    def submit_to_payer(self, era_id: int, adapter: PayerAdapter, provider_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Report a posted batch back to its payer connection.

        Raises:
            ConflictError: If the batch is not posted
        """
        batch = self.get(era_id, provider_id)
        if batch.status != BatchStatus.POSTED:
            raise ConflictError(f"ERA {era_id} is not posted")
        with adapter:
            return adapter.submit_for_posting(batch)

    def _commit(self, failure_message: str, era_id: Optional[int]) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(failure_message, era_id=era_id, error=str(e))
            raise
