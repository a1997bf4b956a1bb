"""
Auto-posting engine.

Posts every line of a remittance batch against its claim, one transaction
per line, and records what could not be posted as human-readable batch
exceptions. Partial success is the normal outcome: a bad line never stops
the lines after it, and lines already committed stay committed whatever
happens later.

Per line, in stored order:

- already posted lines are skipped (re-running a batch is a no-op for them)
- unknown claim                      -> "Claim {id} not found"
- line paid > claim total charged    -> "Payment amount exceeds charges for claim {id}"
- negative or over-line-charge amounts -> reconciliation exception
- ledger rejection or store fault    -> "Error processing claim {id}: {reason}"
- second line for a claim in the batch -> "Duplicate claim {id} in batch"

A malformed upload (`exception` or `failed` with parse errors) is refused
until it is reopened. Afterwards the batch is `exception` if any exception
was recorded, else `posted`. Only a missing batch (404), a batch that cannot
be auto-posted (409) or a failure to save the batch outcome propagates to
the caller.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rcm.models.database import RemittanceBatch
from rcm.models.enums import BatchStatus
from rcm.services.audit import AuditSink, default_audit_sink
from rcm.services.posting.ledger import ClaimLedger
from rcm.utils.cache import Cache, invalidate_posting_stats
from rcm.utils.clock import utcnow
from rcm.utils.decimal_utils import ZERO, to_money
from rcm.utils.errors import ConflictError, ErrorKind, NotFoundError
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

# Upload outcomes that still carry unparsed remittance content
UNPARSED_BATCH_STATUSES = (BatchStatus.EXCEPTION, BatchStatus.FAILED)


@dataclass
class AutoPostSummary:
    era_id: int
    auto_posted_count: int
    exceptions_count: int
    exceptions: List[str]
    status: BatchStatus
    already_posted_count: int = 0
    infrastructure_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "eraId": self.era_id,
            "autoPostedCount": self.auto_posted_count,
            "exceptionsCount": self.exceptions_count,
            "exceptions": list(self.exceptions),
            "status": self.status.value,
            "alreadyPostedCount": self.already_posted_count,
        }


@dataclass(frozen=True)
class _LineSnapshot:
    """Plain copy of a line item so a per-line rollback cannot touch the loop."""

    id: int
    claim_number: str
    charged_amount: Decimal
    paid_amount: Decimal
    adjustment_amount: Decimal
    adjustment_reason: Optional[str]
    posted: bool


@dataclass
class _Progress:
    auto_posted: int = 0
    already_posted: int = 0
    infrastructure_failures: int = 0
    exceptions: List[str] = field(default_factory=list)


def describe_fault(error: Exception) -> str:
    """Short, single-line reason for a store fault."""
    original = getattr(error, "orig", None)
    text = str(original if original is not None else error).strip()
    return text.splitlines()[0] if text else type(error).__name__


class AutoPostingEngine:
    """Posts remittance batches through the claim ledger."""

    def __init__(
        self,
        db: Session,
        ledger: Optional[ClaimLedger] = None,
        audit_sink: Optional[AuditSink] = None,
        cache: Optional[Cache] = None,
    ):
        self.db = db
        self.ledger = ledger or ClaimLedger(db)
        self.audit_sink = audit_sink or default_audit_sink
        self.cache = cache

    def auto_post_batch(
        self,
        era_id: int,
        operator_id: str,
        provider_id: Optional[str] = None,
    ) -> AutoPostSummary:
        """
        Auto-post one remittance batch.

        Args:
            era_id: Remittance batch id
            operator_id: Operator recorded on postings and on the batch
            provider_id: When given, the batch must belong to this provider

        Raises:
            NotFoundError: If the batch does not exist (or belongs to another provider)
            ConflictError: If the batch is archived or still carries parse errors from upload
            SQLAlchemyError: If loading the batch or saving its outcome fails
        """
        batch = self._load_batch(era_id, provider_id)
        lines = [
            _LineSnapshot(
                id=line.id,
                claim_number=line.claim_number,
                charged_amount=to_money(line.charged_amount),
                paid_amount=to_money(line.paid_amount),
                adjustment_amount=to_money(line.adjustment_amount),
                adjustment_reason=line.adjustment_reason,
                posted=bool(line.posted),
            )
            for line in batch.line_items
        ]
        # End the read transaction before per-line transactions start
        self.db.commit()

        logger.info("ERA auto-post started", era_id=era_id, operator_id=operator_id, lines=len(lines))

        progress = _Progress()
        for line in lines:
            self._post_line(era_id, line, operator_id, progress)

        status = BatchStatus.EXCEPTION if progress.exceptions else BatchStatus.POSTED
        self._finish_batch(era_id, status, progress.exceptions, operator_id)

        summary = AutoPostSummary(
            era_id=era_id,
            auto_posted_count=progress.auto_posted,
            exceptions_count=len(progress.exceptions),
            exceptions=progress.exceptions,
            status=status,
            already_posted_count=progress.already_posted,
            infrastructure_failures=progress.infrastructure_failures,
        )

        logger.info(
            "ERA auto-post complete",
            era_id=era_id,
            status=status.value,
            auto_posted=summary.auto_posted_count,
            already_posted=summary.already_posted_count,
            exceptions=summary.exceptions_count,
            infrastructure_failures=summary.infrastructure_failures,
        )
        self.audit_sink.record(
            "era.auto_post",
            "remittance_batch",
            era_id,
            operator_id,
            {
                "status": status.value,
                "auto_posted_count": summary.auto_posted_count,
                "exceptions_count": summary.exceptions_count,
            },
        )
        invalidate_posting_stats(self.cache, operator_id)
        return summary

    def _load_batch(self, era_id: int, provider_id: Optional[str]) -> RemittanceBatch:
        batch = self.db.get(RemittanceBatch, era_id)
        if batch is None or (provider_id is not None and batch.provider_id != provider_id):
            raise NotFoundError("ERA", era_id)
        if batch.archived_at is not None:
            raise ConflictError(f"ERA {era_id} is archived")
        if batch.parse_errors and not batch.auto_posted and batch.status in UNPARSED_BATCH_STATUSES:
            raise ConflictError(
                f"ERA {era_id} has unresolved parse errors; reopen it after correction",
                details={"status": batch.status.value, "parse_errors": list(batch.parse_errors)},
            )
        return batch

    def _post_line(self, era_id: int, line: _LineSnapshot, operator_id: str, progress: _Progress) -> None:
        if line.posted:
            progress.already_posted += 1
            return

        claim_number = line.claim_number
        try:
            lookup = self.ledger.lookup_claim(claim_number)
            if not lookup.ok:
                self.db.rollback()
                progress.exceptions.append(f"Claim {claim_number} not found")
                return

            if line.paid_amount > to_money(lookup.value.total_charged):
                self.db.rollback()
                progress.exceptions.append(f"Payment amount exceeds charges for claim {claim_number}")
                return

            mismatch = self._reconcile_line(line)
            if mismatch is not None:
                self.db.rollback()
                progress.exceptions.append(mismatch)
                return

            result = self.ledger.apply_posting(
                claim_number,
                line.paid_amount,
                line.adjustment_amount,
                line.adjustment_reason,
                operator_id,
                batch_id=era_id,
                line_item_id=line.id,
                auto_posted=True,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            progress.infrastructure_failures += 1
            progress.exceptions.append(f"Error processing claim {claim_number}: {describe_fault(e)}")
            logger.error(
                "Line posting failed",
                era_id=era_id,
                line_item_id=line.id,
                claim_number=claim_number,
                error=str(e),
            )
            return

        if not result.ok:
            if result.error_kind == ErrorKind.NOT_FOUND:
                progress.exceptions.append(f"Claim {claim_number} not found")
            else:
                progress.exceptions.append(f"Error processing claim {claim_number}: {result.message}")
            return

        if result.value.already_posted:
            if result.value.line_item_id != line.id:
                # The claim was posted by another line of this batch
                progress.exceptions.append(f"Duplicate claim {claim_number} in batch")
                return
            progress.already_posted += 1
        else:
            progress.auto_posted += 1

    @staticmethod
    def _reconcile_line(line: _LineSnapshot) -> Optional[str]:
        """Check the line against its own charge; a zero charge means none was reported."""
        if line.paid_amount < ZERO or line.adjustment_amount < ZERO:
            return f"Invalid remittance amounts for claim {line.claim_number}"
        if line.charged_amount > ZERO and line.paid_amount > line.charged_amount:
            return f"Paid amount exceeds line charge for claim {line.claim_number}"
        return None

    def _finish_batch(self, era_id: int, status: BatchStatus, exceptions: List[str], operator_id: str) -> None:
        try:
            batch = self.db.get(RemittanceBatch, era_id)
            batch.status = status
            batch.auto_posted = True
            batch.exceptions = list(exceptions)
            batch.processed_at = utcnow()
            batch.processed_by = operator_id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save ERA outcome", era_id=era_id, error=str(e))
            raise
