"""
Bulk batch processor.

Trusted path for batches an operator already validated elsewhere: each batch
is moved `pending -> posted` with a guarded UPDATE and no claim-level work.
The guard (`WHERE status = 'pending'`) makes concurrent requests safe: the
loser sees zero rows updated and reports the batch as not pending.

The call never fails as a whole; every id gets its own result.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rcm.models.database import RemittanceBatch
from rcm.models.enums import BatchStatus
from rcm.services.audit import AuditSink, default_audit_sink
from rcm.services.posting.engine import describe_fault
from rcm.utils.cache import Cache, invalidate_posting_stats
from rcm.utils.clock import utcnow
from rcm.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BulkPostResult:
    id: Any
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


def _coerce_id(era_id: Any) -> Optional[int]:
    if isinstance(era_id, bool):
        return None
    if isinstance(era_id, int):
        return era_id
    if isinstance(era_id, str) and era_id.strip().isdigit():
        return int(era_id.strip())
    return None


class BulkBatchProcessor:
    def __init__(
        self,
        db: Session,
        audit_sink: Optional[AuditSink] = None,
        cache: Optional[Cache] = None,
    ):
        self.db = db
        self.audit_sink = audit_sink or default_audit_sink
        self.cache = cache

    def bulk_post(
        self,
        era_ids: Iterable[Any],
        operator_id: str,
        provider_id: Optional[str] = None,
    ) -> List[BulkPostResult]:
        """
        Transition each pending batch to posted.

        Args:
            era_ids: Batch ids (ints or digit strings); order is kept in the result
            operator_id: Recorded as `processed_by`
            provider_id: When given, only that provider's batches are touched

        Returns:
            One BulkPostResult per requested id
        """
        results = [self._post_one(era_id, operator_id, provider_id) for era_id in era_ids]

        succeeded = sum(1 for result in results if result.success)
        logger.info(
            "Bulk ERA post complete",
            operator_id=operator_id,
            requested=len(results),
            succeeded=succeeded,
        )
        self.audit_sink.record(
            "era.bulk_post",
            "remittance_batch",
            [result.id for result in results if result.success],
            operator_id,
            {"requested": len(results), "succeeded": succeeded},
        )
        if succeeded:
            invalidate_posting_stats(self.cache, operator_id)
        return results

    def _post_one(self, era_id: Any, operator_id: str, provider_id: Optional[str]) -> BulkPostResult:
        batch_id = _coerce_id(era_id)
        if batch_id is None:
            return BulkPostResult(id=era_id, success=False, error=f"Invalid ERA id {era_id!r}")

        conditions = [
            RemittanceBatch.id == batch_id,
            RemittanceBatch.status == BatchStatus.PENDING,
            RemittanceBatch.archived_at.is_(None),
        ]
        if provider_id is not None:
            conditions.append(RemittanceBatch.provider_id == provider_id)

        statement = (
            update(RemittanceBatch)
            .where(*conditions)
            .values(
                status=BatchStatus.POSTED,
                processed_at=utcnow(),
                processed_by=operator_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            rowcount = self.db.execute(statement).rowcount
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Bulk ERA post failed", era_id=batch_id, error=str(e))
            return BulkPostResult(id=batch_id, success=False, error=describe_fault(e))

        if rowcount == 0:
            return BulkPostResult(id=batch_id, success=False, error=f"ERA {batch_id} is not pending")
        return BulkPostResult(id=batch_id, success=True)
