"""Tests for the bulk batch processor."""
import pytest
from sqlalchemy.exc import OperationalError

from rcm.models.database import PaymentPosting, RemittanceBatch
from rcm.models.enums import BatchStatus
from rcm.services.posting.bulk import BulkBatchProcessor, BulkPostResult
from rcm.utils.clock import utcnow
from tests.factories import ClaimFactory, RemittanceBatchFactory


@pytest.mark.unit
class TestBulkPost:
    def test_pending_batches_become_posted(self, db_session, audit_sink):
        first = RemittanceBatchFactory()
        second = RemittanceBatchFactory()

        results = BulkBatchProcessor(db_session, audit_sink=audit_sink).bulk_post([first.id, second.id], "op-1")

        assert [r.to_dict() for r in results] == [
            {"id": first.id, "success": True},
            {"id": second.id, "success": True},
        ]
        db_session.expire_all()
        for batch_id in (first.id, second.id):
            batch = db_session.get(RemittanceBatch, batch_id)
            assert batch.status == BatchStatus.POSTED
            assert batch.processed_by == "op-1"
            assert batch.processed_at is not None
        assert audit_sink.events[0]["action"] == "era.bulk_post"
        assert audit_sink.events[0]["entity_id"] == [first.id, second.id]

    def test_no_claim_level_posting_happens(self, db_session, make_batch):
        claim = ClaimFactory(claim_number="CLM500")
        batch = make_batch([("CLM500", "150.00", "150.00", "0.00")])

        BulkBatchProcessor(db_session).bulk_post([batch.id], "op-1")

        db_session.expire_all()
        assert db_session.query(PaymentPosting).count() == 0
        assert claim.paid_amount == 0

    @pytest.mark.parametrize("status", [BatchStatus.POSTED, BatchStatus.EXCEPTION, BatchStatus.FAILED])
    def test_non_pending_batch_is_rejected(self, db_session, status):
        batch = RemittanceBatchFactory(status=status)

        result, = BulkBatchProcessor(db_session).bulk_post([batch.id], "op-1")

        assert result.success is False
        assert result.error == f"ERA {batch.id} is not pending"
        db_session.expire_all()
        assert db_session.get(RemittanceBatch, batch.id).status == status

    def test_unknown_and_invalid_ids(self, db_session):
        batch = RemittanceBatchFactory()

        results = BulkBatchProcessor(db_session).bulk_post([9999, "abc", str(batch.id)], "op-1")

        assert results[0] == BulkPostResult(id=9999, success=False, error="ERA 9999 is not pending")
        assert results[1].success is False
        assert results[1].error == "Invalid ERA id 'abc'"
        assert results[2] == BulkPostResult(id=batch.id, success=True)

    def test_archived_batch_is_not_posted(self, db_session):
        batch = RemittanceBatchFactory(archived_at=utcnow())

        result, = BulkBatchProcessor(db_session).bulk_post([batch.id], "op-1")

        assert result.success is False

    def test_other_providers_batch_is_not_posted(self, db_session):
        batch = RemittanceBatchFactory(provider_id="provider-2")

        result, = BulkBatchProcessor(db_session).bulk_post([batch.id], "op-1", provider_id="provider-1")

        assert result.success is False
        db_session.expire_all()
        assert db_session.get(RemittanceBatch, batch.id).status == BatchStatus.PENDING

    def test_store_fault_is_reported_per_id(self, db_session, mocker):
        first = RemittanceBatchFactory()
        second = RemittanceBatchFactory()
        real_execute = db_session.execute
        calls = {"count": 0}

        def flaky_execute(statement, *args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("UPDATE remittance_batches", {}, Exception("database is locked"))
            return real_execute(statement, *args, **kwargs)

        mocker.patch.object(db_session, "execute", side_effect=flaky_execute)

        results = BulkBatchProcessor(db_session).bulk_post([first.id, second.id], "op-1")

        assert results[0] == BulkPostResult(id=first.id, success=False, error="database is locked")
        assert results[1] == BulkPostResult(id=second.id, success=True)

    def test_stats_cache_invalidated_only_on_success(self, db_session, cache, mock_redis):
        posted = RemittanceBatchFactory(status=BatchStatus.POSTED)

        BulkBatchProcessor(db_session, cache=cache).bulk_post([posted.id], "op-1")
        mock_redis.delete.assert_not_called()

        pending = RemittanceBatchFactory()
        BulkBatchProcessor(db_session, cache=cache).bulk_post([pending.id], "op-1")
        mock_redis.delete.assert_called_once_with("rcm:posting_stats:op-1")


@pytest.mark.integration
class TestBulkPostRace:
    def test_only_one_caller_transitions_a_batch(self, data_store, db_session):
        """Two callers posting the same batch: exactly one wins."""
        batch = RemittanceBatchFactory()
        first_session = data_store.session()
        second_session = data_store.session()
        try:
            first = BulkBatchProcessor(first_session).bulk_post([batch.id], "op-1")
            second = BulkBatchProcessor(second_session).bulk_post([batch.id], "op-2")
        finally:
            first_session.close()
            second_session.close()

        outcomes = [first[0].success, second[0].success]
        assert outcomes.count(True) == 1
        assert second[0].error == f"ERA {batch.id} is not pending"

        db_session.expire_all()
        assert db_session.get(RemittanceBatch, batch.id).processed_by == "op-1"
