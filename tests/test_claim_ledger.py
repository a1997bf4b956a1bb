"""Tests for the claim ledger (single write path for claim balances)."""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from rcm.models.database import PaymentPosting, RemittanceLineItem
from rcm.models.enums import ClaimStatus
from rcm.services.posting.ledger import ClaimLedger
from rcm.utils.errors import ErrorKind
from tests.factories import ClaimFactory, RemittanceBatchFactory, RemittanceLineItemFactory


@pytest.mark.unit
class TestLookupClaim:
    def test_lookup_existing_claim(self, db_session, sample_claim):
        result = ClaimLedger(db_session).lookup_claim("CLM001")

        assert result.ok
        assert result.value.id == sample_claim.id

    def test_lookup_missing_claim(self, db_session):
        result = ClaimLedger(db_session).lookup_claim("NOPE")

        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.message == "Claim NOPE not found"


@pytest.mark.unit
class TestApplyPosting:
    def test_full_payment_marks_claim_paid(self, db_session, sample_claim):
        result = ClaimLedger(db_session).apply_posting(
            "CLM001", Decimal("120.00"), Decimal("30.00"), "CO-45", "op-1"
        )

        assert result.ok
        posting = result.value
        assert posting.claim_status == ClaimStatus.PAID
        assert posting.paid_amount == Decimal("120.00")
        assert posting.claim_paid_total == Decimal("120.00")
        assert posting.remaining_balance == Decimal("30.00")
        assert posting.already_posted is False

        db_session.expire_all()
        assert sample_claim.paid_amount == Decimal("120.00")
        assert sample_claim.adjustment_amount == Decimal("30.00")
        assert sample_claim.status == ClaimStatus.PAID

    def test_partial_payment_marks_claim_partially_paid(self, db_session, sample_claim):
        result = ClaimLedger(db_session).apply_posting("CLM001", "50.00", operator_id="op-1")

        assert result.ok
        assert result.value.claim_status == ClaimStatus.PARTIALLY_PAID
        assert result.value.remaining_balance == Decimal("100.00")

    def test_zero_dollar_posting_keeps_status(self, db_session, sample_claim):
        result = ClaimLedger(db_session).apply_posting("CLM001", "0.00", "0.00", "CO-50", "op-1")

        assert result.ok
        assert result.value.claim_status == ClaimStatus.SUBMITTED
        assert db_session.query(PaymentPosting).count() == 1

    def test_payments_accumulate(self, db_session, sample_claim):
        ledger = ClaimLedger(db_session)
        ledger.apply_posting("CLM001", "50.00", operator_id="op-1", auto_posted=False)
        result = ledger.apply_posting("CLM001", "100.00", operator_id="op-1", auto_posted=False)

        assert result.ok
        assert result.value.claim_paid_total == Decimal("150.00")
        assert result.value.claim_status == ClaimStatus.PAID
        assert db_session.query(PaymentPosting).count() == 2

    def test_posting_records_operator_and_origin(self, db_session, sample_claim):
        ClaimLedger(db_session).apply_posting(
            "CLM001", "10.00", operator_id="op-7", auto_posted=False
        )

        posting = db_session.query(PaymentPosting).one()
        assert posting.posted_by == "op-7"
        assert posting.auto_posted is False
        assert posting.batch_id is None
        assert posting.posted_at is not None

    def test_unknown_claim_is_not_found(self, db_session):
        result = ClaimLedger(db_session).apply_posting("MISSING", "10.00")

        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert db_session.query(PaymentPosting).count() == 0

    def test_amount_over_remaining_balance_is_rejected(self, db_session, sample_claim):
        ledger = ClaimLedger(db_session)
        ledger.apply_posting("CLM001", "100.00")
        result = ledger.apply_posting("CLM001", "60.00")

        assert not result.ok
        assert result.error_kind == ErrorKind.AMOUNT_EXCEEDS_CHARGES
        db_session.expire_all()
        assert sample_claim.paid_amount == Decimal("100.00")

    @pytest.mark.parametrize("paid, adjustment", [("-1.00", "0"), ("10.00", "-5"), ("abc", "0")])
    def test_invalid_amounts_are_rejected(self, db_session, sample_claim, paid, adjustment):
        result = ClaimLedger(db_session).apply_posting("CLM001", paid, adjustment)

        assert not result.ok
        assert result.error_kind == ErrorKind.INVALID_AMOUNT

    @pytest.mark.parametrize("status", [ClaimStatus.PAID, ClaimStatus.DRAFT])
    def test_closed_or_draft_claim_is_not_postable(self, db_session, status):
        ClaimFactory(claim_number="CLM900", status=status)

        result = ClaimLedger(db_session).apply_posting("CLM900", "10.00")

        assert not result.ok
        assert result.error_kind == ErrorKind.INVALID_STATE
        assert "cannot be posted" in result.message

    def test_denied_claim_can_still_be_posted(self, db_session):
        ClaimFactory(claim_number="CLM901", status=ClaimStatus.DENIED)

        result = ClaimLedger(db_session).apply_posting("CLM901", "10.00")

        assert result.ok
        assert result.value.claim_status == ClaimStatus.PARTIALLY_PAID

    def test_zero_payment_with_full_adjustment_closes_claim(self, db_session, sample_claim):
        result = ClaimLedger(db_session).apply_posting("CLM001", "0.00", "150.00", "CO-97")

        assert result.ok
        assert result.value.claim_status == ClaimStatus.PAID
        assert result.value.claim_paid_total == Decimal("0.00")


@pytest.mark.unit
class TestBatchPostingIdempotence:
    def test_line_item_marked_posted_with_posting(self, db_session, sample_claim):
        batch = RemittanceBatchFactory()
        line = RemittanceLineItemFactory(batch=batch, claim_number="CLM001")

        result = ClaimLedger(db_session).apply_posting(
            "CLM001", line.paid_amount, line.adjustment_amount, batch_id=batch.id, line_item_id=line.id
        )

        assert result.ok
        db_session.expire_all()
        stored = db_session.get(RemittanceLineItem, line.id)
        assert stored.posted is True
        assert stored.posted_at is not None

    def test_second_posting_for_same_batch_returns_prior(self, db_session, sample_claim):
        batch = RemittanceBatchFactory()
        ledger = ClaimLedger(db_session)

        first = ledger.apply_posting("CLM001", "100.00", batch_id=batch.id)
        second = ledger.apply_posting("CLM001", "100.00", batch_id=batch.id)

        assert first.ok and second.ok
        assert second.value.already_posted is True
        assert second.value.posting_id == first.value.posting_id
        assert second.value.line_item_id is None
        assert db_session.query(PaymentPosting).count() == 1
        db_session.expire_all()
        assert sample_claim.paid_amount == Decimal("100.00")


@pytest.mark.unit
class TestStoreFaults:
    def test_store_fault_rolls_back_and_raises(self, db_session, sample_claim, mocker):
        ledger = ClaimLedger(db_session)
        mocker.patch.object(
            db_session,
            "flush",
            side_effect=OperationalError("UPDATE claims", {}, Exception("database is locked")),
        )

        with pytest.raises(OperationalError):
            ledger.apply_posting("CLM001", "10.00")

        mocker.stopall()
        db_session.expire_all()
        assert sample_claim.paid_amount == Decimal("0.00")
        assert db_session.query(PaymentPosting).count() == 0
