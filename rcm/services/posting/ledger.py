"""
Claim ledger: the single write path for a claim's financial state.

Every change to `Claim.paid_amount` / `Claim.adjustment_amount` goes through
`ClaimLedger.apply_posting`, which runs as one transaction:

1. lock the claim row (SELECT ... FOR UPDATE where the backend supports it)
2. return the earlier posting if this (claim, batch) pair was already posted
3. check the claim is postable and the amount fits the unpaid balance
4. update the claim, create the PaymentPosting and mark the remittance
   line posted
5. commit

Business rejections come back as a failed `Result`; nothing is written.
Store faults roll the transaction back and are re-raised so the caller can
decide whether to continue.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rcm.models.database import Claim, PaymentPosting, RemittanceLineItem
from rcm.models.enums import ClaimStatus, POSTABLE_CLAIM_STATUSES
from rcm.utils.clock import utcnow
from rcm.utils.decimal_utils import ZERO, parse_financial_amount, to_money
from rcm.utils.errors import ErrorKind, Result
from rcm.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a successful (or previously applied) posting."""

    posting_id: int
    claim_id: int
    claim_number: str
    claim_status: ClaimStatus
    paid_amount: Decimal
    adjustment_amount: Decimal
    claim_paid_total: Decimal
    remaining_balance: Decimal
    batch_id: Optional[int] = None
    line_item_id: Optional[int] = None
    already_posted: bool = False

    def to_dict(self) -> dict:
        return {
            "postingId": self.posting_id,
            "claimNumber": self.claim_number,
            "claimStatus": self.claim_status.value,
            "paidAmount": str(self.paid_amount),
            "adjustmentAmount": str(self.adjustment_amount),
            "claimPaidTotal": str(self.claim_paid_total),
            "remainingBalance": str(self.remaining_balance),
            "batchId": self.batch_id,
            "alreadyPosted": self.already_posted,
        }


def claim_not_found_message(claim_number: str) -> str:
    return f"Claim {claim_number} not found"


class ClaimLedger:
    """Reads and posts against claims inside the caller's session."""

    def __init__(self, db: Session):
        self.db = db

    def lookup_claim(self, claim_number: str) -> Result[Claim]:
        """
        Find a claim by its claim number.

        Raises:
            SQLAlchemyError: If the store cannot be queried
        """
        claim = self.db.query(Claim).filter(Claim.claim_number == claim_number).one_or_none()
        if claim is None:
            return Result.failure(ErrorKind.NOT_FOUND, claim_not_found_message(claim_number))
        return Result.success(claim)

    def apply_posting(
        self,
        claim_number: str,
        paid_amount,
        adjustment_amount=ZERO,
        adjustment_reason: Optional[str] = None,
        operator_id: str = "system",
        batch_id: Optional[int] = None,
        line_item_id: Optional[int] = None,
        auto_posted: bool = True,
    ) -> Result[PostingResult]:
        """
        Apply a payment (and optional payer adjustment) to a claim.

        Args:
            claim_number: Claim to post against
            paid_amount: Amount paid; must be >= 0 and fit the unpaid balance
            adjustment_amount: Payer adjustment (contractual write-off)
            adjustment_reason: Adjustment reason code, e.g. "CO-45"
            operator_id: Operator recorded on the posting
            batch_id: Originating remittance batch; None for manual postings
            line_item_id: Remittance line to mark as posted in the same transaction
            auto_posted: False for manual postings

        Returns:
            Result wrapping a PostingResult. A (claim, batch) pair that was
            already posted returns the earlier posting with `already_posted`.

        Raises:
            SQLAlchemyError: After rolling back, if the store fails
        """
        paid = parse_financial_amount(paid_amount)
        adjustment = parse_financial_amount(adjustment_amount)
        if paid is None or adjustment is None or paid < 0 or adjustment < 0:
            return Result.failure(
                ErrorKind.INVALID_AMOUNT,
                f"Invalid payment or adjustment amount for claim {claim_number}",
            )

        try:
            claim = (
                self.db.query(Claim)
                .filter(Claim.claim_number == claim_number)
                .with_for_update()
                .one_or_none()
            )
            if claim is None:
                self.db.rollback()
                return Result.failure(ErrorKind.NOT_FOUND, claim_not_found_message(claim_number))

            if batch_id is not None:
                existing = self._find_posting(claim.id, batch_id)
                if existing is not None:
                    prior = self._result(claim, existing, already_posted=True)
                    self.db.rollback()
                    logger.info(
                        "Posting already applied",
                        claim_number=claim_number,
                        batch_id=batch_id,
                        posting_id=prior.posting_id,
                    )
                    return Result.success(prior)

            rejection = self._check_postable(claim, paid)
            if rejection is not None:
                self.db.rollback()
                return rejection

            claim.paid_amount = to_money(claim.paid_amount) + paid
            claim.adjustment_amount = to_money(claim.adjustment_amount) + adjustment
            if claim.paid_amount + claim.adjustment_amount >= to_money(claim.total_charged):
                claim.status = ClaimStatus.PAID
            elif paid > ZERO or adjustment > ZERO:
                claim.status = ClaimStatus.PARTIALLY_PAID
            # A zero-dollar remittance (e.g. a denial) is recorded but leaves the status alone

            now = utcnow()
            posting = PaymentPosting(
                claim_id=claim.id,
                batch_id=batch_id,
                line_item_id=line_item_id,
                paid_amount=paid,
                adjustment_amount=adjustment,
                adjustment_reason=adjustment_reason,
                posted_at=now,
                posted_by=operator_id,
                auto_posted=auto_posted,
            )
            self.db.add(posting)

            if line_item_id is not None:
                line_item = self.db.get(RemittanceLineItem, line_item_id)
                if line_item is not None:
                    line_item.posted = True
                    line_item.posted_at = now

            self.db.flush()
            result = self._result(claim, posting)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # A concurrent request may have posted the same (claim, batch) pair first
            prior = self._prior_result(claim_number, batch_id) if batch_id is not None else None
            if prior is None:
                raise
            return prior
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Posting transaction failed",
                claim_number=claim_number,
                batch_id=batch_id,
                error=str(e),
            )
            raise

        logger.info(
            "Payment posted",
            claim_number=claim_number,
            batch_id=batch_id,
            paid_amount=str(paid),
            adjustment_amount=str(adjustment),
            claim_status=result.claim_status.value,
            auto_posted=auto_posted,
        )
        return Result.success(result)

    def _check_postable(self, claim: Claim, paid: Decimal) -> Optional[Result[PostingResult]]:
        if claim.status not in POSTABLE_CLAIM_STATUSES:
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Claim {claim.claim_number} cannot be posted in status {claim.status.value}",
            )
        remaining = to_money(claim.total_charged) - to_money(claim.paid_amount)
        if paid > remaining:
            return Result.failure(
                ErrorKind.AMOUNT_EXCEEDS_CHARGES,
                f"Payment amount exceeds remaining balance for claim {claim.claim_number}",
            )
        return None

    def _find_posting(self, claim_id: int, batch_id: int) -> Optional[PaymentPosting]:
        return (
            self.db.query(PaymentPosting)
            .filter(PaymentPosting.claim_id == claim_id, PaymentPosting.batch_id == batch_id)
            .one_or_none()
        )

    def _prior_result(self, claim_number: str, batch_id: int) -> Optional[Result[PostingResult]]:
        claim = self.db.query(Claim).filter(Claim.claim_number == claim_number).one_or_none()
        existing = self._find_posting(claim.id, batch_id) if claim is not None else None
        if existing is None:
            self.db.rollback()
            return None
        prior = self._result(claim, existing, already_posted=True)
        self.db.rollback()
        return Result.success(prior)

    @staticmethod
    def _result(claim: Claim, posting: PaymentPosting, already_posted: bool = False) -> PostingResult:
        total = to_money(claim.total_charged)
        paid_total = to_money(claim.paid_amount)
        return PostingResult(
            posting_id=posting.id,
            claim_id=claim.id,
            claim_number=claim.claim_number,
            claim_status=claim.status,
            paid_amount=to_money(posting.paid_amount),
            adjustment_amount=to_money(posting.adjustment_amount),
            claim_paid_total=paid_total,
            remaining_balance=total - paid_total,
            batch_id=posting.batch_id,
            line_item_id=posting.line_item_id,
            already_posted=already_posted,
        )
