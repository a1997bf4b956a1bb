"""Posting statistics for the payment posting dashboard."""
from dataclasses import asdict, dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from rcm.config.cache_ttl import get_posting_stats_ttl
from rcm.config.settings import get_stats_window_days
from rcm.models.database import PaymentPosting, RemittanceBatch
from rcm.models.enums import BatchStatus
from rcm.utils.cache import Cache, posting_stats_key
from rcm.utils.clock import utcnow
from rcm.utils.decimal_utils import to_money
from rcm.utils.logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = Decimal(86400)


@dataclass
class PostingStats:
    total_posted: Decimal
    postings_count: int
    auto_posted_percentage: int
    exceptions_count: int
    average_posting_time_days: Decimal
    window_days: int

    def to_dict(self) -> dict:
        return {
            "totalPosted": str(self.total_posted),
            "postingsCount": self.postings_count,
            "autoPostedPercentage": self.auto_posted_percentage,
            "exceptionsCount": self.exceptions_count,
            "averagePostingTimeDays": str(self.average_posting_time_days),
            "windowDays": self.window_days,
        }

    @classmethod
    def from_cache(cls, data: dict) -> "PostingStats":
        return cls(
            total_posted=Decimal(data["total_posted"]),
            postings_count=int(data["postings_count"]),
            auto_posted_percentage=int(data["auto_posted_percentage"]),
            exceptions_count=int(data["exceptions_count"]),
            average_posting_time_days=Decimal(data["average_posting_time_days"]),
            window_days=int(data["window_days"]),
        )


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage rounded half up; 0 when `whole` is 0."""
    if not whole:
        return 0
    return int((Decimal(part) * 100 / Decimal(whole)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class PostingStatsAggregator:
    """
    Trailing-window posting metrics for one operator.

    - total posted and posting count: postings made by the operator
    - auto-posted percentage: share of those postings made by the engine
    - exceptions: the operator's (provider's) batches currently in exception
      status that were created inside the window
    - average posting time: days from batch creation to processing, over
      batches the operator processed inside the window

    Read-only. Results are cached per operator when a cache is supplied.
    """

    def __init__(self, db: Session, cache: Optional[Cache] = None, window_days: Optional[int] = None):
        self.db = db
        self.cache = cache
        self.window_days = window_days or get_stats_window_days()

    def get_posting_stats(self, operator_id: str) -> PostingStats:
        if self.cache is not None:
            cached = self.cache.get(posting_stats_key(operator_id))
            if cached:
                return PostingStats.from_cache(cached)

        stats = self._compute(operator_id)

        if self.cache is not None:
            self.cache.set(posting_stats_key(operator_id), asdict(stats), ttl_seconds=get_posting_stats_ttl())
        return stats

    def _compute(self, operator_id: str) -> PostingStats:
        since = utcnow() - timedelta(days=self.window_days)

        total_posted, postings_count, auto_count = (
            self.db.query(
                func.coalesce(func.sum(PaymentPosting.paid_amount), 0),
                func.count(PaymentPosting.id),
                func.coalesce(func.sum(case((PaymentPosting.auto_posted.is_(True), 1), else_=0)), 0),
            )
            .filter(PaymentPosting.posted_by == operator_id, PaymentPosting.posted_at >= since)
            .one()
        )

        exceptions_count = (
            self.db.query(func.count(RemittanceBatch.id))
            .filter(
                RemittanceBatch.provider_id == operator_id,
                RemittanceBatch.status == BatchStatus.EXCEPTION,
                RemittanceBatch.archived_at.is_(None),
                RemittanceBatch.created_at >= since,
            )
            .scalar()
        )

        processed = (
            self.db.query(RemittanceBatch.created_at, RemittanceBatch.processed_at)
            .filter(
                RemittanceBatch.processed_by == operator_id,
                RemittanceBatch.processed_at.isnot(None),
                RemittanceBatch.processed_at >= since,
            )
            .all()
        )
        average_days = Decimal("0.00")
        if processed:
            total_seconds = sum(
                max((processed_at - created_at).total_seconds(), 0) for created_at, processed_at in processed
            )
            average_days = (Decimal(str(total_seconds)) / SECONDS_PER_DAY / len(processed)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )

        stats = PostingStats(
            total_posted=to_money(total_posted),
            postings_count=int(postings_count or 0),
            auto_posted_percentage=percentage(int(auto_count or 0), int(postings_count or 0)),
            exceptions_count=int(exceptions_count or 0),
            average_posting_time_days=average_days,
            window_days=self.window_days,
        )
        logger.debug("Posting stats computed", operator_id=operator_id, postings=stats.postings_count)
        return stats
