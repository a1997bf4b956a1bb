"""Pytest configuration and shared fixtures."""
import os
from decimal import Decimal
from typing import Generator, Iterable, Tuple
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# Set test environment variables BEFORE any rcm imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REQUIRE_AUTH"] = "false"
os.environ["CACHE_ENABLED"] = "true"
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("REDIS_PASSWORD", None)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:3000")

# Mock Redis BEFORE importing rcm modules that use it
_mock_redis = MagicMock()
_mock_redis.get.return_value = None
_mock_redis.set.return_value = True
_mock_redis.setex.return_value = True
_mock_redis.delete.return_value = 1
_mock_redis.scan.return_value = (0, [])
_mock_redis.ping.return_value = True

_redis_patcher_config = patch("rcm.config.redis.get_redis_client", return_value=_mock_redis)
_redis_patcher_config.start()
_redis_patcher_cache = patch("rcm.utils.cache.get_redis_client", return_value=_mock_redis)
_redis_patcher_cache.start()

from fastapi.testclient import TestClient  # noqa: E402

from rcm.config.database import Base, DataStore  # noqa: E402
from rcm.core.application import create_application  # noqa: E402
from rcm.models.database import Claim, RemittanceBatch  # noqa: E402
from rcm.models.enums import ClaimStatus  # noqa: E402
from rcm.services.audit import InMemoryAuditSink  # noqa: E402
from rcm.utils.cache import Cache  # noqa: E402

from tests.factories import (  # noqa: E402
    ClaimFactory,
    PaymentPostingFactory,
    RemittanceBatchFactory,
    RemittanceLineItemFactory,
)
from tests.samples import PROVIDER_ID  # noqa: E402


@pytest.fixture(scope="function")
def data_store() -> Generator[DataStore, None, None]:
    """In-memory SQLite store shared by the test session and the app."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = DataStore(engine)
    store.create_all()
    try:
        yield store
    finally:
        Base.metadata.drop_all(bind=engine)
        store.close()


@pytest.fixture(scope="function")
def db_session(data_store: DataStore) -> Generator[Session, None, None]:
    """Provide a database session for tests and bind the factories to it."""
    session = data_store.session()
    ClaimFactory._meta.sqlalchemy_session = session
    RemittanceBatchFactory._meta.sqlalchemy_session = session
    RemittanceLineItemFactory._meta.sqlalchemy_session = session
    PaymentPostingFactory._meta.sqlalchemy_session = session

    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def mock_redis():
    """Mock Redis connection (call history reset per test)."""
    _mock_redis.reset_mock()
    _mock_redis.get.return_value = None
    for method in (_mock_redis.get, _mock_redis.setex, _mock_redis.delete, _mock_redis.ping):
        method.side_effect = None
    return _mock_redis


@pytest.fixture(scope="function")
def cache(mock_redis) -> Cache:
    return Cache(namespace="rcm", client=mock_redis)


@pytest.fixture(scope="function")
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture(scope="function")
def app(data_store, cache, audit_sink):
    return create_application(data_store=data_store, cache=cache, audit_sink=audit_sink)


@pytest.fixture(scope="function")
def client(app, db_session) -> Generator[TestClient, None, None]:
    """Test client; 500 errors come back as responses instead of raising."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def operator_headers() -> dict:
    return {"X-Operator-Id": PROVIDER_ID}


@pytest.fixture
def make_batch(db_session: Session):
    """
    Build a batch with line items.

    Lines are (claim_number, charged, paid, adjustment) tuples, stored in order.
    """

    def _make(lines: Iterable[Tuple[str, str, str, str]], **batch_fields) -> RemittanceBatch:
        batch_fields.setdefault("provider_id", PROVIDER_ID)
        lines = list(lines)
        batch = RemittanceBatchFactory(
            claims_count=len(lines),
            total_amount=sum((Decimal(paid) for _, _, paid, _ in lines), Decimal("0.00")),
            **batch_fields,
        )
        for position, (claim_number, charged, paid, adjustment) in enumerate(lines, start=1):
            RemittanceLineItemFactory(
                batch=batch,
                line_number=position,
                claim_number=claim_number,
                charged_amount=Decimal(charged),
                paid_amount=Decimal(paid),
                adjustment_amount=Decimal(adjustment),
            )
        db_session.refresh(batch)
        return batch

    return _make


@pytest.fixture
def sample_claim(db_session: Session) -> Claim:
    """A submitted claim CLM001 charged 150.00."""
    return ClaimFactory(
        claim_number="CLM001",
        total_charged=Decimal("150.00"),
        status=ClaimStatus.SUBMITTED,
    )
