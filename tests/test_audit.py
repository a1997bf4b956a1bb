"""Tests for audit sinks."""
import pytest

from rcm.services.audit import InMemoryAuditSink, LoggingAuditSink


@pytest.mark.unit
class TestAuditSinks:
    def test_in_memory_sink_records_events(self):
        sink = InMemoryAuditSink()

        sink.record("era.archived", "remittance_batch", 7, "provider-1", {"previous_status": "posted"})
        sink.record("era.reopened", "remittance_batch", 7, "provider-1")

        assert sink.actions() == ["era.archived", "era.reopened"]
        assert sink.events[0]["details"] == {"previous_status": "posted"}
        assert sink.events[1]["details"] == {}

    def test_logging_sink_emits_structured_event(self, mocker):
        sink = LoggingAuditSink()
        sink.logger = mocker.MagicMock()
        info = sink.logger.info

        sink.record("posting.manual", "claim", 3, "op-1", {"amount": "10.00"})

        info.assert_called_once()
        args, kwargs = info.call_args
        assert args == ("Audit event",)
        assert kwargs["action"] == "posting.manual"
        assert kwargs["entity_id"] == 3
        assert kwargs["amount"] == "10.00"
        assert "recorded_at" in kwargs
