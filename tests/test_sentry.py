"""Tests for Sentry configuration and event filtering."""
import pytest

from rcm.config import sentry as sentry_module
from rcm.config.sentry import add_breadcrumb, capture_exception, filter_sensitive_data, init_sentry


@pytest.mark.unit
class TestFilterSensitiveData:
    def test_removes_sensitive_headers(self):
        event = {"request": {"headers": {"Authorization": "Bearer abc", "Accept": "json"}}}

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["headers"] == {"Accept": "json"}

    def test_reduces_user_context(self):
        event = {"user": {"id": "op-1", "username": "poster", "email": "p@example.com", "ip_address": "1.2.3.4"}}

        filtered = filter_sensitive_data(event, {})

        assert filtered["user"] == {"id": "op-1", "username": "poster"}

    def test_removes_patient_data_from_extra(self):
        event = {"extra": {"patient_name": "John Doe", "raw_content": "CLP*...", "era_id": 5}}

        filtered = filter_sensitive_data(event, {})

        assert filtered["extra"] == {"era_id": 5}


@pytest.mark.unit
class TestSentryDisabled:
    def test_capture_is_noop_under_test(self, mocker):
        mocker.patch.object(sentry_module.settings, "dsn", "https://key@sentry.example/1")
        capture = mocker.patch("sentry_sdk.capture_exception")

        assert capture_exception(RuntimeError("x")) is None
        capture.assert_not_called()

    def test_breadcrumb_is_noop_without_dsn(self, mocker):
        mocker.patch.object(sentry_module.settings, "dsn", None)
        breadcrumb = mocker.patch("sentry_sdk.add_breadcrumb")

        add_breadcrumb("hello")

        breadcrumb.assert_not_called()

    def test_init_skipped_without_dsn(self, mocker):
        mocker.patch.object(sentry_module.settings, "dsn", None)
        sdk_init = mocker.patch("sentry_sdk.init")

        init_sentry()

        sdk_init.assert_not_called()

    def test_init_with_dsn_outside_tests(self, mocker, monkeypatch):
        mocker.patch.object(sentry_module.settings, "dsn", "https://key@sentry.example/1")
        monkeypatch.setenv("TESTING", "false")
        sdk_init = mocker.patch("sentry_sdk.init")

        init_sentry()

        kwargs = sdk_init.call_args.kwargs
        assert kwargs["dsn"] == "https://key@sentry.example/1"
        assert kwargs["send_default_pii"] is False
        assert kwargs["before_send"] is filter_sensitive_data
