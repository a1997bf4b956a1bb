"""Tests for the application factory, lifespan and process setup."""
import pytest
from fastapi.testclient import TestClient

from rcm.core.application import create_application


@pytest.mark.integration
class TestLifespan:
    def test_owned_store_opened_and_closed(self, mock_redis):
        app = create_application()
        assert app.state.data_store is None

        with TestClient(app) as client:
            store = app.state.data_store
            assert store is not None
            assert app.state.cache is not None
            assert client.get("/api/v1/health").status_code == 200

        assert store.closed
        assert app.state.data_store is None
        assert app.state.cache is None

    def test_injected_store_left_open(self, data_store, cache):
        app = create_application(data_store=data_store, cache=cache)

        with TestClient(app):
            assert app.state.data_store is data_store

        assert not data_store.closed
        assert app.state.cache is cache


@pytest.mark.unit
class TestSetupApplication:
    def test_setup_runs_in_order(self, mocker):
        from rcm.config import settings as settings_module
        from rcm.core import setup as setup_module

        calls = []
        settings = settings_module.settings

        def reload():
            calls.append("reload")
            return settings

        mocker.patch.object(setup_module, "load_dotenv", side_effect=lambda: calls.append("dotenv"))
        mocker.patch.object(setup_module, "configure_logging", side_effect=lambda **_: calls.append("logging"))
        mocker.patch("rcm.config.sentry.init_sentry", side_effect=lambda: calls.append("sentry"))
        mocker.patch("rcm.config.settings.reload_settings", side_effect=reload)
        mocker.patch("rcm.config.settings.validate_settings", side_effect=lambda: calls.append("validate"))

        setup_module.setup_application()

        assert calls == ["dotenv", "sentry", "reload", "logging", "validate"]

    def test_invalid_settings_abort_startup(self, mocker):
        from rcm.core import setup as setup_module

        mocker.patch.object(setup_module, "load_dotenv")
        mocker.patch.object(setup_module, "configure_logging")
        mocker.patch("rcm.config.settings.validate_settings", side_effect=ValueError("weak secret"))

        with pytest.raises(ValueError, match="weak secret"):
            setup_module.setup_application()
