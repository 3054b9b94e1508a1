import threading
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from server import lifespan


def _settings(scheduled_tasks_enabled=True):
    settings = MagicMock()
    settings.server.SCHEDULED_TASKS_ENABLED = scheduled_tasks_enabled
    return settings


@patch("server.lifespan.scheduled_tasks")
def test_start_scheduled_tasks_skipped_when_disabled(scheduled_tasks_mock):
    logger = MagicMock()

    result = lifespan._start_scheduled_tasks(MagicMock(), _settings(False), logger)

    assert result is None
    logger.info.assert_called_once_with("scheduled_tasks_skipped", reason="disabled")
    scheduled_tasks_mock.init.assert_not_called()


@patch("server.lifespan.scheduled_tasks")
def test_start_scheduled_tasks_skipped_under_tests(scheduled_tasks_mock):
    logger = MagicMock()

    result = lifespan._start_scheduled_tasks(MagicMock(), _settings(), logger)

    assert result is None
    logger.info.assert_called_once_with(
        "scheduled_tasks_skipped", reason="test_environment"
    )
    scheduled_tasks_mock.run_continuously.assert_not_called()


@patch("server.lifespan._is_test_environment", return_value=False)
@patch("server.lifespan.scheduled_tasks")
def test_start_scheduled_tasks_runs_jobs(scheduled_tasks_mock, _is_test_env):
    service = MagicMock()
    settings = _settings()
    stop_event = threading.Event()
    scheduled_tasks_mock.run_continuously.return_value = stop_event

    result = lifespan._start_scheduled_tasks(service, settings, MagicMock())

    assert result is stop_event
    scheduled_tasks_mock.init.assert_called_once_with(service, settings)


@patch("server.lifespan.scheduled_tasks")
def test_stop_scheduled_tasks(scheduled_tasks_mock):
    stop_event = threading.Event()

    lifespan._stop_scheduled_tasks(stop_event)

    assert stop_event.is_set()
    scheduled_tasks_mock.clear.assert_called_once()


@patch("server.lifespan.scheduled_tasks")
def test_stop_scheduled_tasks_without_event(scheduled_tasks_mock):
    lifespan._stop_scheduled_tasks(None)

    scheduled_tasks_mock.clear.assert_not_called()


def test_list_configs_logs_each_section():
    settings = MagicMock()
    settings.model_dump.return_value = {
        "PREFIX": "",
        "delivery": {"backend": "memory", "batch_size": 50},
        "server": {"SCHEDULED_TASKS_ENABLED": True},
    }
    logger = MagicMock()

    lifespan._list_configs(settings, logger)

    logger.info.assert_any_call(
        "configuration_initialized", base_settings=[{"PREFIX": ""}]
    )
    logger.info.assert_any_call(
        "configuration_loaded", config_setting="delivery", keys=["backend", "batch_size"]
    )
    logger.info.assert_any_call(
        "configuration_loaded", config_setting="server", keys=["SCHEDULED_TASKS_ENABLED"]
    )


@patch("server.lifespan.get_delivery_service")
def test_lifespan_sets_app_state(get_delivery_service_mock):
    service = MagicMock()
    get_delivery_service_mock.return_value = service
    app = FastAPI(lifespan=lifespan.lifespan)

    with TestClient(app):
        assert app.state.delivery_service is service
        assert app.state.scheduled_stop_event is None
        assert app.state.settings is not None
