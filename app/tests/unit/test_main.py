"""Unit tests for the worker process entry point."""

import signal
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from courier import main as main_module


def _settings():
    return SimpleNamespace(
        LOG_LEVEL="INFO",
        is_production=False,
        storage=SimpleNamespace(backend="memory"),
        worker=SimpleNamespace(worker_id="w-1", poll_interval_seconds=3),
    )


@pytest.mark.unit
class TestMain:
    @patch("courier.main.scheduled_tasks")
    @patch("courier.main.get_delivery_worker")
    @patch("courier.main.get_notification_service")
    @patch("courier.main.get_settings")
    @patch("courier.main.configure_logging")
    def test_main_wires_pipeline_and_shuts_down(
        self,
        mock_configure_logging,
        mock_get_settings,
        mock_get_service,
        mock_get_worker,
        mock_scheduled_tasks,
    ):
        settings = _settings()
        mock_get_settings.return_value = settings
        scheduler_stop = threading.Event()
        mock_scheduled_tasks.run_continuously.return_value = scheduler_stop
        stop_event = threading.Event()
        stop_event.set()

        main_module.main(stop_event)

        mock_configure_logging.assert_called_once_with(log_level="INFO", is_production=False)
        service = mock_get_service.return_value
        worker = mock_get_worker.return_value
        service.bootstrap_channels.assert_called_once_with(settings)
        service.run_health_checks.assert_called_once()
        mock_scheduled_tasks.init.assert_called_once_with(
            service, worker, poll_interval_seconds=3
        )
        assert scheduler_stop.is_set()
        worker.shutdown.assert_called_once()

    @patch("courier.main.main")
    @patch("courier.main.signal.signal")
    @patch("courier.main.load_dotenv")
    def test_run_installs_signal_handlers(self, mock_load_dotenv, mock_signal, mock_main):
        main_module.run()

        mock_load_dotenv.assert_called_once()
        installed = {call.args[0] for call in mock_signal.call_args_list}
        assert installed == {signal.SIGINT, signal.SIGTERM}

        stop_event = mock_main.call_args[0][0]
        handler = mock_signal.call_args_list[0].args[1]
        handler(signal.SIGTERM, MagicMock())
        assert stop_event.is_set()
