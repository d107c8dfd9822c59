"""Notification worker process entry point."""

import signal
import threading

from dotenv import load_dotenv

from courier.jobs import scheduled_tasks
from courier.logging import configure_logging, get_module_logger
from courier.services.providers import (
    get_delivery_worker,
    get_notification_service,
    get_settings,
)

logger = get_module_logger()


def main(stop_event: threading.Event) -> None:
    """Wire the pipeline, start the scheduler and block until `stop_event` is set."""
    settings = get_settings()
    configure_logging(log_level=settings.LOG_LEVEL, is_production=settings.is_production)
    logger.info(
        "application_startup",
        store_backend=settings.storage.backend,
        worker_id=settings.worker.worker_id,
    )

    service = get_notification_service()
    worker = get_delivery_worker()
    service.bootstrap_channels(settings)
    service.run_health_checks()

    scheduled_tasks.init(
        service, worker, poll_interval_seconds=settings.worker.poll_interval_seconds
    )
    stop_run_continuously = scheduled_tasks.run_continuously()

    stop_event.wait()

    logger.info("application_shutdown")
    stop_run_continuously.set()
    worker.shutdown()


def run() -> None:
    load_dotenv()
    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    main(stop_event)


if __name__ == "__main__":
    run()
