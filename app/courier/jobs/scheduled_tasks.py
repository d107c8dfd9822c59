import functools
import threading
import time

import schedule

from courier.logging import get_module_logger

logger = get_module_logger()


def safe_run(job):
    @functools.wraps(job)
    def wrapper(*args, **kwargs):
        try:
            return job(*args, **kwargs)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "scheduled_job_failed",
                function=getattr(job, "__name__", repr(job)),
                module=getattr(job, "__module__", None),
                error=str(e),
                exc_info=True,
            )
            return None

    return wrapper


def init(service, worker, poll_interval_seconds=5):
    """Register the pipeline's recurring jobs on the default scheduler."""
    logger.info("scheduled_tasks_initialized", poll_interval_seconds=poll_interval_seconds)

    schedule.every(poll_interval_seconds).seconds.do(safe_run(worker.process_batch))
    schedule.every(1).minutes.do(safe_run(service.run_health_checks))
    schedule.every(1).minutes.do(safe_run(service.recover_stale))
    schedule.every(5).minutes.do(safe_run(scheduler_heartbeat))
    schedule.every().day.at("00:00").do(safe_run(service.purge))


def scheduler_heartbeat():
    logger.info("scheduler_heartbeat", time=time.ctime())


def run_continuously(interval=1):
    """Continuously run, while executing pending jobs at each
    elapsed time interval.
    @return cease_continuous_run: threading. Event which can
    be set to cease continuous run. Missed jobs are not run
    more than once: a job due every minute with an hourly
    interval runs once per hour.
    """
    cease_continuous_run = threading.Event()

    class ScheduleThread(threading.Thread):
        def run(self):
            while not cease_continuous_run.is_set():
                schedule.run_pending()
                cease_continuous_run.wait(interval)

    continuous_thread = ScheduleThread(name="courier-scheduler", daemon=True)
    continuous_thread.start()
    return cease_continuous_run
