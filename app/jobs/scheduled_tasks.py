import threading
import time
from typing import TYPE_CHECKING

import schedule

from infrastructure.logging import get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.delivery import DeliveryService

logger = get_module_logger()


def safe_run(job):
    def wrapper(*args, **kwargs):
        try:
            job(*args, **kwargs)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "scheduled_job_failed",
                job=getattr(job, "__name__", repr(job)),
                error=str(e),
            )

    return wrapper


def init(service: "DeliveryService", settings: "Settings"):
    delivery = settings.delivery
    logger.info(
        "scheduled_tasks_initialized",
        cycle_interval_minutes=delivery.cycle_interval_minutes,
        reconcile_interval_minutes=delivery.reconcile_interval_minutes,
    )

    schedule.every(delivery.cycle_interval_minutes).minutes.do(
        safe_run(run_delivery_cycle), service=service
    )
    schedule.every(delivery.reconcile_interval_minutes).minutes.do(
        safe_run(reconcile_stale_claims), service=service
    )
    schedule.every().hour.do(safe_run(check_delivery_health), service=service)
    schedule.every(5).minutes.do(safe_run(scheduler_heartbeat))


def clear():
    schedule.clear()


def scheduler_heartbeat():
    logger.info("scheduler_heartbeat", time=time.ctime())


def run_delivery_cycle(service: "DeliveryService"):
    service.run_cycle(trigger="scheduled")


def reconcile_stale_claims(service: "DeliveryService"):
    reverted = service.reconcile()
    if reverted:
        logger.warning("stale_claims_reverted", count=reverted)


def check_delivery_health(service: "DeliveryService"):
    service.check_health()


def run_continuously(interval=1):
    """Continuously run, while executing pending jobs at each
    elapsed time interval.
    @return cease_continuous_run: threading. Event which can
    be set to cease continuous run. Please note that it is
    *intended behavior that run_continuously() does not run
    missed jobs*. For example, if you've registered a job that
    should run every minute and you set a continuous run
    interval of one hour then your job won't be run 60 times
    at each interval but only once.
    """
    cease_continuous_run = threading.Event()

    class ScheduleThread(threading.Thread):
        @classmethod
        def run(cls):
            while not cease_continuous_run.is_set():
                schedule.run_pending()
                time.sleep(interval)

    continuous_thread = ScheduleThread(daemon=True, name="delivery-scheduler")
    continuous_thread.start()
    return cease_continuous_run
