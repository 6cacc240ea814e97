import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from fx_rates import FxRateService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _warm_fx_rate(self, source: str = "manual") -> None:
        logger.info(f"fx_warmup: source={source}")
        rate = FxRateService().usd_to_cad()
        logger.info(f"fx_warmup: source={source} usd_to_cad={rate}")

    def start(self) -> None:
        self._warm_fx_rate("startup")

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._warm_fx_rate,
            trigger,
            args=["hourly"],
            id="fx_warmup_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly FX warmup")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
