# marketplace/scheduler.py
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .config import Config, get_config
from .sweep import SweepJob
from .utils import logger

SWEEP_JOB_ID = "auto-delete-sold-listings"


def start_scheduler(job: SweepJob, config: Optional[Config] = None) -> BackgroundScheduler:
    cfg = config or get_config()
    scheduler = BackgroundScheduler()
    # one run at a time; a missed tick is folded into the next
    scheduler.add_job(job.run, 'interval', hours=cfg.sweep_interval_hours, id=SWEEP_JOB_ID,
                      max_instances=1, coalesce=True, replace_existing=True)
    scheduler.start()
    logger.info("Scheduler started, sweep every %sh", cfg.sweep_interval_hours)
    return scheduler
