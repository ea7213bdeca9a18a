"""Run one auto-delete sweep over sold listings, e.g. from cron:

    python run_sweep.py            # archive and remove eligible listings
    python run_sweep.py --dry-run  # only list what would be removed
"""
import argparse
import sys

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Auto-delete sold listings past their retention window.")
    parser.add_argument("--dry-run", action="store_true", help="list eligible listings without removing them")
    args = parser.parse_args(argv)

    from marketplace.config import get_config
    from marketplace.db import Base, SessionLocal, engine
    from marketplace.lifecycle import LifecycleEngine
    from marketplace.storage import build_storage_gateway
    from marketplace.sweep import SweepJob
    from marketplace.utils import logger

    cfg = get_config()
    cfg.validate()
    Base.metadata.create_all(bind=engine)

    job = SweepJob(SessionLocal, LifecycleEngine(SessionLocal, build_storage_gateway(cfg)),
                   batch_timeout=cfg.sweep_batch_timeout)

    if args.dry_run:
        eligible = job.eligible()
        for snap in eligible:
            logger.info("eligible: listing %s (%s %s), auto-delete date %s",
                        snap.id, snap.make, snap.model, snap.auto_delete_date)
        logger.info("%d listing(s) eligible", len(eligible))
        return 0

    result = job.run()
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
