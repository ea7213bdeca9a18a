# marketplace/sweep.py
"""Scheduled removal of sold listings whose retention window has passed.

Eligibility is `status == sold AND NOT is_auto_deleted AND auto_delete_date < now`.
A processed listing no longer exists, so a second run over the same clock
finds nothing: removal is the idempotence guard.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from .crud import sweep_condition
from .lifecycle import Cause, LifecycleEngine, ListingSnapshot
from .models import Listing
from .utils import logger, utcnow


@dataclass
class SweepResult:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    deferred: int = 0
    failed_ids: List[int] = field(default_factory=list)


class SweepJob:
    def __init__(self, session_factory: sessionmaker, engine: LifecycleEngine,
                 batch_timeout: Optional[float] = None, timer: Callable[[], float] = time.monotonic):
        self.session_factory = session_factory
        self.engine = engine
        self.timer = timer
        # seconds; once exceeded the remaining listings wait for the next run
        self.batch_timeout = batch_timeout or None

    def _scan(self, session, now: datetime) -> List[ListingSnapshot]:
        stmt = (
            select(Listing)
            .where(sweep_condition(now))
            .order_by(Listing.auto_delete_date.asc(), Listing.id.asc())
        )
        return [ListingSnapshot.from_listing(row) for row in session.scalars(stmt)]

    def eligible(self, now: Optional[datetime] = None) -> List[ListingSnapshot]:
        with self.session_factory() as session:
            return self._scan(session, now or utcnow())

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        result = SweepResult()
        started = self.timer()
        with self.session_factory() as session:
            batch = self._scan(session, now)
            if not batch:
                logger.info("Sweep: no sold listings eligible for auto-deletion")
                return result
            logger.info("Sweep: %d sold listing(s) eligible for auto-deletion", len(batch))

            for i, snap in enumerate(batch):
                if self.batch_timeout and self.timer() - started > self.batch_timeout:
                    result.deferred = len(batch) - i
                    logger.warning("Sweep: batch timeout of %ss reached, %d listing(s) deferred",
                                   self.batch_timeout, result.deferred)
                    break
                try:
                    archived = self.engine.archive_and_remove(snap, actor=None, cause=Cause.AUTO, now=now)
                except Exception as e:
                    logger.error("Sweep: listing %s failed: %s", snap.id, e)
                    result.failed += 1
                    result.failed_ids.append(snap.id)
                    continue
                if archived is None:
                    result.skipped += 1
                else:
                    result.processed += 1

        logger.info("Sweep finished: processed=%d failed=%d skipped=%d deferred=%d",
                    result.processed, result.failed, result.skipped, result.deferred)
        return result
