"""
Scheduler for periodic consensus reconciliation.

Runs a background sweep that finalizes pending records whose vote tally
already crossed the threshold, e.g. after a submission failed between
committing its vote and committing the finalization.
"""

import asyncio
import logging
from datetime import datetime, UTC
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from validation_api.config import get_settings
from validation_api.consensus_service import ConsensusEngine
from validation_api import database


logger = logging.getLogger(__name__)

JOB_ID = "consensus_reconciliation"


class ReconcileScheduler:
    """
    Scheduler for periodic reconciliation sweeps.
    """

    def __init__(self, interval_minutes: Optional[int] = None, session_factory=None):
        """
        Initialize the scheduler.

        Args:
            interval_minutes: Sweep interval (default from settings)
            session_factory: Session factory (default ``database.SessionLocal``)
        """
        self.interval_minutes = interval_minutes or get_settings().reconcile_interval_minutes
        self.session_factory = session_factory or database.SessionLocal
        self.scheduler = AsyncIOScheduler()
        self._is_running = False
        self._last_run: Optional[datetime] = None
        self._last_result: Optional[dict] = None

    async def run_reconcile(self):
        """
        Run a reconciliation iteration.

        This is called by the scheduler at each interval.
        """
        if self._is_running:
            logger.warning("Reconciliation already in progress, skipping this iteration")
            return

        self._is_running = True
        start_time = datetime.now(UTC)

        try:
            logger.info(f"Starting scheduled reconciliation at {start_time.isoformat()}")

            with self.session_factory() as db:
                result = ConsensusEngine(db).reconcile()

                self._last_run = datetime.now(UTC)
                self._last_result = result

                logger.info(
                    f"Scheduled reconciliation complete: "
                    f"{result['records_examined']} examined, "
                    f"{result['records_finalized']} finalized in "
                    f"{result['duration_seconds']:.2f}s"
                )

        except Exception as e:
            logger.exception(f"Error in scheduled reconciliation: {e}")
            self._last_result = {"success": False, "error": str(e)}
        finally:
            self._is_running = False

    def start(self):
        """Start the scheduler."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.add_job(
            self.run_reconcile,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Consensus Reconciliation",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        logger.info(
            f"Reconciliation scheduler started - running every {self.interval_minutes} minutes"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reconciliation scheduler stopped")

    def get_status(self) -> dict:
        """Get scheduler status."""
        return {
            "running": self.scheduler.running,
            "interval_minutes": self.interval_minutes,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_result": self._last_result,
            "is_reconciling": self._is_running,
            "next_run": self._get_next_run_time(),
        }

    def _get_next_run_time(self) -> Optional[str]:
        if not self.scheduler.running:
            return None

        job = self.scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time.isoformat()
        return None


# Global scheduler instance
_scheduler: Optional[ReconcileScheduler] = None


def get_scheduler() -> ReconcileScheduler:
    """Get or create the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ReconcileScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler."""
    get_scheduler().start()


def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None


# CLI entry point for running scheduler standalone
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Consensus Reconciliation Scheduler")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Reconciliation interval in minutes (default from settings)"
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run reconciliation once and exit"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    database.init_db()

    if args.run_once:
        with database.SessionLocal() as db:
            result = ConsensusEngine(db).reconcile()
            print(f"Reconciliation complete: {result}")
    else:
        async def main():
            scheduler = ReconcileScheduler(interval_minutes=args.interval)
            scheduler.start()
            try:
                await asyncio.Event().wait()
            finally:
                scheduler.stop()

        try:
            asyncio.run(main())
        except KeyboardInterrupt:
            print("\nScheduler stopped")
