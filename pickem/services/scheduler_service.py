"""
Pick'em Score Reconcile Scheduler Service

Runs background score reconciliation with APScheduler. Game finalization
already triggers a recompute through the game sync; the reconcile jobs catch
anything that slipped through (a failed batch, a manual game edit).
"""

import atexit
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers import SchedulerNotRunningError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pickem import db
from pickem.models import Game
from pickem.services.score_service import ScoreService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages the background score reconcile jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.score_service = None
        self.is_running = False
        self.reconcile_stats = {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "weeks_recalculated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        self.score_service = ScoreService()

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        try:
            self.scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

        self.is_running = True
        logger.info("Score reconcile scheduler started")

    def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        try:
            self.scheduler.shutdown(wait=False)
        except SchedulerNotRunningError:
            pass
        logger.info("Score reconcile scheduler stopped")

    shutdown = stop

    def _add_core_jobs(self):
        interval = self.app.config.get("SCORE_RECONCILE_INTERVAL_MINUTES", 30)

        jobs = (
            (
                self._reconcile_recent_weeks,
                IntervalTrigger(minutes=interval),
                "reconcile_recent_weeks",
                "Reconcile recently finalized weeks",
                300,
            ),
            # full pass at 3 AM UTC
            (
                self._reconcile_all_weeks,
                CronTrigger(hour=3, minute=0),
                "reconcile_all_weeks",
                "Nightly full score reconcile",
                3600,
            ),
        )
        for func, trigger, job_id, name, grace in jobs:
            self.scheduler.add_job(
                func=func,
                trigger=trigger,
                id=job_id,
                name=name,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=grace,
            )

        logger.info(f"Reconcile jobs scheduled, recent weeks every {interval} minutes")

    def _recent_weeks(self):
        lookback = self.app.config.get("SCORE_RECONCILE_LOOKBACK_HOURS", 36)
        return Game.get_recently_finalized_weeks(
            datetime.now(timezone.utc) - timedelta(hours=lookback)
        )

    @staticmethod
    def _all_final_weeks():
        seasons = [season for (season,) in db.session.query(Game.season).distinct()]
        return [
            (season, week)
            for season in seasons
            for week in Game.get_weeks_with_final_games(season)
        ]

    def _reconcile(self, label, collect_weeks):
        """Recompute the weeks ``collect_weeks`` returns and record the outcome"""
        with self.app.app_context():
            try:
                weeks = collect_weeks()
                if not weeks:
                    logger.debug(f"{label} reconcile: nothing to do")
                    return

                results = self.score_service.recalculate_weeks(weeks)
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=str(e))
                logger.error(f"{label} reconcile failed: {e}", exc_info=True)
                return

            self._record_results(label, results)

    def _reconcile_recent_weeks(self):
        self._reconcile("Recent", self._recent_weeks)

    def _reconcile_all_weeks(self):
        self._reconcile("Nightly", self._all_final_weeks)

    def _record_results(self, label, results):
        failed = sum(1 for r in results if r.get("failed"))
        if failed:
            self._update_stats(
                False,
                weeks=len(results),
                error=f"{failed} of {len(results)} weeks had failures",
            )
            logger.warning(f"{label} reconcile: {failed} of {len(results)} weeks failed")
        else:
            self._update_stats(True, weeks=len(results))
            logger.info(f"{label} reconcile: {len(results)} weeks recalculated")

    def _update_stats(self, success, weeks=0, error=None):
        stats = self.reconcile_stats
        stats["last_run"] = datetime.now(timezone.utc)
        stats["total_runs"] += 1
        stats["weeks_recalculated"] += weeks
        stats["successful_runs" if success else "failed_runs"] += 1
        stats["last_error"] = None if success else error

    def get_status(self):
        jobs = []
        if self.scheduler and self.is_running:
            jobs = [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                    "trigger": str(job.trigger),
                }
                for job in self.scheduler.get_jobs()
            ]

        stats = dict(self.reconcile_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, run_type="recent"):
        """
        Run a reconcile now, in the calling thread.

        Returns ``(ok, message)``; ``ok`` is False only for an unknown
        ``run_type`` or an uninitialised service. Failures inside the run
        land in ``reconcile_stats``.
        """
        runners = {"recent": self._reconcile_recent_weeks, "all": self._reconcile_all_weeks}

        if self.app is None:
            return False, "Scheduler is not initialized"
        if run_type not in runners:
            return False, f"Unknown reconcile type: {run_type}"

        runners[run_type]()
        return True, f"Manual {run_type} reconcile completed"


scheduler_service = SchedulerService()
