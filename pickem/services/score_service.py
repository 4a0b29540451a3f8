"""
Weekly score recomputation

Scores are rebuilt from scratch from picks and games and upserted, so a
week can be recomputed any number of times, in any order, without drift.
"""

import logging
from collections import defaultdict

from sqlalchemy.exc import SQLAlchemyError

from pickem import db
from pickem.repositories import GameRepository, PickRepository, ScoreRepository
from pickem.utils.cache_utils import invalidate_model_cache
from pickem.utils.performance import PerformanceMonitor, timer
from pickem.utils.scoring import compute_weekly_score

logger = logging.getLogger(__name__)


class ScoreService:
    def __init__(self, games=None, picks=None, scores=None):
        self.games = games or GameRepository()
        self.picks = picks or PickRepository()
        self.scores = scores or ScoreRepository()

    def recalculate_week(self, season, week):
        """
        Recompute every affected user's score for a (season, week) in one pass.

        Affected users are those with picks for the week plus those who already
        have a score row for it. Each user's upsert runs in its own savepoint:
        a failure is logged and skipped, the rest of the batch still commits.

        Returns:
            dict: season, week, users, updated, unchanged, failed, errors
        """
        season = str(season)
        summary = {
            "season": season,
            "week": week,
            "users": 0,
            "updated": 0,
            "unchanged": 0,
            "failed": 0,
            "errors": [],
        }

        with PerformanceMonitor(f"recalculate_week {season}/{week}", log_threshold=1.0):
            games = self.games.get_week_games(season, week)

            picks_by_user = defaultdict(list)
            for pick in self.picks.get_week_picks(season, week):
                picks_by_user[pick.user_id].append(pick)

            user_ids = set(picks_by_user) | set(
                self.scores.get_week_user_ids(season, week)
            )
            summary["users"] = len(user_ids)

            for user_id in sorted(user_ids):
                values = compute_weekly_score(picks_by_user.get(user_id, []), games)

                try:
                    with db.session.begin_nested():
                        _, changed = self.scores.upsert(user_id, season, week, values)
                except SQLAlchemyError as e:
                    summary["failed"] += 1
                    summary["errors"].append({"user_id": user_id, "error": str(e)})
                    logger.error(
                        f"Failed to recalculate score for user {user_id} "
                        f"({season} week {week}): {e}",
                        exc_info=True,
                    )
                    continue

                if changed:
                    summary["updated"] += 1
                else:
                    summary["unchanged"] += 1

            db.session.commit()

        if summary["updated"]:
            invalidate_model_cache("Score")

        logger.info(
            f"Recalculated {season} week {week}: {summary['users']} users, "
            f"{summary['updated']} updated, {summary['unchanged']} unchanged, "
            f"{summary['failed']} failed"
        )
        return summary

    @timer
    def recalculate_weeks(self, weeks):
        """
        Recompute several (season, week) pairs; weeks are independent, so one
        week failing to load does not stop the others.
        """
        results = []
        for season, week in weeks:
            try:
                results.append(self.recalculate_week(season, week))
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(
                    f"Failed to recalculate {season} week {week}: {e}", exc_info=True
                )
                results.append(
                    {
                        "season": str(season),
                        "week": week,
                        "failed": True,
                        "errors": [{"error": str(e)}],
                    }
                )
        return results

    def recalculate_user_week(self, user_id, season, week):
        """Recompute and store a single user's score for a week"""
        season = str(season)
        games = self.games.get_week_games(season, week)
        picks = [
            pick
            for pick in self.picks.get_week_picks(season, week)
            if pick.user_id == user_id
        ]

        values = compute_weekly_score(picks, games)
        try:
            score, changed = self.scores.upsert(user_id, season, week, values)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        if changed:
            invalidate_model_cache("Score")

        return score
