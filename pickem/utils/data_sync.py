import logging

from sqlalchemy.exc import SQLAlchemyError

from pickem import db
from pickem.models import Game, Pick
from pickem.models.game import GAME_STATUSES
from pickem.utils.cache_utils import invalidate_model_cache
from pickem.utils.timezone_utils import parse_iso_datetime, to_naive_utc

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("external_id", "season", "week", "home_team", "away_team", "start_time")


class GameSync:
    """
    Applies normalized game records from the schedule/score feed.

    Records look like::

        {"external_id": "401547353", "season": "2024", "week": 1,
         "home_team": "KC", "away_team": "BAL",
         "start_time": "2024-09-06T00:20:00Z", "status": "final",
         "home_score": 27, "away_score": 20}

    Games are upserted by ``external_id`` and committed first. Weeks where a
    game became final (or a final result changed) are then recomputed. A
    game moved to another season or week takes its picks along, and both
    weeks are recomputed.
    """

    def __init__(self, score_service=None):
        if score_service is None:
            from pickem.services.score_service import ScoreService

            score_service = ScoreService()
        self.score_service = score_service

    def upsert_games(self, records):
        """
        Upsert a batch of game records and recompute affected weeks.

        Returns:
            dict: created, updated, unchanged, skipped, errors, recalculated
        """
        summary = {
            "created": 0,
            "updated": 0,
            "unchanged": 0,
            "skipped": 0,
            "errors": [],
            "recalculated": [],
        }
        affected_weeks = set()

        # PHASE 1: write games
        try:
            for index, record in enumerate(records or []):
                try:
                    values = self._normalize_record(record)
                except ValueError as e:
                    summary["skipped"] += 1
                    summary["errors"].append({"index": index, "error": str(e)})
                    logger.warning(f"Skipping game record {index}: {e}")
                    continue

                outcome, weeks = self._upsert_game(values)
                summary[outcome] += 1
                affected_weeks.update(weeks)

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error syncing games: {e}", exc_info=True)
            raise

        if summary["created"] or summary["updated"]:
            invalidate_model_cache("Game")
            logger.info(
                f"Phase 1: {summary['created']} games created, "
                f"{summary['updated']} updated, {summary['skipped']} skipped"
            )

        # PHASE 2: recompute weeks whose results changed
        if affected_weeks:
            results = self.score_service.recalculate_weeks(sorted(affected_weeks))
            summary["recalculated"] = results
            logger.info(f"Phase 2: Recalculated {len(results)} weeks")

        return summary

    def _upsert_game(self, values):
        """Apply one record; returns (outcome, set of (season, week) to recompute)"""
        game = Game.query.filter_by(external_id=values["external_id"]).first()

        if game is None:
            game = Game(**values)
            db.session.add(game)
            weeks = {(game.season, game.week)} if self._is_scored_final(game) else set()
            return "created", weeks

        was_final = self._is_scored_final(game)
        old_result = (game.home_score, game.away_score)
        old_week = (game.season, game.week)

        changed = False
        for field, value in values.items():
            if getattr(game, field) != value:
                setattr(game, field, value)
                changed = True

        if not changed:
            return "unchanged", set()

        new_week = (game.season, game.week)
        if new_week != old_week:
            # both weeks lose or gain this game's picks
            self._move_picks(game, new_week)
            return "updated", {old_week, new_week}

        now_final = self._is_scored_final(game)
        result_changed = now_final and old_result != (game.home_score, game.away_score)

        # A game that leaves "final" also changes the week's outcome
        if now_final != was_final or result_changed:
            return "updated", {new_week}

        return "updated", set()

    @staticmethod
    def _move_picks(game, new_week):
        """
        Carry a rescheduled game's picks into its new week.

        A moved pick whose confidence value the user already holds in the
        new week is demoted to 0, the same outcome as losing that value to a
        reassignment.
        """
        season, week = new_week
        moved = demoted = 0

        for pick in Pick.query.filter_by(game_id=game.id).order_by(Pick.id).all():
            if pick.confidence_points > 0:
                # the query autoflushes picks moved earlier in this batch
                holder = Pick.query.filter(
                    Pick.user_id == pick.user_id,
                    Pick.season == season,
                    Pick.week == week,
                    Pick.confidence_points == pick.confidence_points,
                    Pick.game_id != game.id,
                ).first()
                if holder is not None:
                    logger.warning(
                        f"Pick {pick.id} lost confidence {pick.confidence_points}: "
                        f"user {pick.user_id} already uses it on game {holder.game_id} "
                        f"in {season} week {week}"
                    )
                    pick.confidence_points = 0
                    demoted += 1

            pick.season = season
            pick.week = week
            moved += 1

        if moved:
            logger.info(
                f"Moved {moved} picks of game {game.external_id} to {season} week {week} "
                f"({demoted} demoted)"
            )

    @staticmethod
    def _is_scored_final(game):
        return game.status == "final" and game.has_scores

    @staticmethod
    def _normalize_record(record):
        if not isinstance(record, dict):
            raise ValueError("Game record must be an object")

        missing = [field for field in REQUIRED_FIELDS if record.get(field) in (None, "")]
        if missing:
            raise ValueError(f"Missing fields: {', '.join(missing)}")

        try:
            week = int(record["week"])
        except (TypeError, ValueError):
            raise ValueError(f"Invalid week: {record['week']!r}")
        if not 1 <= week <= 18:
            raise ValueError(f"Week out of range: {week}")

        home_team = str(record["home_team"]).strip().upper()
        away_team = str(record["away_team"]).strip().upper()
        if home_team == away_team:
            raise ValueError(f"Home and away team are both {home_team}")

        status = str(record.get("status") or "scheduled").strip().lower()
        if status not in GAME_STATUSES:
            raise ValueError(f"Unknown status: {status}")

        try:
            start_time = to_naive_utc(parse_iso_datetime(record["start_time"]))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid start_time: {record['start_time']!r}")

        scores = {}
        for field in ("home_score", "away_score"):
            value = record.get(field)
            if value is None:
                scores[field] = None
                continue
            try:
                scores[field] = int(value)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid {field}: {value!r}")

        return {
            "external_id": str(record["external_id"]).strip(),
            "season": str(record["season"]).strip(),
            "week": week,
            "home_team": home_team,
            "away_team": away_team,
            "start_time": start_time,
            "status": status,
            "home_score": scores["home_score"],
            "away_score": scores["away_score"],
        }
