"""
Storage collaborators for the rule engine.

The engine and the score service only talk to these three classes, so a
different store can be swapped in by passing other implementations with the
same methods. The defaults are backed by the SQLAlchemy models.
"""

from datetime import datetime, timezone

from sqlalchemy import update

from pickem import db
from pickem.models import Game, Pick, Score


class GameRepository:
    """Read-only access to games (the feed owns them)"""

    def get(self, identifier):
        return Game.get_by_identifier(identifier)

    def get_week_games(self, season, week):
        return Game.get_games_for_week(season, week)


class PickRepository:
    def get_user_week_picks(self, user_id, season, week, lock=False):
        return Pick.get_user_week_picks(user_id, season, week, lock=lock)

    def get_week_picks(self, season, week):
        return Pick.get_week_picks(season, week)

    def add(self, pick):
        db.session.add(pick)
        return pick

    def demote(self, pick_id, confidence_value):
        """
        Reset a pick's confidence value to 0 if it still holds ``confidence_value``.

        Compare-and-swap: returns False when another writer changed the pick
        first, in which case nothing was written.
        """
        result = db.session.execute(
            update(Pick)
            .where(Pick.id == pick_id, Pick.confidence_points == confidence_value)
            .values(confidence_points=0, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount == 1


class ScoreRepository:
    def get(self, user_id, season, week):
        return Score.get(user_id, season, week)

    def get_week_scores(self, season, week):
        return Score.get_week_scores(season, week)

    def get_week_user_ids(self, season, week):
        rows = (
            db.session.query(Score.user_id)
            .filter_by(season=str(season), week=week)
            .all()
        )
        return [user_id for (user_id,) in rows]

    def upsert(self, user_id, season, week, values):
        return Score.upsert(user_id, season, week, values)
