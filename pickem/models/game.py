from datetime import datetime, timezone

from pickem import db

GAME_STATUSES = ("scheduled", "live", "final", "cancelled")


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Feed key - games are upserted by this id
    external_id = db.Column(db.String(50), unique=True, index=True, nullable=False)

    # Game identification
    season = db.Column(db.String(10), nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams (abbreviations, e.g. "KC")
    home_team = db.Column(db.String(10), nullable=False)
    away_team = db.Column(db.String(10), nullable=False)

    # Game timing (stored as UTC)
    start_time = db.Column(db.DateTime, nullable=False)

    # Game status
    status = db.Column(db.String(20), nullable=False, default="scheduled")

    # Scores (present once live/final)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    picks = db.relationship("Pick", backref="game", lazy="dynamic")

    # Indexes
    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.Index("idx_game_start_time", "start_time"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
        db.CheckConstraint("week >= 1 AND week <= 18", name="valid_week"),
    )

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} Week {self.week}>"

    @property
    def is_final(self):
        return self.status == "final"

    @property
    def has_scores(self):
        return self.home_score is not None and self.away_score is not None

    @property
    def winning_team(self):
        """Get the winning team code (None if game not final or tie)"""
        from pickem.utils.scoring import get_winning_team

        return get_winning_team(self)

    def has_team(self, team_code):
        return team_code in (self.home_team, self.away_team)

    def is_locked(self, now=None, lock_offset_minutes=None):
        """Check if picks for this game are frozen at ``now``"""
        from pickem.utils.lock_policy import is_game_locked

        if now is None:
            now = datetime.now(timezone.utc)
        if lock_offset_minutes is None:
            lock_offset_minutes = _configured_lock_offset()

        return is_game_locked(self, now, lock_offset_minutes)

    @staticmethod
    def get_by_identifier(identifier):
        """Look a game up by internal id or by feed external id"""
        if identifier is None:
            return None

        identifier = str(identifier).strip()
        if identifier.isdigit():
            game = db.session.get(Game, int(identifier))
            if game:
                return game

        return Game.query.filter_by(external_id=identifier).first()

    @staticmethod
    def get_games_for_week(season, week):
        """Get all games for a specific week"""
        return (
            Game.query.filter_by(season=str(season), week=week)
            .order_by(Game.start_time, Game.home_team)
            .all()
        )

    @staticmethod
    def get_recently_finalized_weeks(since):
        """Get (season, week) pairs with a final game updated at or after ``since``"""
        from pickem.utils.timezone_utils import to_naive_utc

        rows = (
            db.session.query(Game.season, Game.week)
            .filter(Game.status == "final", Game.updated_at >= to_naive_utc(since))
            .distinct()
            .order_by(Game.season, Game.week)
            .all()
        )
        return [(season, week) for season, week in rows]

    @staticmethod
    def get_weeks_with_final_games(season):
        rows = (
            db.session.query(Game.week)
            .filter(Game.season == str(season), Game.status == "final")
            .distinct()
            .order_by(Game.week)
            .all()
        )
        return [week for (week,) in rows]

    def to_dict(self, now=None):
        """Convert game to dictionary for API responses"""
        from pickem.utils.timezone_utils import convert_to_app_timezone

        local_start = convert_to_app_timezone(self.start_time)

        return {
            "id": self.id,
            "external_id": self.external_id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "local_start_time": local_start.isoformat() if local_start else None,
            "status": self.status,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "winning_team": self.winning_team,
            "is_locked": self.is_locked(now),
        }


def _configured_lock_offset():
    from flask import current_app, has_app_context

    from pickem.utils.lock_policy import DEFAULT_LOCK_OFFSET_MINUTES

    if has_app_context():
        return current_app.config.get(
            "GAME_LOCK_OFFSET_MINUTES", DEFAULT_LOCK_OFFSET_MINUTES
        )
    return DEFAULT_LOCK_OFFSET_MINUTES
