from datetime import datetime, timezone

from pickem import db

# Confidence values live in [0, MAX]; 0 marks an incomplete pick
MIN_CONFIDENCE_POINTS = 0
MAX_CONFIDENCE_POINTS = 16


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Copied from the game at creation so confidence values can be indexed per week
    season = db.Column(db.String(10), nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Pick details
    picked_team = db.Column(db.String(10), nullable=False)
    confidence_points = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_pick"),
        # A confidence value may be held by at most one pick per user and week
        db.Index(
            "unique_user_week_confidence",
            "user_id",
            "season",
            "week",
            "confidence_points",
            unique=True,
            sqlite_where=db.text("confidence_points > 0"),
            postgresql_where=db.text("confidence_points > 0"),
        ),
        db.CheckConstraint(
            f"confidence_points >= {MIN_CONFIDENCE_POINTS} "
            f"AND confidence_points <= {MAX_CONFIDENCE_POINTS}",
            name="valid_confidence_points",
        ),
        db.Index("idx_pick_user_week", "user_id", "season", "week"),
        db.Index("idx_pick_game", "game_id"),
    )

    def __repr__(self):
        return (
            f"<Pick user_id={self.user_id} game_id={self.game_id} "
            f"team={self.picked_team} confidence={self.confidence_points}>"
        )

    @property
    def is_complete(self):
        """A pick counts once a confidence value has been assigned"""
        return self.confidence_points > 0

    @staticmethod
    def get_user_week_picks(user_id, season, week, lock=False):
        """Get all of a user's picks for a week, optionally row-locked"""
        query = Pick.query.filter_by(
            user_id=user_id, season=str(season), week=week
        ).order_by(Pick.id)
        if lock:
            query = query.with_for_update()
        return query.all()

    @staticmethod
    def get_week_picks(season, week):
        """Get every user's picks for a week"""
        return (
            Pick.query.filter_by(season=str(season), week=week)
            .order_by(Pick.user_id, Pick.id)
            .all()
        )

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "season": self.season,
            "week": self.week,
            "picked_team": self.picked_team,
            "confidence_points": self.confidence_points,
            "is_complete": self.is_complete,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
