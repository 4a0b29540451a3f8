from datetime import datetime, timezone

from pickem import db

SCORE_FIELDS = ("points", "correct_picks", "total_picks")


class Score(db.Model):
    """Weekly aggregate for one user; always replaced wholesale, never incremented"""

    __tablename__ = "scores"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    season = db.Column(db.String(10), nullable=False)

    points = db.Column(db.Integer, nullable=False, default=0)
    correct_picks = db.Column(db.Integer, nullable=False, default=0)
    total_picks = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", backref=db.backref("scores", lazy="dynamic"))

    __table_args__ = (
        db.UniqueConstraint("user_id", "week", "season", name="unique_user_week_score"),
        db.Index("idx_score_season_week", "season", "week"),
    )

    def __repr__(self):
        return f"<Score user_id={self.user_id} {self.season} week {self.week}: {self.points}>"

    @staticmethod
    def get(user_id, season, week):
        return Score.query.filter_by(
            user_id=user_id, season=str(season), week=week
        ).first()

    @staticmethod
    def get_week_scores(season, week):
        """Get a week's scores ordered for ranking"""
        return (
            Score.query.filter_by(season=str(season), week=week)
            .order_by(Score.points.desc(), Score.correct_picks.desc(), Score.user_id)
            .all()
        )

    @staticmethod
    def upsert(user_id, season, week, values):
        """
        Replace the (user, week, season) row with ``values``.

        Returns:
            tuple: (score, changed) - ``changed`` is False when the stored row
            already held exactly these values and nothing was written
        """
        score = Score.get(user_id, season, week)

        if score is None:
            score = Score(user_id=user_id, season=str(season), week=week, **values)
            db.session.add(score)
            return score, True

        changed = False
        for field in SCORE_FIELDS:
            if getattr(score, field) != values[field]:
                setattr(score, field, values[field])
                changed = True

        return score, changed

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "week": self.week,
            "season": self.season,
            "points": self.points,
            "correct_picks": self.correct_picks,
            "total_picks": self.total_picks,
        }
