from datetime import timedelta

import pytest
from conftest import SEASON, WEEK
from sqlalchemy.exc import OperationalError

from pickem import db
from pickem.models import Score
from pickem.repositories import ScoreRepository
from pickem.services.score_service import ScoreService


def score_rows():
    return [
        (s.user_id, s.season, s.week, s.points, s.correct_picks, s.total_picks, s.updated_at)
        for s in Score.query.order_by(Score.user_id).all()
    ]


@pytest.fixture
def week_setup(make_user, make_game, make_pick):
    """The G1/G2/G3 example: home win, away win, unplayed"""
    g1 = make_game(status="final", home_score=24, away_score=10, starts_in=timedelta(days=-1))
    g2 = make_game(
        home_team="SF",
        away_team="NYJ",
        status="final",
        home_score=3,
        away_score=27,
        starts_in=timedelta(days=-1),
    )
    g3 = make_game(home_team="DAL", away_team="NYG")

    alice = make_user("alice")
    make_pick(alice, g1, "KC", 10)
    make_pick(alice, g2, "SF", 5)
    make_pick(alice, g3, "DAL", 0)

    bob = make_user("bob")
    make_pick(bob, g1, "BAL", 16)
    make_pick(bob, g2, "NYJ", 1)

    return {"games": (g1, g2, g3), "alice": alice, "bob": bob}


class TestRecalculateWeek:
    def test_writes_weekly_scores(self, app, week_setup):
        summary = ScoreService().recalculate_week(SEASON, WEEK)

        assert summary["users"] == 2
        assert summary["updated"] == 2
        assert summary["failed"] == 0

        alice = Score.get(week_setup["alice"].id, SEASON, WEEK)
        assert (alice.points, alice.correct_picks, alice.total_picks) == (10, 1, 2)

        bob = Score.get(week_setup["bob"].id, SEASON, WEEK)
        assert (bob.points, bob.correct_picks, bob.total_picks) == (1, 1, 2)

    def test_recalculating_twice_is_idempotent(self, app, week_setup):
        service = ScoreService()
        service.recalculate_week(SEASON, WEEK)
        first = score_rows()

        summary = service.recalculate_week(SEASON, WEEK)

        assert summary["updated"] == 0
        assert summary["unchanged"] == 2
        assert score_rows() == first

    def test_existing_score_is_reset_when_picks_disappear(self, app, make_user):
        carol = make_user("carol")
        db.session.add(
            Score(user_id=carol.id, season=SEASON, week=WEEK, points=40, correct_picks=4, total_picks=4)
        )
        db.session.commit()

        summary = ScoreService().recalculate_week(SEASON, WEEK)

        assert summary["users"] == 1
        score = Score.get(carol.id, SEASON, WEEK)
        assert (score.points, score.correct_picks, score.total_picks) == (0, 0, 0)

    def test_result_correction_is_picked_up(self, app, week_setup):
        service = ScoreService()
        service.recalculate_week(SEASON, WEEK)

        g1 = week_setup["games"][0]
        g1.home_score, g1.away_score = 10, 24
        db.session.commit()

        summary = service.recalculate_week(SEASON, WEEK)

        assert summary["updated"] == 2
        assert Score.get(week_setup["alice"].id, SEASON, WEEK).points == 0
        assert Score.get(week_setup["bob"].id, SEASON, WEEK).points == 17

    def test_empty_week(self, app):
        summary = ScoreService().recalculate_week(SEASON, 9)

        assert summary["users"] == 0
        assert Score.query.count() == 0

    def test_one_failing_user_does_not_block_the_others(self, app, week_setup):
        failing_user = week_setup["alice"].id

        class FlakyScoreRepository(ScoreRepository):
            def upsert(self, user_id, season, week, values):
                if user_id == failing_user:
                    raise OperationalError("UPDATE scores", {}, Exception("database is locked"))
                return super().upsert(user_id, season, week, values)

        summary = ScoreService(scores=FlakyScoreRepository()).recalculate_week(SEASON, WEEK)

        assert summary["failed"] == 1
        assert summary["updated"] == 1
        assert summary["errors"][0]["user_id"] == failing_user
        assert Score.get(failing_user, SEASON, WEEK) is None
        assert Score.get(week_setup["bob"].id, SEASON, WEEK).points == 1

        # a later run repairs the skipped user
        ScoreService().recalculate_week(SEASON, WEEK)
        assert Score.get(failing_user, SEASON, WEEK).points == 10


class TestRecalculateHelpers:
    def test_recalculate_user_week(self, app, week_setup):
        score = ScoreService().recalculate_user_week(week_setup["alice"].id, SEASON, WEEK)

        assert (score.points, score.correct_picks, score.total_picks) == (10, 1, 2)
        assert Score.get(week_setup["bob"].id, SEASON, WEEK) is None

    def test_recalculate_weeks(self, app, week_setup):
        results = ScoreService().recalculate_weeks([(SEASON, WEEK), (SEASON, 2)])

        assert [r["week"] for r in results] == [WEEK, 2]
        assert results[0]["updated"] == 2
        assert results[1]["users"] == 0
