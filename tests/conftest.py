from datetime import datetime, timedelta, timezone

import pytest

from pickem import create_app, db
from pickem.models import Game, Pick, User

# Fixed "current time" for lock checks; games are placed relative to it
NOW = datetime(2024, 9, 8, 12, 0, tzinfo=timezone.utc)
SEASON = "2024"
WEEK = 1


@pytest.fixture
def app():
    app = create_app("testing")

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(username=None, is_admin=False):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user, token = User.create_user(
            username, f"{username}@example.com", is_admin=is_admin
        )
        db.session.commit()
        user.plain_token = token
        return user

    return _make_user


@pytest.fixture
def make_game(app):
    counter = {"n": 0}

    def _make_game(
        home_team="KC",
        away_team="BAL",
        starts_in=timedelta(hours=5),
        status="scheduled",
        home_score=None,
        away_score=None,
        season=SEASON,
        week=WEEK,
        external_id=None,
        start_time=None,
    ):
        counter["n"] += 1
        game = Game(
            external_id=external_id or f"ext-{counter['n']}",
            season=season,
            week=week,
            home_team=home_team,
            away_team=away_team,
            start_time=start_time or (NOW + starts_in).replace(tzinfo=None),
            status=status,
            home_score=home_score,
            away_score=away_score,
        )
        db.session.add(game)
        db.session.commit()
        return game

    return _make_game


@pytest.fixture
def make_pick(app):
    """Insert a pick directly, bypassing the allocation engine"""

    def _make_pick(user, game, picked_team=None, confidence_points=0):
        pick = Pick(
            user_id=user.id,
            game_id=game.id,
            season=game.season,
            week=game.week,
            picked_team=picked_team or game.home_team,
            confidence_points=confidence_points,
        )
        db.session.add(pick)
        db.session.commit()
        return pick

    return _make_pick


def auth_headers(user):
    return {"Authorization": f"Bearer {user.plain_token}"}
