from datetime import datetime, timedelta, timezone

import pytest
from conftest import auth_headers

from pickem.models import Pick, Score


@pytest.fixture
def user(make_user):
    return make_user("alice")


@pytest.fixture
def admin(make_user):
    return make_user("admin", is_admin=True)


def open_game(make_game, **kwargs):
    # the API checks locks against the real clock
    start = datetime.now(timezone.utc) + timedelta(days=30)
    return make_game(start_time=start.replace(tzinfo=None), **kwargs)


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/api/picks?season=2024&week=1")

        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_bad_token(self, client, user):
        response = client.get(
            "/api/picks?season=2024&week=1",
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401


class TestCreatePick:
    def test_create(self, client, user, make_game):
        game = open_game(make_game)

        response = client.post(
            "/api/picks",
            json={"gameId": game.id, "pickedTeam": "KC", "confidenceValue": 10},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["data"]["confidence_points"] == 10
        assert body["demoted_pick"] is None

    def test_confidence_points_alias(self, client, user, make_game):
        game = open_game(make_game)

        response = client.post(
            "/api/picks",
            json={"gameId": str(game.id), "pickedTeam": "BAL", "confidencePoints": "3"},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["confidence_points"] == 3

    def test_missing_fields(self, client, user):
        response = client.post(
            "/api/picks", json={"pickedTeam": "KC"}, headers=auth_headers(user)
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "gameId is required"

    @pytest.mark.parametrize("value", ["--3", "²", "3.5", "seven"])
    def test_malformed_confidence_string(self, client, user, make_game, value):
        game = open_game(make_game)

        response = client.post(
            "/api/picks",
            json={"gameId": game.id, "pickedTeam": "KC", "confidenceValue": value},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "confidenceValue must be an integer"
        assert Pick.query.count() == 0

    def test_non_json_body(self, client, user):
        response = client.post(
            "/api/picks", data="gameId=1", headers=auth_headers(user)
        )

        assert response.status_code == 400

    def test_unknown_game(self, client, user):
        response = client.post(
            "/api/picks",
            json={"gameId": 404, "pickedTeam": "KC", "confidenceValue": 1},
            headers=auth_headers(user),
        )

        assert response.status_code == 404

    def test_locked_game(self, client, user, make_game):
        game = make_game(status="live")

        response = client.post(
            "/api/picks",
            json={"gameId": game.id, "pickedTeam": "KC", "confidenceValue": 1},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert "locked" in response.get_json()["message"]
        assert Pick.query.count() == 0

    def test_duplicate(self, client, user, make_game):
        game = open_game(make_game)
        payload = {"gameId": game.id, "pickedTeam": "KC", "confidenceValue": 2}
        client.post("/api/picks", json=payload, headers=auth_headers(user))

        response = client.post("/api/picks", json=payload, headers=auth_headers(user))

        assert response.status_code == 409

    def test_locked_holder_conflict(self, client, user, make_game, make_pick):
        locked = make_game(status="final", home_score=3, away_score=0)
        game = open_game(make_game, home_team="SF", away_team="NYJ")
        make_pick(user, locked, "KC", 10)

        response = client.post(
            "/api/picks",
            json={"gameId": game.id, "pickedTeam": "SF", "confidenceValue": 10},
            headers=auth_headers(user),
        )

        assert response.status_code == 409
        assert response.get_json()["error"] == "Conflict"


class TestUpdatePick:
    def test_update_missing_pick(self, client, user, make_game):
        game = open_game(make_game)

        response = client.put(
            "/api/picks",
            json={"gameId": game.id, "pickedTeam": "KC", "confidenceValue": 1},
            headers=auth_headers(user),
        )

        assert response.status_code == 404

    def test_update_reports_demoted_pick(self, client, user, make_game):
        g1 = open_game(make_game)
        g2 = open_game(make_game, home_team="SF", away_team="NYJ")
        client.post(
            "/api/picks",
            json={"gameId": g1.id, "pickedTeam": "KC", "confidenceValue": 8},
            headers=auth_headers(user),
        )
        client.post(
            "/api/picks",
            json={"gameId": g2.id, "pickedTeam": "SF", "confidenceValue": 1},
            headers=auth_headers(user),
        )

        response = client.put(
            "/api/picks",
            json={"gameId": g2.id, "pickedTeam": "SF", "confidenceValue": 8},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["data"]["confidence_points"] == 8
        assert body["demoted_pick"]["game_id"] == g1.id
        assert body["demoted_pick"]["confidence_points"] == 0


class TestListPicks:
    def test_only_own_picks(self, client, user, make_user, make_game, make_pick):
        other = make_user("bob")
        game = make_game()
        make_pick(user, game, "KC", 4)
        make_pick(other, game, "BAL", 4)

        response = client.get("/api/picks?season=2024&week=1", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert [p["user_id"] for p in data] == [user.id]

    def test_requires_season_and_week(self, client, user):
        response = client.get("/api/picks?season=2024", headers=auth_headers(user))

        assert response.status_code == 400


class TestScores:
    def test_recompute_requires_admin(self, client, user):
        response = client.post(
            "/api/scores/recompute",
            json={"season": "2024", "week": 1},
            headers=auth_headers(user),
        )

        assert response.status_code == 403

    def test_recompute_and_list(self, client, admin, user, make_game, make_pick):
        game = make_game(status="final", home_score=21, away_score=7)
        make_pick(user, game, "KC", 9)

        response = client.post(
            "/api/scores/recompute",
            json={"season": "2024", "week": 1},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["updated"] == 1
        assert "recalculate_week 2024/1" in response.headers["Server-Timing"]
        assert Score.get(user.id, "2024", 1).points == 9

        response = client.get("/api/scores?season=2024&week=1")
        rows = response.get_json()["data"]
        assert rows[0]["user_id"] == user.id
        assert rows[0]["points"] == 9
        assert rows[0]["rank"] == 1


class TestGames:
    def test_week_games_show_lock_state(self, client, user, make_game):
        open_game(make_game)
        make_game(home_team="SF", away_team="NYJ", status="live")

        response = client.get("/api/games?season=2024&week=1", headers=auth_headers(user))

        locks = {g["home_team"]: g["is_locked"] for g in response.get_json()["data"]}
        assert locks == {"KC": False, "SF": True}

    def test_sync_requires_admin(self, client, user):
        response = client.post(
            "/api/games/sync", json={"games": []}, headers=auth_headers(user)
        )

        assert response.status_code == 403

    def test_sync(self, client, admin):
        response = client.post(
            "/api/games/sync",
            json={
                "games": [
                    {
                        "external_id": "g1",
                        "season": "2024",
                        "week": 2,
                        "home_team": "DAL",
                        "away_team": "NYG",
                        "start_time": "2024-09-15T17:00:00Z",
                        "status": "scheduled",
                    }
                ]
            },
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["created"] == 1

    def test_scheduler_status(self, client, admin):
        response = client.get("/api/admin/scheduler", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()["data"]["is_running"] is False
