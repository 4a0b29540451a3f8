import pytest

from pickem.models import Score
from pickem.services.scheduler_service import SchedulerService


@pytest.fixture
def scheduler(app):
    service = SchedulerService(app)
    yield service
    service.shutdown()


class TestSchedulerService:
    def test_not_started_when_disabled(self, scheduler):
        status = scheduler.get_status()

        assert status["is_running"] is False
        assert status["jobs"] == []

    def test_reconcile_recent_weeks(self, scheduler, make_user, make_game, make_pick):
        user = make_user()
        game = make_game(status="final", home_score=30, away_score=6)
        make_pick(user, game, "KC", 11)

        ok, _ = scheduler.force_run("recent")

        assert ok is True
        assert Score.get(user.id, game.season, game.week).points == 11
        assert scheduler.reconcile_stats["successful_runs"] == 1
        assert scheduler.reconcile_stats["weeks_recalculated"] == 1

    def test_nothing_final_means_no_run(self, scheduler, make_game):
        make_game()

        scheduler.force_run("recent")

        assert scheduler.reconcile_stats["total_runs"] == 0

    def test_full_reconcile(self, scheduler, make_user, make_game, make_pick):
        user = make_user()
        week1 = make_game(status="final", home_score=30, away_score=6)
        week2 = make_game(week=2, status="final", home_score=0, away_score=6)
        make_pick(user, week1, "KC", 4)
        make_pick(user, week2, "BAL", 9)

        scheduler.force_run("all")

        assert Score.get(user.id, "2024", 1).points == 4
        assert Score.get(user.id, "2024", 2).points == 9

    def test_unknown_run_type(self, scheduler):
        ok, message = scheduler.force_run("weekly")

        assert ok is False
        assert "weekly" in message
