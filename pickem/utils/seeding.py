"""
Test-data seeding for a week's picks.

Every pick goes through ConfidenceAllocationEngine, so seeded data obeys the
same lock and uniqueness rules as real submissions. Pass ``as_of`` to seed a
week that has already kicked off as if it were still open.
"""

import logging
import random

from pickem import db
from pickem.errors import NotFoundError, PickemError
from pickem.models import Game, User
from pickem.models.pick import MAX_CONFIDENCE_POINTS
from pickem.services.confidence_allocation import CREATE, ConfidenceAllocationEngine
from pickem.services.score_service import ScoreService
from pickem.utils.timezone_utils import get_utc_time

logger = logging.getLogger(__name__)

SEED_USER_PREFIX = "seed_user_"


def get_or_create_seed_users(count):
    """Return ``count`` seed users, creating the ones that are missing"""
    users = []
    created = 0

    for number in range(1, count + 1):
        username = f"{SEED_USER_PREFIX}{number}"
        user = User.query.filter_by(username=username).first()
        if user is None:
            user, _ = User.create_user(
                username,
                f"{username}@example.com",
                display_name=f"Seed User {number}",
            )
            created += 1
        users.append(user)

    if created:
        db.session.commit()
        logger.info(f"Created {created} seed users")

    return users


def seed_week_picks(season, week, user_count, as_of=None, rng=None, engine=None):
    """
    Give each seed user a random full card for the week.

    Games are shuffled per user and dealt confidence values from the top
    down; games already locked at ``as_of`` are skipped.

    Returns:
        dict: users, picks_created, skipped, recalculated
    """
    rng = rng or random.Random()
    engine = engine or ConfidenceAllocationEngine()

    games = Game.get_games_for_week(season, week)
    if not games:
        raise NotFoundError(f"No games found for {season} week {week}")

    users = get_or_create_seed_users(user_count)
    summary = {"users": len(users), "picks_created": 0, "skipped": 0}

    for user in users:
        current = user.picks.filter_by(season=str(season), week=week).all()
        existing = {pick.game_id for pick in current}
        taken = {pick.confidence_points for pick in current if pick.is_complete}

        open_games = [game for game in games if game.id not in existing]
        rng.shuffle(open_games)
        top = min(len(games), MAX_CONFIDENCE_POINTS)
        values = [v for v in range(top, 0, -1) if v not in taken]

        for game in open_games:
            if engine.is_locked(game, as_of or get_utc_time()):
                summary["skipped"] += 1
                continue

            confidence = values.pop(0) if values else 0
            picked_team = rng.choice([game.home_team, game.away_team])

            try:
                engine.submit_pick(
                    user.id, game.id, picked_team, confidence, mode=CREATE, now=as_of
                )
                summary["picks_created"] += 1
            except PickemError as e:
                summary["skipped"] += 1
                logger.warning(
                    f"Seed pick skipped for {user.username} game {game.id}: {e.message}"
                )

    summary["recalculated"] = ScoreService().recalculate_week(season, week)
    logger.info(
        f"Seeded {summary['picks_created']} picks for {len(users)} users "
        f"({season} week {week})"
    )
    return summary
