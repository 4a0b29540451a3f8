"""
Game lock policy for the pick'em application

A game's picks are frozen once it is live or final, or once the current time
reaches ``lock_offset_minutes`` before kickoff. Time is always passed in, so
the predicate never reads the clock.
"""

from datetime import timedelta

from pickem.utils.timezone_utils import ensure_utc

DEFAULT_LOCK_OFFSET_MINUTES = 5
LOCKED_STATUSES = frozenset({"live", "final"})


def lock_time(start_time, lock_offset_minutes=DEFAULT_LOCK_OFFSET_MINUTES):
    """Get the moment picks for a game starting at ``start_time`` freeze"""
    return ensure_utc(start_time) - timedelta(minutes=lock_offset_minutes)


def is_locked(status, start_time, now, lock_offset_minutes=DEFAULT_LOCK_OFFSET_MINUTES):
    """
    Check whether a game's pick set is frozen.

    Args:
        status: Game status ("scheduled", "live", "final", "cancelled")
        start_time: Kickoff time; naive datetimes are treated as UTC
        now: Current time; naive datetimes are treated as UTC
        lock_offset_minutes: How long before kickoff picks freeze

    Returns:
        bool: True if picks can no longer be created or changed
    """
    if status in LOCKED_STATUSES:
        return True

    return ensure_utc(now) >= lock_time(start_time, lock_offset_minutes)


def is_game_locked(game, now, lock_offset_minutes=DEFAULT_LOCK_OFFSET_MINUTES):
    """Apply :func:`is_locked` to anything with ``status`` and ``start_time``"""
    return is_locked(game.status, game.start_time, now, lock_offset_minutes)
