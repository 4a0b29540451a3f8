"""
Confidence allocation engine

Validates and stores a user's pick for a game while keeping the user's
confidence values unique within the week. Claiming a value another unlocked
pick holds demotes that pick to 0 (incomplete); a value held by a locked
game cannot be claimed.

The demote and the write happen in one transaction:

* the user's picks for the week are read ``FOR UPDATE`` so concurrent
  submissions for the same week queue behind each other,
* the demote is a compare-and-swap on the holder's current value,
* the unique indexes on ``picks`` reject whatever race is left at commit.
"""

from collections import namedtuple

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickem import db
from pickem.errors import (
    ConflictError,
    DuplicateError,
    GameLockedError,
    NotFoundError,
    PickemError,
    ValidationError,
)
from pickem.models import Pick
from pickem.models.pick import MAX_CONFIDENCE_POINTS, MIN_CONFIDENCE_POINTS
from pickem.repositories import GameRepository, PickRepository
from pickem.utils.lock_policy import DEFAULT_LOCK_OFFSET_MINUTES, is_game_locked
from pickem.utils.logging_config import ContextualLogger
from pickem.utils.timezone_utils import ensure_utc, get_utc_time

CREATE = "create"
UPDATE = "update"
SUBMIT_MODES = (CREATE, UPDATE)

PickSubmission = namedtuple("PickSubmission", ["pick", "demoted_pick", "created"])


class ConfidenceAllocationEngine:
    """Single entry point for creating and updating picks"""

    def __init__(self, games=None, picks=None, lock_offset_minutes=None):
        self.games = games or GameRepository()
        self.picks = picks or PickRepository()
        self._lock_offset_minutes = lock_offset_minutes
        self.log = ContextualLogger(__name__)

    @property
    def lock_offset_minutes(self):
        if self._lock_offset_minutes is not None:
            return self._lock_offset_minutes
        if has_app_context():
            return current_app.config.get(
                "GAME_LOCK_OFFSET_MINUTES", DEFAULT_LOCK_OFFSET_MINUTES
            )
        return DEFAULT_LOCK_OFFSET_MINUTES

    def is_locked(self, game, now):
        return is_game_locked(game, now, self.lock_offset_minutes)

    def submit_pick(
        self, user_id, game_id, picked_team, confidence_value, mode=CREATE, now=None
    ):
        """
        Create or update a user's pick for a game.

        Args:
            user_id: The picking user
            game_id: Internal game id or feed external id
            picked_team: Team code of the selected winner
            confidence_value: 0..16, 0 leaves the pick incomplete
            mode: "create" or "update"
            now: Submission time (defaults to the current UTC time)

        Returns:
            PickSubmission: the stored pick, the pick demoted to 0 (or None),
            and whether the pick was newly created

        Raises:
            ValidationError, NotFoundError, GameLockedError, ConflictError,
            DuplicateError
        """
        log = self.log.bind(user_id=user_id, game_id=game_id, mode=mode)

        picked_team, confidence_value = self._validate_input(
            picked_team, confidence_value, mode
        )
        now = ensure_utc(now) if now is not None else get_utc_time()

        game = self.games.get(game_id)
        if game is None:
            raise NotFoundError("Game not found")

        if self.is_locked(game, now):
            raise GameLockedError()

        if not game.has_team(picked_team):
            raise ValidationError(
                f"Team {picked_team} is not playing in this game "
                f"({game.away_team} @ {game.home_team})"
            )

        try:
            submission = self._apply(
                user_id, game, picked_team, confidence_value, mode, now
            )
            db.session.commit()
        except PickemError:
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            raise self._translate_integrity_error(e, mode)
        except SQLAlchemyError as e:
            db.session.rollback()
            log.error(f"Database error while saving pick: {e}")
            raise

        if submission.demoted_pick is not None:
            log.info(
                f"Confidence {confidence_value} moved from pick "
                f"{submission.demoted_pick.id} (game {submission.demoted_pick.game_id})"
            )
        log.debug(
            f"Pick {'created' if submission.created else 'updated'}: "
            f"{picked_team} for {confidence_value}"
        )

        return submission

    def _validate_input(self, picked_team, confidence_value, mode):
        if mode not in SUBMIT_MODES:
            raise ValidationError(f"Unknown submit mode: {mode}")

        if not isinstance(picked_team, str) or not picked_team.strip():
            raise ValidationError("A picked team is required")

        if isinstance(confidence_value, bool) or not isinstance(confidence_value, int):
            raise ValidationError("Confidence value must be an integer")

        if not MIN_CONFIDENCE_POINTS <= confidence_value <= MAX_CONFIDENCE_POINTS:
            raise ValidationError(
                f"Confidence value must be between {MIN_CONFIDENCE_POINTS} "
                f"and {MAX_CONFIDENCE_POINTS}"
            )

        return picked_team.strip().upper(), confidence_value

    def _apply(self, user_id, game, picked_team, confidence_value, mode, now):
        """Run the conflict check and the writes; the caller commits"""
        week_picks = self.picks.get_user_week_picks(
            user_id, game.season, game.week, lock=True
        )
        existing = next((p for p in week_picks if p.game_id == game.id), None)

        if mode == CREATE and existing is not None:
            raise DuplicateError("User already has a pick for this game")
        if mode == UPDATE and existing is None:
            raise NotFoundError("Pick not found. Use create for a new pick.")

        current_value = existing.confidence_points if existing is not None else 0
        demoted = None

        # 0 only ever frees a slot, so it never conflicts
        if confidence_value > 0 and confidence_value != current_value:
            holder = next(
                (
                    p
                    for p in week_picks
                    if p is not existing and p.confidence_points == confidence_value
                ),
                None,
            )

            if holder is not None:
                if self.is_locked(holder.game, now):
                    raise ConflictError(
                        f"Confidence value {confidence_value} is committed to a "
                        f"locked game and cannot be changed"
                    )

                if not self.picks.demote(holder.id, confidence_value):
                    raise ConflictError(
                        f"Confidence value {confidence_value} was changed by another "
                        f"request, please resubmit"
                    )
                demoted = holder

        if existing is not None:
            existing.picked_team = picked_team
            existing.confidence_points = confidence_value
            return PickSubmission(existing, demoted, False)

        pick = Pick(
            user_id=user_id,
            game_id=game.id,
            season=game.season,
            week=game.week,
            picked_team=picked_team,
            confidence_points=confidence_value,
        )
        self.picks.add(pick)
        return PickSubmission(pick, demoted, True)

    @staticmethod
    def _translate_integrity_error(error, mode):
        message = str(error.orig).lower()

        if "confidence" in message:
            return ConflictError(
                "Confidence value was claimed by another request, please resubmit"
            )
        if mode == CREATE and ("game" in message or "unique" in message):
            return DuplicateError("User already has a pick for this game")

        return ConflictError("Pick could not be saved due to a conflicting change")
