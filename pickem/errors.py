"""
Error taxonomy for the pick'em rule engine.

Every error here is terminal: it is reported to the caller as-is and never
retried by the engine. ``status_code`` is the HTTP status the API answers with.
"""


class PickemError(Exception):
    """Base class for rule-engine errors"""

    status_code = 400
    error = "Bad Request"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"success": False, "error": self.error, "message": self.message}


class ValidationError(PickemError):
    """Malformed or out-of-range input"""

    status_code = 400
    error = "Bad Request"


class NotFoundError(PickemError):
    """Unknown game, or an update against a pick that does not exist"""

    status_code = 404
    error = "Not Found"


class ConflictError(PickemError):
    """The request collides with state that cannot be changed"""

    status_code = 409
    error = "Conflict"


class GameLockedError(ConflictError):
    """Picks for the game are frozen"""

    status_code = 400
    error = "Bad Request"

    def __init__(self, message="Game has already started, picks are locked"):
        super().__init__(message)


class DuplicateError(PickemError):
    """A create against a (user, game) pair that already has a pick"""

    status_code = 409
    error = "Conflict"
