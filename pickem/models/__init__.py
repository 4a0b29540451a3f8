from pickem import db  # noqa: F401 - imported for model imports

from .game import Game
from .pick import Pick
from .score import Score
from .user import User

__all__ = [
    "User",
    "Game",
    "Pick",
    "Score",
]
