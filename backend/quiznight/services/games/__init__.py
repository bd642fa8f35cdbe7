"""Game domain services: grading, countdowns, session state and the engine.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics.
"""

from .engine import GameEngine
from .grading import PENDING_REVIEW, Graded, grade
from .notifier import SessionNotifier, SocketNotifier
from .state import GameState, Phase, Team
from .store import SessionStore, StateSnapshotFile
from .timer import CountdownTimer

__all__ = [
    'CountdownTimer',
    'GameEngine',
    'GameState',
    'Graded',
    'PENDING_REVIEW',
    'Phase',
    'SessionNotifier',
    'SessionStore',
    'SocketNotifier',
    'StateSnapshotFile',
    'Team',
    'grade',
]
