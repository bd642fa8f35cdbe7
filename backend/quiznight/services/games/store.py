import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from .state import GameState


class StateSnapshotFile:
    """JSON file holding ``{competition_id: GameState dict}``."""

    def __init__(self, path: str, logger: Optional[logging.Logger] = None):
        self.path = os.path.abspath(path)
        self._logger = logger or logging.getLogger(__name__)
        self._write_lock = threading.Lock()

    def save(self, snapshot: Dict[str, dict]) -> bool:
        """Write the snapshot atomically. Failures are logged, never raised."""
        with self._write_lock:
            tmp_path = None
            try:
                directory = os.path.dirname(self.path)
                os.makedirs(directory, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(prefix='.backup-', suffix='.json', dir=directory)
                with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                    json.dump(snapshot, fh, indent=2)
                os.replace(tmp_path, self.path)
                return True
            except (OSError, TypeError, ValueError) as exc:
                self._logger.error(f"[snapshot-save-failed] path={self.path} error={exc}")
                if tmp_path and os.path.exists(tmp_path):
                    try:
                        os.remove(tmp_path)
                    except OSError:
                        pass
                return False

    def load(self) -> Dict[str, GameState]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            self._logger.warning(f"[snapshot-load-failed] path={self.path} error={exc}")
            return {}
        if not isinstance(raw, dict):
            self._logger.warning(f"[snapshot-load-failed] path={self.path} error=not a mapping")
            return {}
        sessions = {}
        for competition_id, data in raw.items():
            try:
                sessions[str(competition_id)] = GameState.from_dict(data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                self._logger.warning(f"[snapshot-skip] competition={competition_id} error={exc}")
        return sessions


class SessionStore:
    """In-memory ``GameState`` per competition with per-competition locking.

    The store-wide lock only guards creation of states and locks; work on a
    competition happens under that competition's own re-entrant lock, so
    different competitions never wait on each other. Saving one competition
    merges its dict into the last-saved map instead of re-reading every
    competition, so it never takes another competition's lock.
    """

    def __init__(self, snapshot_file: Optional[StateSnapshotFile] = None):
        self._states: Dict[str, GameState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()
        self._snapshot_file = snapshot_file
        self._saved: Dict[str, dict] = {}
        self._saved_guard = threading.Lock()
        self._write_lock = threading.Lock()

    def _lock_for(self, competition_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(competition_id)
            if lock is None:
                lock = self._locks[competition_id] = threading.RLock()
            return lock

    def get(self, competition_id: str) -> GameState:
        with self._guard:
            state = self._states.get(competition_id)
            if state is None:
                state = self._states[competition_id] = GameState()
            return state

    @contextmanager
    def lock(self, competition_id: str) -> Iterator[GameState]:
        with self._lock_for(competition_id):
            yield self.get(competition_id)

    def set(self, competition_id: str, mutator: Callable[[GameState], None]) -> GameState:
        with self.lock(competition_id) as state:
            mutator(state)
            return state

    def snapshot(self, competition_id: str) -> dict:
        with self.lock(competition_id) as state:
            return state.to_dict()

    def competition_ids(self) -> List[str]:
        with self._guard:
            return list(self._states)

    def snapshot_all(self) -> Dict[str, dict]:
        # Locks are taken one at a time; callers must not hold a competition lock.
        return {cid: self.snapshot(cid) for cid in self.competition_ids()}

    def restore(self, sessions: Dict[str, GameState]) -> None:
        with self._guard:
            self._states = dict(sessions)
        with self._saved_guard:
            self._saved = {cid: state.to_dict() for cid, state in sessions.items()}

    def save(self, competition_id: Optional[str] = None) -> bool:
        """Persist the snapshot file.

        With ``competition_id`` only that competition is re-read (under its own
        lock); the others are written as last saved. Without it every
        competition is re-read, which is meant for startup and shutdown.
        """
        if self._snapshot_file is None:
            return False
        if competition_id is None:
            snapshots = self.snapshot_all()
            with self._saved_guard:
                self._saved = snapshots
        else:
            with self.lock(competition_id) as state:
                snapshot = state.to_dict()
                with self._saved_guard:
                    self._saved[competition_id] = snapshot
        # Each writer re-copies the latest map, so the file ends up current
        with self._write_lock:
            with self._saved_guard:
                payload = dict(self._saved)
            return self._snapshot_file.save(payload)

    def load(self) -> Dict[str, GameState]:
        if self._snapshot_file is None:
            return {}
        sessions = self._snapshot_file.load()
        self.restore(sessions)
        return sessions
