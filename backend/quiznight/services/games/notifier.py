from typing import List


def room_for(competition_id: str) -> str:
    return f"competition:{competition_id}"


class SessionNotifier:
    """Receives engine events; the base class drops them."""

    def state_changed(self, competition_id: str, state: dict) -> None:
        pass

    def timer_tick(self, competition_id: str, seconds: int) -> None:
        pass

    def scores_changed(self, competition_id: str, teams: List[dict]) -> None:
        pass


class SocketNotifier(SessionNotifier):
    """Fans engine events out to everyone in the competition's Socket.IO room."""

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def state_changed(self, competition_id, state):
        self.socketio.emit('state_sync', state, to=room_for(competition_id), namespace=self.namespace)

    def timer_tick(self, competition_id, seconds):
        self.socketio.emit('timer_sync', {'seconds': seconds}, to=room_for(competition_id), namespace=self.namespace)

    def scores_changed(self, competition_id, teams):
        self.socketio.emit('score_update', {'teams': teams}, to=room_for(competition_id), namespace=self.namespace)
