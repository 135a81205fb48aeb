"""Fake realtime push adapter.

Keeps a mutex-guarded map of live connections per user, like the websocket
registry it stands in for. Users are considered connected unless a test
disconnects them.
"""

import threading

from aftersales.channel.push_port import PushPort


class FakePushAdapter(PushPort):
    def __init__(self):
        self._lock = threading.Lock()
        self._offline: set[str] = set()
        self.sent_pushes: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Push delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Push delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def disconnect(self, user_id: str) -> None:
        with self._lock:
            self._offline.add(str(user_id))

    def connect(self, user_id: str) -> None:
        with self._lock:
            self._offline.discard(str(user_id))

    def send(self, user_id: str, payload: dict) -> dict:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        with self._lock:
            if str(user_id) in self._offline:
                return {"status": "offline", "delivered": 0}
            self.sent_pushes.append({"user_id": str(user_id), "payload": payload})
        return {"status": "sent", "delivered": 1}

    def pushes_to(self, user_id: str) -> list[dict]:
        return [p["payload"] for p in self.sent_pushes if p["user_id"] == str(user_id)]

    def reset(self):
        with self._lock:
            self._offline.clear()
            self.sent_pushes.clear()
        self.should_succeed = True
        self.failure_reason = "Push delivery failed"
