"""Realtime push port — delivers a payload to a user's live connections."""

from abc import ABC, abstractmethod


class PushPort(ABC):
    @abstractmethod
    def send(self, user_id: str, payload: dict) -> dict:
        """Push `payload` to every live connection of `user_id`.

        Returns:
            dict with keys: status ("sent", "offline" or "failed"), delivered (int), error (optional)
        """
        ...
