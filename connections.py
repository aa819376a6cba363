import json
from typing import Dict, Optional, Protocol

from logging_config import get_logger

logger = get_logger(__name__)


class Channel(Protocol):
    """Outbound side of a client connection as seen by the relay.

    The transport layer owns the real connection; the relay only keeps this
    handle around to push text frames and never closes it.
    """

    def send(self, text: str) -> None:
        ...

    def is_open(self) -> bool:
        ...


def deliver(channel: Optional[Channel], envelope: dict) -> bool:
    """Best-effort send of one envelope. Returns whether the channel accepted it."""
    if channel is None or not channel.is_open():
        return False
    try:
        channel.send(json.dumps(envelope))
    except Exception as e:
        logger.warning(f"Failed to deliver {envelope.get('type', 'unknown')} envelope: {e}")
        return False
    return True


class ConnectionRegistry:
    """Maps a user identity to the channel its envelopes are delivered on."""

    def __init__(self):
        self.channels: Dict[str, Channel] = {}

    def register(self, user_id: str, channel: Channel):
        previous = self.channels.get(user_id)
        if previous is not None and previous is not channel:
            logger.warning(f"Replacing existing channel mapping for user {user_id}")
        self.channels[user_id] = channel
        logger.debug(f"Registered channel for user {user_id} (connections: {len(self.channels)})")

    def unregister(self, user_id: str):
        if self.channels.pop(user_id, None) is not None:
            logger.debug(f"Unregistered channel for user {user_id} (connections: {len(self.channels)})")

    def get(self, user_id: str) -> Optional[Channel]:
        return self.channels.get(user_id)

    def send(self, user_id: str, envelope: dict) -> bool:
        delivered = deliver(self.channels.get(user_id), envelope)
        if not delivered:
            logger.debug(f"User {user_id} not found or not connected, dropping {envelope.get('type', 'unknown')}")
        return delivered

    def __contains__(self, user_id: str) -> bool:
        return user_id in self.channels

    def __len__(self) -> int:
        return len(self.channels)
