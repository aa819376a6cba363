import asyncio
import time
from typing import Callable, Dict, List, Optional

from connections import Channel
from constants import ROOM_EMPTY_GRACE_SECONDS, ROOM_MAX_USERS, ROOM_STALE_SECONDS
from errors import RoomFull
from logging_config import get_logger

logger = get_logger(__name__)


def clamp_capacity(requested: Optional[int]) -> int:
    """Effective room capacity: omitted or non-positive means the maximum."""
    if requested is None or requested <= 0:
        return ROOM_MAX_USERS
    return min(requested, ROOM_MAX_USERS)


def _call_later(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


class User:
    def __init__(self, user_id: str, channel: Channel, joined_at: float):
        self.user_id = user_id
        self.channel = channel
        self.joined_at = joined_at

    def __repr__(self):
        return f"User({self.user_id!r})"


class Room:
    def __init__(self, room_id: str, capacity: int, created_at: float):
        self.room_id = room_id
        self.capacity = capacity
        self.created_at = created_at
        self.users: List[User] = []

    def join(self, user: User) -> List[str]:
        """Append a member and return the member list after the join.

        Raises RoomFull instead of evicting anyone when capacity is reached.
        """
        if len(self.users) >= self.capacity:
            raise RoomFull(self.room_id, self.capacity)
        self.users.append(user)
        return self.members()

    def leave(self, user_id: str) -> bool:
        for index, user in enumerate(self.users):
            if user.user_id == user_id:
                del self.users[index]
                return True
        return False

    def members(self) -> List[str]:
        return [user.user_id for user in self.users]

    def channel_of(self, user_id: str) -> Optional[Channel]:
        for user in self.users:
            if user.user_id == user_id:
                return user.channel
        return None

    @property
    def is_empty(self) -> bool:
        return not self.users

    @property
    def is_full(self) -> bool:
        return len(self.users) >= self.capacity

    def __len__(self) -> int:
        return len(self.users)

    def __repr__(self):
        return f"Room({self.room_id!r}, {len(self.users)}/{self.capacity})"


class RoomDirectory:
    """In-memory room store owning creation and garbage collection of rooms.

    Rooms are created lazily on the first join. An emptied room is not
    dropped right away: a deletion re-check is scheduled after the grace
    period so that peers reconnecting quickly find their room again, and
    `reap_stale` removes whatever empty rooms slipped through.
    """

    def __init__(
        self,
        grace_seconds: float = ROOM_EMPTY_GRACE_SECONDS,
        stale_seconds: float = ROOM_STALE_SECONDS,
        clock: Callable[[], float] = time.time,
        scheduler: Callable = _call_later,
    ):
        self.rooms: Dict[str, Room] = {}
        self.grace_seconds = grace_seconds
        self.stale_seconds = stale_seconds
        self.clock = clock
        self.scheduler = scheduler
        self._pending: Dict[str, object] = {}

    def get_or_create(self, room_id: str, requested_capacity: Optional[int] = None) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            room = Room(room_id, clamp_capacity(requested_capacity), self.clock())
            self.rooms[room_id] = room
            logger.info(f"Created room {room_id} for {room.capacity} users")
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def delete_if_empty(self, room_id: str) -> bool:
        room = self.rooms.get(room_id)
        if room is None or not room.is_empty:
            return False
        del self.rooms[room_id]
        return True

    def schedule_deletion(self, room_id: str):
        self._cancel(room_id)
        self._pending[room_id] = self.scheduler(self.grace_seconds, lambda: self._grace_expired(room_id))
        logger.debug(f"Room {room_id} is empty, deletion check in {self.grace_seconds}s")

    def _grace_expired(self, room_id: str):
        self._pending.pop(room_id, None)
        if self.delete_if_empty(room_id):
            logger.info(f"Room {room_id} deleted after staying empty for {self.grace_seconds}s")
        else:
            logger.debug(f"Room {room_id} kept, it was repopulated or already removed")

    def reap_stale(self, now: Optional[float] = None) -> List[str]:
        now = self.clock() if now is None else now
        stale = [
            room_id for room_id, room in self.rooms.items()
            if room.is_empty and now - room.created_at > self.stale_seconds
        ]
        for room_id in stale:
            del self.rooms[room_id]
            self._cancel(room_id)
            logger.info(f"Room {room_id} deleted (stale)")
        return stale

    def _cancel(self, room_id: str):
        handle = self._pending.pop(room_id, None)
        if handle is not None:
            handle.cancel()

    def cancel_pending(self):
        for room_id in list(self._pending):
            self._cancel(room_id)

    def room_ids(self) -> List[str]:
        return list(self.rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self.rooms

    def __len__(self) -> int:
        return len(self.rooms)
