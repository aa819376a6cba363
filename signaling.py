import hmac
import json
import uuid
from typing import Callable, Optional, Union

from pydantic import ValidationError

from backend import RoomDirectory, User
from connections import Channel, ConnectionRegistry, deliver
from constants import SIGNALING_CREDENTIAL
from errors import InvalidCredential, MalformedEnvelope, RoomFull
from logging_config import get_logger
from schemas.envelopes import (
    ChatMessage,
    ErrorReply,
    ForwardEnvelope,
    JoinedReply,
    JoinEnvelope,
    LeaveEnvelope,
    MessageEnvelope,
    UserJoinedEvent,
    UserLeftEvent,
)

logger = get_logger(__name__)

FORWARDED_TYPES = ("offer", "answer", "candidate")


def generate_user_id() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


class Session:
    """Per-connection state: the channel plus the membership it acquired, if any."""

    def __init__(self, channel: Channel):
        self.channel = channel
        self.user_id: Optional[str] = None
        self.room_id: Optional[str] = None

    @property
    def joined(self) -> bool:
        return self.user_id is not None

    def __repr__(self):
        return f"Session(user_id={self.user_id!r}, room_id={self.room_id!r})"


class SignalingEngine:
    """Routes signaling envelopes between room members.

    All state changes are synchronous and complete before the next envelope
    is handled. Outbound envelopes are handed to channels, which queue them;
    nothing here waits on the network.
    """

    def __init__(
        self,
        credential: str = SIGNALING_CREDENTIAL,
        directory: Optional[RoomDirectory] = None,
        registry: Optional[ConnectionRegistry] = None,
        id_factory: Callable[[], str] = generate_user_id,
    ):
        self.credential = credential
        self.directory = directory if directory is not None else RoomDirectory()
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.id_factory = id_factory

    # Transport callbacks

    def connect(self, channel: Channel) -> Session:
        logger.debug("New connection")
        return Session(channel)

    def handle_raw(self, session: Session, raw: Union[str, bytes]):
        try:
            data = self.decode(raw)
        except MalformedEnvelope as e:
            logger.warning(f"Dropping malformed envelope from {session.user_id or 'anonymous connection'}: {e.message}")
            return
        self.handle_envelope(session, data)

    def disconnect(self, session: Session):
        logger.debug(f"Connection closed for {session}")
        if session.joined:
            self.release(session.room_id, session.user_id)
            # The channel is gone even if the membership was already released
            self.registry.unregister(session.user_id)
            session.user_id = None
            session.room_id = None

    # Dispatch

    @staticmethod
    def decode(raw: Union[str, bytes]) -> dict:
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise MalformedEnvelope(f"not valid JSON: {e}")
        if not isinstance(data, dict):
            raise MalformedEnvelope("envelope must be a JSON object")
        if not isinstance(data.get("type"), str):
            raise MalformedEnvelope("envelope has no type")
        return data

    def handle_envelope(self, session: Session, data: dict):
        message_type = data.get("type")
        logger.debug(f"Received {message_type} from {session.user_id or 'anonymous connection'}")
        try:
            if message_type == "join":
                self.handle_join(session, data)
            elif message_type in FORWARDED_TYPES:
                self.forward_to_peer(data)
            elif message_type == "message":
                self.forward_message(session, data)
            elif message_type == "leave":
                self.handle_leave(session, data)
            else:
                logger.debug(f"Ignoring unknown envelope type {message_type!r}")
        except ValidationError as e:
            logger.warning(f"Dropping malformed {message_type} envelope: {e.error_count()} invalid field(s)")
        except Exception as e:
            logger.error(f"Error handling {message_type} envelope for {session}: {e}", exc_info=True)

    def handle_join(self, session: Session, data: dict) -> Optional[str]:
        request = JoinEnvelope.model_validate(data)
        try:
            self.check_credential(request.credential)
            room = self.directory.get_or_create(request.roomId, request.capacity)
            moving_within = session.joined and session.room_id == room.room_id
            if room.is_full and not moving_within:
                raise RoomFull(room.room_id, room.capacity)
            if session.joined:
                # One membership per connection; a re-join moves it
                self.release(session.room_id, session.user_id)
                session.user_id = session.room_id = None
            user_id = self.id_factory()
            users = room.join(User(user_id, session.channel, self.directory.clock()))
        except (InvalidCredential, RoomFull) as e:
            logger.info(f"Join to room {request.roomId} rejected: {e.message}")
            deliver(session.channel, ErrorReply(message=e.message).model_dump())
            return None

        session.user_id = user_id
        session.room_id = room.room_id
        self.registry.register(user_id, session.channel)
        logger.info(f"User {user_id} joined room {room.room_id} ({len(users)}/{room.capacity})")

        deliver(session.channel, JoinedReply(
            userId=user_id,
            users=users,
            roomId=room.room_id,
            maxUsers=room.capacity,
        ).model_dump())
        self.broadcast_to_room(
            room.room_id,
            UserJoinedEvent(userId=user_id, users=users).model_dump(),
            exclude=session.channel,
        )
        return user_id

    def check_credential(self, credential):
        if not isinstance(credential, str) or not hmac.compare_digest(credential.encode(), self.credential.encode()):
            raise InvalidCredential()

    def forward_to_peer(self, data: dict) -> bool:
        ForwardEnvelope.model_validate(data)
        message = {key: value for key, value in data.items() if key != "targetUserId"}
        return self.registry.send(data["targetUserId"], message)

    def forward_message(self, session: Session, data: dict) -> bool:
        request = MessageEnvelope.model_validate(data)
        sender_id = request.senderId if request.senderId is not None else session.user_id
        return self.registry.send(
            request.targetUserId,
            ChatMessage(text=request.text, senderId=sender_id).model_dump(),
        )

    def handle_leave(self, session: Session, data: dict):
        request = LeaveEnvelope.model_validate(data)
        self.release(request.roomId, request.userId)
        if request.userId == session.user_id:
            session.user_id = None
            session.room_id = None

    # Membership cleanup and fan-out

    def release(self, room_id: str, user_id: str) -> bool:
        """Drop a user from its room and the registry. Safe to call repeatedly."""
        removed = False
        room = self.directory.get(room_id)
        if room is not None and room.leave(user_id):
            removed = True
            users = room.members()
            logger.info(f"User {user_id} left room {room_id}. Remaining: {len(users)}")
            self.broadcast_to_room(room_id, UserLeftEvent(userId=user_id, users=users).model_dump())
            if room.is_empty:
                self.directory.schedule_deletion(room_id)
            self.registry.unregister(user_id)
        return removed

    def broadcast_to_room(self, room_id: str, envelope: dict, exclude: Optional[Channel] = None) -> int:
        room = self.directory.get(room_id)
        if room is None:
            return 0
        delivered = 0
        for user in list(room.users):
            if user.channel is exclude:
                continue
            if deliver(user.channel, envelope):
                delivered += 1
        logger.debug(f"Broadcast {envelope.get('type')} to {delivered} member(s) of room {room_id}")
        return delivered

    def shutdown(self):
        self.directory.cancel_pending()
        logger.info(f"Signaling engine stopped with {len(self.directory)} room(s) and {len(self.registry)} connection(s)")
