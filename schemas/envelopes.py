from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional


def room_key(value):
    """Room keys are strings on the wire, but clients sometimes send plain numbers."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class JoinEnvelope(BaseModel):
    roomId: str
    credential: Any = Field(default=None, validation_alias=AliasChoices("credential", "token"))
    capacity: Optional[int] = Field(default=None, validation_alias=AliasChoices("capacity", "maxUsers"))

    @field_validator("roomId", mode="before")
    @classmethod
    def numeric_room_id(cls, value):
        return room_key(value)


class ForwardEnvelope(BaseModel):
    """offer / answer / candidate. Anything besides the target is passed through untouched."""
    model_config = ConfigDict(extra="allow")

    type: str
    targetUserId: str


class MessageEnvelope(BaseModel):
    targetUserId: str
    text: str
    senderId: Optional[str] = None


class LeaveEnvelope(BaseModel):
    roomId: str
    userId: str

    @field_validator("roomId", mode="before")
    @classmethod
    def numeric_room_id(cls, value):
        return room_key(value)


class ErrorReply(BaseModel):
    type: str = "error"
    message: str


class JoinedReply(BaseModel):
    type: str = "joined"
    userId: str
    users: list[str]
    roomId: str
    maxUsers: int


class UserJoinedEvent(BaseModel):
    type: str = "user_joined"
    userId: str
    users: list[str]


class UserLeftEvent(BaseModel):
    type: str = "user_left"
    userId: str
    users: list[str]


class ChatMessage(BaseModel):
    type: str = "message"
    text: str
    senderId: Optional[str] = None
