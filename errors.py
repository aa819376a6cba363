class SignalingError(Exception):
    """Base class for errors raised while handling a signaling envelope."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidCredential(SignalingError):
    def __init__(self, message: str = "Invalid credential"):
        super().__init__(message)


class RoomFull(SignalingError):
    def __init__(self, room_id: str, capacity: int):
        self.room_id = room_id
        self.capacity = capacity
        super().__init__(f"Room {room_id} is full")


class MalformedEnvelope(SignalingError):
    pass
