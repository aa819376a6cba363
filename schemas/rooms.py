from pydantic import BaseModel


class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: str
    max_users: int
    online_users_count: int
    users: list[str]
    is_full: bool
