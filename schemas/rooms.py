from pydantic import BaseModel
from typing import Any


class NegotiateResponse(BaseModel):
    url: str
    mode: str

class ChatRequest(BaseModel):
    # Checked in the handler so bad values get a 400, not a 422
    room: Any = None
    user: Any = None
    text: Any = None

class ChatResponse(BaseModel):
    ok: bool
    delivered: int

class RoomDetailsResponse(BaseModel):
    room: str
    member_count: int
    members: list[str]

class HealthResponse(BaseModel):
    status: str
    mode: str
    connections: int
    rooms: int
