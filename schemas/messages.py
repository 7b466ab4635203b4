from pydantic import BaseModel, ConfigDict
from typing import Literal

# Wire type tags
JOIN = "join"
LEAVE = "leave"
SEND = "send"
JOINED = "joined"
LEFT = "left"
GROUP_MESSAGE = "group-message"


class ClientFrame(BaseModel):
    """Base for frames a client may send. Fields a frame type does not use are ignored."""
    model_config = ConfigDict(extra="ignore")


class JoinFrame(ClientFrame):
    type: Literal["join"] = JOIN
    room: str


class LeaveFrame(ClientFrame):
    type: Literal["leave"] = LEAVE
    room: str


class SendFrame(ClientFrame):
    type: Literal["send"] = SEND
    room: str
    user: str
    text: str


CLIENT_FRAMES = {
    JOIN: JoinFrame,
    LEAVE: LeaveFrame,
    SEND: SendFrame,
}


class ChatMessage(BaseModel):
    user: str
    text: str
    ts: int  # ms since epoch, assigned by the server


class JoinedFrame(BaseModel):
    type: Literal["joined"] = JOINED
    room: str


class LeftFrame(BaseModel):
    type: Literal["left"] = LEFT
    room: str


class MessageEnvelope(BaseModel):
    data: ChatMessage


class GroupMessageFrame(BaseModel):
    type: Literal["group-message"] = GROUP_MESSAGE
    room: str
    message: MessageEnvelope
