import json
import uuid
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from logging_config import get_logger

logger = get_logger(__name__)


class Transport(Protocol):
    """What a Connection needs from the socket underneath it."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class WebSocketTransport:
    """Transport backed by a FastAPI/Starlette WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if WebSocketState.DISCONNECTED in (self.websocket.client_state, self.websocket.application_state):
            return
        await self.websocket.close(code=code, reason=reason)


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


def anonymous_user_id() -> str:
    return f"anon-{uuid.uuid4()}"


class Connection:
    """One client session: a transport, an identity and the rooms it joined.

    ``rooms`` is owned by the RoomRegistry; only the registry adds or removes
    names from it.
    """

    def __init__(self, transport: Transport, user_id: Optional[str] = None):
        self.connection_id = str(uuid.uuid4())
        self.user_id = user_id or anonymous_user_id()
        self.transport = transport
        self.rooms: Set[str] = set()
        self.state = ConnectionState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    def mark_open(self):
        if self.state == ConnectionState.CONNECTING:
            self.state = ConnectionState.OPEN

    async def send(self, frame: Dict[str, Any]) -> bool:
        """Serialize and write one frame.

        Returns False without touching the transport when the connection is
        no longer open. Transport errors propagate to the caller.
        """
        if not self.is_open:
            logger.debug(f"Skipping send to connection {self.connection_id} in state {self.state.value}")
            return False
        await self.transport.send_text(json.dumps(frame))
        return True

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING
        try:
            await self.transport.close(code=code, reason=reason)
        except Exception as e:
            # The peer may already be gone; the handle is dead either way
            logger.debug(f"Error closing transport for connection {self.connection_id}: {e}")
        finally:
            self.state = ConnectionState.CLOSED

    def __repr__(self):
        return f"Connection(id={self.connection_id!r}, user={self.user_id!r}, state={self.state.value})"
