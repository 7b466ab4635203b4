import json
from typing import Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from broker import Broker
from connection import Connection, Transport, WebSocketTransport
from logging_config import get_logger
from registry import RoomRegistry
from schemas.messages import CLIENT_FRAMES, ClientFrame, JoinFrame, LeaveFrame, SendFrame

logger = get_logger(__name__)


class ConnectionLifecycleManager:
    """Owns connection creation and teardown and feeds inbound frames to the Broker."""

    def __init__(self, registry: RoomRegistry, broker: Broker):
        self.registry = registry
        self.broker = broker
        # Bookkeeping only; routing goes through the registry
        self.connections: Set[Connection] = set()

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    def accept(self, transport: Transport, user_id: Optional[str] = None) -> Connection:
        connection = Connection(transport, user_id=user_id or None)
        connection.mark_open()
        self.connections.add(connection)
        logger.info(f"Connection {connection.connection_id} opened for user {connection.user_id} "
                    f"(connections: {len(self.connections)})")
        return connection

    async def handle_frame(self, connection: Connection, raw) -> None:
        """Parse one inbound frame and dispatch it. Bad or unknown frames are dropped."""
        if not connection.is_open:
            logger.debug(f"Ignoring frame for connection {connection.connection_id} in state {connection.state.value}")
            return

        frame = self.parse_frame(raw)
        if frame is None:
            logger.debug(f"Dropping malformed or unknown frame from connection {connection.connection_id}")
            return

        if isinstance(frame, JoinFrame):
            await self.broker.handle_join(connection, frame.room)
        elif isinstance(frame, LeaveFrame):
            await self.broker.handle_leave(connection, frame.room)
        elif isinstance(frame, SendFrame):
            await self.broker.handle_send(connection, frame.room, frame.user, frame.text)

    @staticmethod
    def parse_frame(raw) -> Optional[ClientFrame]:
        """Decode a frame into the model for its ``type``; None if it can't be used."""
        if not isinstance(raw, (str, bytes, bytearray)):
            return None
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError):
            # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting recurses
            return None
        if not isinstance(data, dict):
            return None
        frame_type = data.get("type")
        if not isinstance(frame_type, str) or frame_type not in CLIENT_FRAMES:
            return None
        try:
            return CLIENT_FRAMES[frame_type].model_validate(data)
        except ValidationError:
            return None

    async def close(self, connection: Connection, code: int = 1000, reason: Optional[str] = None) -> bool:
        """Tear a connection down. Safe to call more than once.

        Registry cleanup happens before the transport is closed so no broadcast
        can pick the connection up again.
        """
        if connection not in self.connections:
            return False

        self.registry.remove_everywhere(connection)
        self.connections.discard(connection)
        await connection.close(code=code, reason=reason)
        logger.info(f"Connection {connection.connection_id} closed for user {connection.user_id} "
                    f"(connections: {len(self.connections)})")
        return True

    async def serve(self, websocket: WebSocket, user_id: Optional[str] = None):
        """Run one WebSocket from accept to cleanup."""
        await websocket.accept()
        connection = self.accept(WebSocketTransport(websocket), user_id=user_id)

        message_count = 0
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                message_count += 1
                logger.debug(f"Received frame #{message_count} from connection {connection.connection_id}")
                await self.handle_frame(connection, raw)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for connection {connection.connection_id}")
        except Exception as e:
            logger.error(f"Error receiving from connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            await self.close(connection)
