import asyncio
import time
from typing import Optional

from connection import Connection
from logging_config import get_logger
from registry import RoomRegistry
from schemas.messages import ChatMessage, GroupMessageFrame, JoinedFrame, LeftFrame, MessageEnvelope

logger = get_logger(__name__)


def now_ms() -> int:
    # Wall clock; concurrent senders may get equal or out-of-order values
    return int(time.time() * 1000)


def _non_empty(value) -> bool:
    return isinstance(value, str) and value != ""


class Broker:
    """Room protocol on top of a RoomRegistry.

    Invalid requests are dropped without a reply. Broadcasts are best-effort:
    a failing recipient is logged and skipped, the sender is never told.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    async def handle_join(self, connection: Connection, room: Optional[str]) -> bool:
        if not _non_empty(room):
            logger.debug(f"Dropping join with invalid room from connection {connection.connection_id}")
            return False

        self.registry.join(room, connection)
        logger.info(f"User {connection.user_id} joined room {room}")
        await self._reply(connection, JoinedFrame(room=room).model_dump())
        return True

    async def handle_leave(self, connection: Connection, room: Optional[str]) -> bool:
        if not _non_empty(room):
            logger.debug(f"Dropping leave with invalid room from connection {connection.connection_id}")
            return False

        self.registry.leave(room, connection)
        logger.info(f"User {connection.user_id} left room {room}")
        await self._reply(connection, LeftFrame(room=room).model_dump())
        return True

    async def handle_send(
        self,
        connection: Connection,
        room: Optional[str],
        user: Optional[str],
        text: Optional[str],
    ) -> Optional[int]:
        """Broadcast a chat message from a socket client.

        Returns the number of recipients reached, or None if the frame was dropped.
        """
        if not (_non_empty(room) and _non_empty(user) and _non_empty(text)):
            logger.debug(f"Dropping send with missing room/user/text from connection {connection.connection_id}")
            return None

        message = ChatMessage(user=user, text=text, ts=now_ms())
        return await self.broadcast(room, message)

    async def broadcast(self, room: str, message: ChatMessage) -> int:
        """Send ``message`` to every current member of ``room``.

        Members are snapshotted first; sends run concurrently outside the
        registry lock. Returns how many sends succeeded.
        """
        members = self.registry.members_of(room)
        if not members:
            logger.debug(f"No members in room {room}, nothing to broadcast")
            return 0

        frame = GroupMessageFrame(room=room, message=MessageEnvelope(data=message)).model_dump()
        logger.debug(f"Broadcasting message to {len(members)} connections in room {room}")

        results = await asyncio.gather(
            *[self._deliver(member, frame, room) for member in members],
            return_exceptions=True,
        )
        delivered = sum(1 for r in results if r is True)
        logger.debug(f"Delivered message to {delivered}/{len(members)} connections in room {room}")
        return delivered

    async def _deliver(self, connection: Connection, frame: dict, room: str) -> bool:
        try:
            return await connection.send(frame)
        except Exception as e:
            # Stale socket; its own close event will clean it up
            logger.warning(f"Error sending to connection {connection.connection_id} in room {room}: {e}")
            return False

    async def _reply(self, connection: Connection, frame: dict):
        try:
            await connection.send(frame)
        except Exception as e:
            logger.warning(f"Error sending {frame.get('type')} to connection {connection.connection_id}: {e}")
