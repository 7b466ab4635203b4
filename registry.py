import threading
from typing import Dict, FrozenSet, Set

from connection import Connection
from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """Authoritative room name -> member connections mapping.

    Every method holds ``_lock`` for the whole mutation or read and never does
    I/O while holding it, so a broadcast always works on a consistent snapshot.
    ``Connection.rooms`` is kept in step with ``_rooms`` under the same lock.
    """

    def __init__(self, evict_empty_rooms: bool = True):
        self._rooms: Dict[str, Set[Connection]] = {}
        self._lock = threading.Lock()
        self.evict_empty_rooms = evict_empty_rooms
        logger.info(f"Initializing RoomRegistry (evict_empty_rooms={evict_empty_rooms})")

    def join(self, room: str, connection: Connection) -> bool:
        """Add a connection to a room, creating the room if needed.

        Returns True if the connection was newly added, False if it was
        already a member.
        """
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                members = self._rooms[room] = set()
                logger.debug(f"Created room {room}")
            added = connection not in members
            members.add(connection)
            connection.rooms.add(room)

        if added:
            logger.debug(f"Connection {connection.connection_id} added to room {room}")
        else:
            logger.debug(f"Connection {connection.connection_id} already in room {room}")
        return added

    def leave(self, room: str, connection: Connection) -> bool:
        """Remove a connection from a room. Unknown rooms and non-members are a no-op."""
        with self._lock:
            removed = self._discard(room, connection)
            connection.rooms.discard(room)

        if removed:
            logger.debug(f"Connection {connection.connection_id} removed from room {room}")
        return removed

    def remove_everywhere(self, connection: Connection) -> int:
        """Drop a connection from every room, used when it disconnects.

        Walks the connection's own membership set and, if any room still lists
        the connection without the connection knowing about it, those rooms too.
        """
        with self._lock:
            rooms = set(connection.rooms)
            rooms.update(name for name, members in self._rooms.items() if connection in members)
            removed = 0
            for room in rooms:
                if self._discard(room, connection):
                    removed += 1
            connection.rooms.clear()

        logger.debug(f"Connection {connection.connection_id} removed from {removed} rooms")
        return removed

    def members_of(self, room: str) -> FrozenSet[Connection]:
        """Snapshot of the room's members; empty for unknown rooms."""
        with self._lock:
            return frozenset(self._rooms.get(room, ()))

    def rooms(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._rooms)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "rooms": len(self._rooms),
                "memberships": sum(len(members) for members in self._rooms.values()),
            }

    def _discard(self, room: str, connection: Connection) -> bool:
        # Caller must hold _lock
        members = self._rooms.get(room)
        if members is None or connection not in members:
            return False
        members.discard(connection)
        if not members and self.evict_empty_rooms:
            del self._rooms[room]
            logger.debug(f"Evicted empty room {room}")
        return True
