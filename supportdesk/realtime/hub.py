"""Room-based broadcast hub over live WebSocket connections.

The hub is process-local: it only knows the connections accepted by this
worker. Frames are JSON objects of the form ``{"event": ..., "data": ...}``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can push a JSON frame to one client."""

    async def send_json(self, data: Any) -> None: ...


def chat_room(escalation_id: object) -> str:
    return f"chat_{escalation_id}"


def status_room(business_id: object) -> str:
    return f"status_{business_id}"


def notification_room(business_id: object) -> str:
    return f"notifications_{business_id}"


class RoomHub:
    """Tracks room membership and fans events out to members."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = defaultdict(set)

    def join(self, connection: Connection, room: str) -> None:
        self._rooms[room].add(connection)

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(connection)
        if not members:
            del self._rooms[room]

    def leave_all(self, connection: Connection) -> list[str]:
        """Remove ``connection`` from every room and return the rooms it left."""

        left = [room for room, members in self._rooms.items() if connection in members]
        for room in left:
            self.leave(connection, room)
        return left

    def rooms_of(self, connection: Connection) -> list[str]:
        return [room for room, members in self._rooms.items() if connection in members]

    async def send(self, connection: Connection, event: str, data: Any) -> bool:
        try:
            await connection.send_json({"event": event, "data": jsonable_encoder(data)})
        except Exception:  # pragma: no cover - depends on transport failures
            logger.warning("Dropping connection after failed send of %s", event, exc_info=True)
            self.leave_all(connection)
            return False
        return True

    async def emit(self, room: str, event: str, data: Any, *, exclude: Connection | None = None) -> int:
        """Send ``event`` to every member of ``room``; return delivery count."""

        delivered = 0
        for connection in list(self._rooms.get(room, ())):
            if connection is exclude:
                continue
            if await self.send(connection, event, data):
                delivered += 1
        logger.debug("Emitted %s to %s (%d recipients)", event, room, delivered)
        return delivered


__all__ = ["Connection", "RoomHub", "chat_room", "notification_room", "status_room"]
