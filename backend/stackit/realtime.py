"""
StackIt Backend — Real-Time Connection Manager
================================================

What:  Tracks open WebSocket connections, the rooms they joined, and fans
       events out to them.
Why:   Question pages update live (new answers, vote counts) and users get
       notifications without polling.
How:   In-memory maps, safe under the single-threaded event loop:
           conn_id -> ClientConnection
           room    -> {conn_ids}
       Every connection is put in its personal room `user:{id}` on connect;
       `question:{id}` rooms are joined and left on request.

Message shape (both directions):
    {"event": "<name>", "data": {...}}

Lifecycle:
    One instance per app (app.state.realtime), created by create_app().
    Connections that fail on send are dropped immediately.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from stackit.models import Notification
from stackit.schemas.notification import NotificationOut

logger = logging.getLogger(__name__)


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def question_room(question_id: int) -> str:
    return f"question:{question_id}"


@dataclass
class ClientConnection:
    """A single authenticated WebSocket client."""

    websocket: WebSocket
    user_id: int
    username: str
    rooms: Set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Room-based fan-out for WebSocket clients."""

    def __init__(self) -> None:
        self._connections: Dict[str, ClientConnection] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get_connection(self, conn_id: str) -> Optional[ClientConnection]:
        return self._connections.get(conn_id)

    def room_members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, set()))

    # ── Membership ────────────────────────────────────────────────────────

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int, username: str) -> None:
        """Accept the socket and join the user's personal room."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(
            websocket=websocket,
            user_id=user_id,
            username=username,
        )
        self.join(conn_id, user_room(user_id))
        logger.info("WebSocket connected: %s (user %d)", conn_id, user_id)

    def disconnect(self, conn_id: str) -> None:
        client = self._connections.pop(conn_id, None)
        if client is None:
            return
        for room in client.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(conn_id)
                if not members:
                    del self._rooms[room]
        logger.info("WebSocket disconnected: %s (user %d)", conn_id, client.user_id)

    def join(self, conn_id: str, room: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.rooms.add(room)
        self._rooms[room].add(conn_id)
        return True

    def leave(self, conn_id: str, room: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(conn_id)
            if not members:
                del self._rooms[room]
        return True

    # ── Delivery ──────────────────────────────────────────────────────────

    async def send(self, conn_id: str, event: str, data: Any) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        try:
            await client.websocket.send_json({"event": event, "data": data})
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Dropping WebSocket %s after failed send: %s", conn_id, exc)
            self.disconnect(conn_id)
            return False
        client.messages_sent += 1
        return True

    async def emit_to_room(self, room: str, event: str, data: Any) -> int:
        """Send to every member of `room`; returns how many received it."""
        sent = 0
        for conn_id in list(self._rooms.get(room, set())):
            if await self.send(conn_id, event, data):
                sent += 1
        return sent

    async def emit_to_user(self, user_id: int, event: str, data: Any) -> int:
        return await self.emit_to_room(user_room(user_id), event, data)

    async def emit_to_question(self, question_id: int, event: str, data: Any) -> int:
        return await self.emit_to_room(question_room(question_id), event, data)

    async def push_notification(self, notification: Optional[Notification]) -> int:
        """Deliver a freshly committed notification to its recipient, if any."""
        if notification is None:
            return 0
        payload = NotificationOut.model_validate(notification).model_dump(mode="json")
        return await self.emit_to_user(notification.user_id, "notification", payload)

    def stats(self) -> Dict[str, Any]:
        users: List[int] = [c.user_id for c in self._connections.values()]
        return {
            "connections": len(self._connections),
            "unique_users": len(set(users)),
            "rooms": len(self._rooms),
        }
