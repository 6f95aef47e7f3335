"""
Realtime order events over websockets

Connections subscribe to rooms (one per customer, one per order). An event
goes once to every member of the rooms it names, or to every connection
when no room is given. Delivery is fire-and-forget: nobody listening
means the event is dropped.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Set, Union

logger = logging.getLogger(__name__)

ORDER_UPDATED = "orderUpdated"

CUSTOMER_PREFIX = "customer"
ORDER_PREFIX = "order"

# One room name, several, or None for every connection
Rooms = Optional[Union[str, Iterable[str]]]


def customer_room(customer_id: str) -> str:
    if not customer_id:
        raise ValueError("customer_id is required")
    return f"{CUSTOMER_PREFIX}:{customer_id}"


def order_room(order_id: str) -> str:
    if not order_id:
        raise ValueError("order_id is required")
    return f"{ORDER_PREFIX}:{order_id}"


class RealtimePublisher(ABC):
    @abstractmethod
    async def publish(self, event_name: str, payload: Dict[str, Any], rooms: Rooms = None) -> None:
        """Emit an event to the members of rooms (everyone when None); must not raise"""
        pass


class RoomBroadcaster(RealtimePublisher):
    """In-process hub for websocket connections (anything with an async send_json)"""

    def __init__(self):
        self._connections: Set[Any] = set()
        self._rooms: Dict[str, Set[Any]] = defaultdict(set)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def members(self, room: str) -> Set[Any]:
        return set(self._rooms.get(room, ()))

    def connect(self, connection: Any) -> None:
        self._connections.add(connection)
        logger.info(f"👀 Client connected. Total clients: {len(self._connections)}")

    def join(self, connection: Any, room: str) -> None:
        self._connections.add(connection)
        self._rooms[room].add(connection)
        logger.info(f"Client joined room {room}")

    def leave(self, connection: Any, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._rooms[room]

    def disconnect(self, connection: Any) -> None:
        self._connections.discard(connection)
        for room in [r for r, members in self._rooms.items() if connection in members]:
            self.leave(connection, room)
        logger.info(f"👋 Client disconnected. Remaining: {len(self._connections)}")

    async def publish(self, event_name: str, payload: Dict[str, Any], rooms: Rooms = None) -> None:
        if rooms is None:
            targets = set(self._connections)
        else:
            if isinstance(rooms, str):
                rooms = [rooms]
            rooms = list(rooms)
            # A connection in several of the rooms still gets the event once
            targets = set().union(*(self._rooms.get(room, ()) for room in rooms))
        if not targets:
            logger.debug(f"No subscribers for {event_name} in {rooms or 'broadcast'}, event dropped")
            return

        message = {"type": event_name, "data": payload}
        disconnected = []

        for connection in targets:
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket client: {e}")
                disconnected.append(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)

        if disconnected:
            logger.info(f"🧹 Cleaned up {len(disconnected)} disconnected clients")
