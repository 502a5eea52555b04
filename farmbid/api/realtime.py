"""
WebSocket fan-out of auction events.

Clients connect to ``/api/auctions/{id}/ws`` and join the room named by
``auction_topic(id)``. The hub is the engine's ``Publisher``: ``publish``
is called synchronously after a commit and only schedules the sends, so a
slow or dead socket never holds up a bid.
"""

import asyncio
from typing import Dict, Set

from fastapi import WebSocket, WebSocketDisconnect

from farmbid.auctions.events import AuctionEvent
from farmbid.utils import log

logger = log.get_logger(__name__)


class WebSocketHub:

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self._pending: Set[asyncio.Task] = set()

    async def serve(self, topic: str, websocket: WebSocket) -> None:
        """Hold ``websocket`` in ``topic`` until the client goes away."""
        await websocket.accept()
        self.rooms.setdefault(topic, set()).add(websocket)
        logger.debug(f"Client joined {topic} ({len(self.rooms[topic])} connected)")
        try:
            while True:
                if await websocket.receive_text() == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            pass
        finally:
            self.leave(topic, websocket)

    def leave(self, topic: str, websocket: WebSocket) -> None:
        room = self.rooms.get(topic)
        if not room:
            return
        room.discard(websocket)
        if not room:
            del self.rooms[topic]

    def publish(self, topic: str, event: AuctionEvent) -> None:
        room = self.rooms.get(topic)
        if not room:
            return
        payload = event.model_dump(mode="json")
        loop = asyncio.get_running_loop()
        for websocket in list(room):
            task = loop.create_task(self._send(topic, websocket, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _send(self, topic: str, websocket: WebSocket, payload: dict) -> None:
        try:
            await websocket.send_json(payload)
        except Exception as e:
            logger.info(f"Dropping client from {topic}: {e}")
            self.leave(topic, websocket)
