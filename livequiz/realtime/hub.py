import asyncio
import logging
from typing import Any, Set

import orjson
from fastapi import WebSocket

logger = logging.getLogger(__name__)


def fast_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


class ConnectionHub:
    """Tracks viewer sockets and fans every message out to all of them."""

    def __init__(self) -> None:
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.info("Viewer connected (%d total)", len(self.active_connections))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.info("Viewer disconnected (%d total)", len(self.active_connections))

    async def broadcast(self, message_type: str, data: Any) -> int:
        """Send one message to every viewer; returns how many received it."""
        async with self._lock:
            connections = list(self.active_connections)
        if not connections:
            return 0

        text = fast_dumps({"type": message_type, "data": data})
        results = await asyncio.gather(
            *(conn.send_text(text) for conn in connections), return_exceptions=True
        )

        dead = [conn for conn, result in zip(connections, results) if isinstance(result, Exception)]
        if dead:
            async with self._lock:
                for conn in dead:
                    self.active_connections.discard(conn)
            logger.info("Dropped %d dead viewer socket(s)", len(dead))
        return len(connections) - len(dead)

    async def close_all(self) -> None:
        async with self._lock:
            connections = list(self.active_connections)
            self.active_connections.clear()
        for conn in connections:
            try:
                await conn.close(code=1001)
            except Exception:
                logger.debug("Socket already closed during shutdown")
