"""
Real-time push channel over WebSockets, addressable per user.

Delivery is best-effort: a user with no open socket simply gets nothing,
and the durable Notification row is picked up on the next page load.
"""
import asyncio
from collections import defaultdict
from typing import Dict, Set, Optional, Any

from fastapi import WebSocket

from core.logger import logger


class PushChannel:
    """Registry of live WebSocket connections keyed by user id."""

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Future] = set()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._connections[user_id].add(websocket)
        logger.info(f"Push channel opened for user {user_id} ({len(self._connections[user_id])} open)")

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]
        logger.info(f"Push channel closed for user {user_id}")

    def connection_count(self, user_id: int) -> int:
        return len(self._connections.get(user_id, ()))

    def publish(self, user_id: int, message: str) -> None:
        """
        Fire-and-forget push of a notification message to one user.

        Safe to call from the event loop thread or from a worker thread.
        """
        # Membership only; the socket set is read on the loop thread in _send
        if user_id not in self._connections:
            logger.debug(f"No live connection for user {user_id}; notification stays in the inbox")
            return

        payload = {"event": "new-notification", "message": message}
        coro = self._send(user_id, payload)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            future = loop.create_task(coro)
        elif self._loop is not None and self._loop.is_running():
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            logger.warning(f"Push to user {user_id} dropped: no running event loop")
            return

        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def _send(self, user_id: int, payload: Dict[str, Any]) -> None:
        # Snapshot on the loop thread, where connect/disconnect mutate the set
        sockets = list(self._connections.get(user_id, ()))
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
            except Exception as e:
                # Socket died between lookup and send
                logger.warning(f"Push to user {user_id} failed: {e}")
                self.disconnect(user_id, websocket)
