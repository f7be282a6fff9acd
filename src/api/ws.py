"""WebSocket broadcast hub for ``new_token`` events.

The scanner calls ``broadcast`` synchronously; messages are queued and fanned
out to all connected clients by ``run``. A client whose send fails is dropped.
"""

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

QUEUE_SIZE = 256

router = APIRouter(tags=["ws"])


class BroadcastHub:
    def __init__(self, queue_size: int = QUEUE_SIZE) -> None:
        self._clients: set[WebSocket] = set()
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def broadcast(self, payload: dict[str, Any]) -> None:
        message = json.dumps(payload, default=str)
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("[API] WebSocket queue full, dropping message")

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.debug(f"[API] WebSocket client connected ({len(self._clients)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    async def send_all(self, message: str) -> int:
        """Send to every client; returns how many received it."""
        delivered = 0
        for client in list(self._clients):
            try:
                await client.send_text(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"[API] Dropping WebSocket client: {e}")
                self.disconnect(client)
        return delivered

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            getter = asyncio.create_task(self._queue.get())
            stopper = asyncio.create_task(stop.wait())
            done, _ = await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            stopper.cancel()
            await self.send_all(getter.result())


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
