import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketException, status

from ..services.events import EventBus, Subscription

router = APIRouter(tags=["realtime"])
log = logging.getLogger(__name__)


def get_bus(websocket: WebSocket) -> EventBus:
    bus = getattr(websocket.app.state, "bus", None)
    if bus is None:
        raise WebSocketException(code=status.WS_1013_TRY_AGAIN_LATER, reason="bus not initialized")
    return bus


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def events_socket(websocket: WebSocket, bus: EventBus = Depends(get_bus)) -> None:
    """Streams every bus message as {"event": ..., "data": ...} until the client leaves."""
    subscription: Optional[Subscription] = None
    disconnected: Optional[asyncio.Task] = None
    try:
        # subscribe before accepting so nothing published after the handshake is missed
        subscription = bus.subscribe()
        await websocket.accept()
        log.info("Realtime client connected (%d subscribers)", bus.subscriber_count)

        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        while not disconnected.done():
            next_message = asyncio.create_task(subscription.get())
            done, _ = await asyncio.wait({next_message, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected in done:
                next_message.cancel()
                break
            await websocket.send_json(next_message.result())
    finally:
        if disconnected is not None:
            disconnected.cancel()
        if subscription is not None:
            bus.unsubscribe(subscription)
        log.info("Realtime client disconnected")
