import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from change_feed import change_feed

router = APIRouter()
logger = logging.getLogger(__name__)


async def _forward_changes(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _drain_client(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()


@router.websocket("/ws/leaderboard")
async def leaderboard_updates(websocket: WebSocket):
    """Stream "profiles changed" messages; each one means the leaderboard should be refetched."""
    await websocket.accept()
    queue = change_feed.subscribe()
    try:
        # Subscribed before the hello so no change between the two can be missed.
        await websocket.send_json({"type": "hello", "revision": change_feed.revision})
        tasks = {
            asyncio.create_task(_forward_changes(websocket, queue)),
            asyncio.create_task(_drain_client(websocket)),
        }
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            error = task.exception()
            if isinstance(error, WebSocketDisconnect):
                logger.info("Leaderboard subscriber disconnected")
            elif error is not None:
                logger.warning("Leaderboard subscriber dropped: %s", error)
    except WebSocketDisconnect:
        logger.info("Leaderboard subscriber disconnected")
    finally:
        change_feed.unsubscribe(queue)
