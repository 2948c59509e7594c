"""
hostpulse - FastAPI + WebSocket server exposing live host telemetry
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hostpulse.aggregator import SnapshotAggregator, SnapshotError
from hostpulse.config import Settings
from hostpulse.models import Snapshot
from hostpulse.responder import ERROR_MESSAGE, respond

logger = logging.getLogger(__name__)

SEND_MESSAGE = "sendMessage"
BOT_RESPONSE = "botResponse"


def parse_frame(raw: str) -> tuple[str | None, object, object]:
    """
    Decode an inbound text frame into (event, message, stats).

    Accepts {"event": ..., "message": ..., "stats": ...} objects and
    Socket.IO-style ["event", message, stats] arrays. A frame that is not
    valid JSON is treated as a sendMessage with no message and no stats.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return SEND_MESSAGE, None, None

    if isinstance(data, dict):
        return data.get("event", SEND_MESSAGE), data.get("message"), data.get("stats")
    if isinstance(data, list) and data:
        padded = data + [None, None]
        return padded[0], padded[1], padded[2]
    return SEND_MESSAGE, None, None


def handle_frame(frame: dict) -> str | None:
    """
    Answer one inbound WebSocket frame.

    Returns the reply text, or None for events that get no reply. Binary
    frames are read as UTF-8 JSON text.
    """
    raw = frame.get("text")
    if raw is None:
        raw = (frame.get("bytes") or b"").decode("utf-8")
    event, message, payload = parse_frame(raw)

    if event != SEND_MESSAGE:
        logger.info(f"Ignoring unknown event: {event!r}")
        return None

    logger.info(f"Message received: {message!r}")
    return respond(message, Snapshot.from_payload(payload))


class ReplyScheduler:
    """
    Delivers replies on one WebSocket after a fixed delay, in scheduling order.

    A single sender task drains the queue, so replies never overtake each
    other. Replies still pending when the connection closes are dropped.
    """

    def __init__(self, ws: WebSocket, delay: float) -> None:
        self._ws = ws
        self._delay = delay
        self._queue: asyncio.Queue[tuple[float, str]] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    def schedule(self, text: str) -> None:
        due = asyncio.get_running_loop().time() + self._delay
        self._queue.put_nowait((due, text))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            due, text = await self._queue.get()
            wait = due - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                await self._ws.send_json({"event": BOT_RESPONSE, "message": text})
            except Exception as e:
                logger.info(f"Reply undeliverable, client gone: {e}")
                return
            logger.info(f"Response sent: {text!r}")


def create_app(
    settings: Settings | None = None,
    aggregator: SnapshotAggregator | None = None,
) -> FastAPI:
    """Build the hostpulse application."""
    settings = settings or Settings()
    aggregator = aggregator or SnapshotAggregator(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"hostpulse serving on http://{settings.host}:{settings.port}")
        yield
        logger.info("hostpulse shutting down")

    app = FastAPI(title="hostpulse", lifespan=lifespan)
    app.state.settings = settings
    app.state.aggregator = aggregator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/stats")
    async def stats():
        try:
            snapshot = await aggregator.build_snapshot()
        except SnapshotError as e:
            logger.error(f"Snapshot failed: {e}")
            return JSONResponse(status_code=500, content={"error": str(e)})
        return snapshot.to_payload()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await ws.accept()
        client = ws.client
        logger.info(f"WebSocket connected: {client}")
        replies = ReplyScheduler(ws, settings.reply_delay)
        replies.start()
        try:
            while True:
                frame = await ws.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))

                try:
                    reply = handle_frame(frame)
                except Exception as e:
                    logger.error(f"Error handling message: {e}", exc_info=True)
                    reply = ERROR_MESSAGE

                if reply is not None:
                    replies.schedule(reply)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {client}")
        except Exception as e:
            logger.error(f"WebSocket connection error: {e}", exc_info=True)
        finally:
            await replies.stop()

    return app


app = create_app()


def main() -> None:
    """Entry point for the hostpulse server."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
