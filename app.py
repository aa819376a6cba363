import asyncio
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState

from constants import LOG_FILE, LOG_LEVEL, OUTBOX_MAX_FRAMES, REAPER_INTERVAL_SECONDS
from logging_config import get_logger, setup_logging
from reaper import ReaperTask
from routers.rooms import rooms_router
from signaling import SignalingEngine

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


class WebSocketChannel:
    """Queue-backed outbound side of a WebSocket.

    `send` never blocks: frames are queued and written in order by a single
    writer task, so the signaling engine can stay synchronous.
    """

    def __init__(self, websocket: WebSocket, max_frames: int = OUTBOX_MAX_FRAMES):
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=max_frames)
        self.closed = False
        self.writer: Optional[asyncio.Task] = None

    def start(self):
        self.writer = asyncio.create_task(self._drain())

    def is_open(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, text: str):
        try:
            self.outbox.put_nowait(text)
        except asyncio.QueueFull:
            # A peer that stopped reading gets nothing more from the relay
            self.closed = True
            logger.warning(f"Outbox full ({self.outbox.maxsize} frames), marking connection as stalled")
            raise ConnectionError("outbox full")

    async def _drain(self):
        while True:
            text = await self.outbox.get()
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.debug(f"Stopping writer, websocket no longer writable: {e}")
                self.closed = True
                return

    async def stop(self):
        self.closed = True
        if self.writer is None:
            return
        self.writer.cancel()
        try:
            await self.writer
        except asyncio.CancelledError:
            pass


def create_app(engine: Optional[SignalingEngine] = None, reaper_interval: float = REAPER_INTERVAL_SECONDS) -> FastAPI:
    app = FastAPI(title="Signaling Relay")

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine if engine is not None else SignalingEngine()
    app.state.reaper = ReaperTask(app.state.engine.directory, interval=reaper_interval)
    app.include_router(rooms_router)

    @app.on_event("startup")
    async def startup_event():
        app.state.reaper.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.reaper.stop()
        app.state.engine.shutdown()

    @app.websocket("/")
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        client_host = websocket.client.host if websocket.client else "unknown"
        logger.info(f"New connection from {client_host}")

        engine: SignalingEngine = app.state.engine
        channel = WebSocketChannel(websocket)
        channel.start()
        session = engine.connect(channel)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                engine.handle_raw(session, raw)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error for {session}: {e}", exc_info=True)
        finally:
            logger.info(f"Connection from {client_host} closed ({session})")
            channel.closed = True
            engine.disconnect(session)
            await channel.stop()

    logger.info("FastAPI application initialized")
    return app


app = create_app()
