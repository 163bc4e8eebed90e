"""
WebSocket transport of the tutoring sessions.

Endpoints:
    /doc-chat        document chat sessions
    /homework-help   homework help sessions
    GET /health      liveness check

Frames are JSON objects {"event": name, "data": payload} in both
directions. The first client frame must be the handshake

    {"event": "auth", "data": {"studentId": ..., ...}}

with documentId (document chat) or topic and optionally
conversationId (homework help). A rejected handshake is answered with
a 'connect_error' frame and the socket is closed (policy violation).
After 'ready', the client sends 'chat message' frames (data: the
text) and, in document chat, 'generate summary' frames. Frames that
are not JSON text are answered with an 'error' frame.

When the client disconnects, the pending messages are dropped. The
summaries in progress run to completion and are written to the
document store, without sending frames.
"""

from collections.abc import Coroutine
from contextlib import asynccontextmanager
from typing import Any
import asyncio
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from tutorchat.background_task_manager import drain_tasks, schedule_task
from tutorchat.errors import AuthorizationError, SessionStateError
from tutorchat.session import (
    ChatSession,
    SessionMode,
    SessionServices,
    create_session,
)
from tutorchat.stores.vector_store_qdrant import ainitialize_collection

logger = logging.getLogger(__name__)


class ChannelFrame(BaseModel):
    event: str
    data: Any = None


class WebSocketSink:
    """Sends the events of a session as JSON frames. Sends are
    serialized, so that frames are never interleaved. Once closed,
    events are discarded."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._lock = asyncio.Lock()
        self._closed = False

    def close(self) -> None:
        self._closed = True

    async def emit(self, event: str, data: Any) -> None:
        async with self._lock:
            if self._closed:
                return
            await self.websocket.send_json(
                ChannelFrame(event=event, data=data).model_dump()
            )


async def _receive_frame(websocket: WebSocket) -> ChannelFrame | None:
    """The next client frame, or None if the client sent something
    other than a JSON frame in text form.

    Raises:
        WebSocketDisconnect: if the client disconnected
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(
            message.get("code", status.WS_1000_NORMAL_CLOSURE),
            message.get("reason"),
        )
    text = message.get("text")
    if text is None:
        return None
    try:
        return ChannelFrame.model_validate_json(text)
    except ValidationError:
        return None


async def _open_session(
    websocket: WebSocket,
    mode: SessionMode,
    services: SessionServices,
    sink: WebSocketSink,
) -> ChatSession | None:
    """Read the handshake and open the session. Returns None if the
    connection was refused (and closed)."""

    try:
        frame = await _receive_frame(websocket)
        if (
            frame is None
            or frame.event != "auth"
            or not isinstance(frame.data, dict)
        ):
            raise AuthorizationError("auth frame required")
        session = create_session(mode, services, sink, frame.data)
        await session.open()
        return session
    except AuthorizationError as e:
        logger.warning(f"Rejected {mode} connection: {e}")
        await sink.emit("connect_error", str(e))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    except WebSocketDisconnect:
        logger.info(f"{mode} connection closed during handshake")
    except Exception as e:
        logger.error(f"Could not set up {mode} session: {e}")
        await sink.emit("connect_error", "Session could not be set up")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    return None


async def _run_event(
    coro: Coroutine[Any, Any, Any], session: ChatSession
) -> None:
    try:
        await coro
    except SessionStateError as e:
        logger.warning(f"Event refused by {session.mode} session: {e}")
        if session.is_open:
            await session.sink.emit("error", str(e))
    except WebSocketDisconnect:
        pass


async def _close_after(
    session: ChatSession, pending: set[asyncio.Task[None]]
) -> None:
    await asyncio.wait(pending)
    session.close()


async def run_session(
    websocket: WebSocket,
    mode: SessionMode,
    services: SessionServices,
) -> None:
    """Drive one connection: handshake, then dispatch of the client
    frames until the client disconnects."""

    await websocket.accept()
    sink = WebSocketSink(websocket)
    session = await _open_session(websocket, mode, services, sink)
    if session is None:
        return

    # Events are handled in tasks, so that a summary may run while a
    # message is answered. Messages queue on the session lock.
    # Summaries are background tasks, drained at shutdown.
    tasks: set[asyncio.Task[None]] = set()
    summary_tasks: set[asyncio.Task[None]] = set()

    def _on_done(task: asyncio.Task[None]) -> None:
        tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session event failed: {task.exception()}")

    try:
        while True:
            frame = await _receive_frame(websocket)
            if frame is None:
                await sink.emit("error", "Invalid frame")
                continue

            match frame.event:
                case "chat message":
                    text = "" if frame.data is None else str(frame.data)
                    task = asyncio.create_task(
                        _run_event(session.handle_message(text), session)
                    )
                    tasks.add(task)
                    task.add_done_callback(_on_done)
                case "generate summary":
                    task = schedule_task(
                        _run_event(session.generate_summary(), session)
                    )
                    summary_tasks.add(task)
                    task.add_done_callback(summary_tasks.discard)
                case _:
                    await sink.emit(
                        "error", f"Unknown event: {frame.event}"
                    )
    except WebSocketDisconnect:
        logger.info(
            f"{mode} session of student {session.student_id} closed"
        )
    finally:
        for task in list(tasks):
            task.cancel()
        sink.close()
        if summary_tasks:
            schedule_task(_close_after(session, set(summary_tasks)))
        else:
            session.close()


def create_app(services: SessionServices | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: the collaborators of the sessions. If None, they
            are created from config.toml and appchat.toml.
    """
    if services is None:
        services = SessionServices.from_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services.vector_client is not None:
            await ainitialize_collection(
                services.vector_client,
                services.settings.database.collection_name,
                services.settings.embeddings.size,
            )
        yield
        await drain_tasks()
        services.stores.close()
        if services.vector_client is not None:
            await services.vector_client.close()

    app = FastAPI(title="tutorchat", lifespan=lifespan)
    app.state.services = services

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.websocket("/doc-chat")
    async def doc_chat(websocket: WebSocket) -> None:
        await run_session(websocket, "doc_chat", services)

    @app.websocket("/homework-help")
    async def homework_help(websocket: WebSocket) -> None:
        await run_session(websocket, "homework_help", services)

    return app
