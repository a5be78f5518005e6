from __future__ import annotations

import contextlib
import json
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from mcp.server.transport_security import TransportSecuritySettings
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from libs.core import logging as core_logging
from libs.core.models import SessionState
from libs.core.state_machine import validate_session_transition

LOGGER = core_logging.get_logger("pdfnoodle")

INVALID_SESSION_ERROR = {
    "jsonrpc": "2.0",
    "error": {"code": -32000, "message": "Invalid session"},
    "id": None,
}
HANDSHAKE_TIMEOUT_ERROR = {
    "jsonrpc": "2.0",
    "error": {"code": -32000, "message": "Session handshake timed out"},
    "id": None,
}


class SessionTransitionError(Exception):
    pass


@dataclass
class Session:
    session_id: str
    transport: Any
    state: SessionState = SessionState.pending
    created_at: float = field(default_factory=time.monotonic)

    def transition(self, new: SessionState) -> None:
        if not validate_session_transition(self.state, new):
            raise SessionTransitionError(
                f"session {self.session_id}: {self.state.value} -> {new.value} not allowed"
            )
        self.state = new


def is_initialize_request(payload: Any) -> bool:
    if isinstance(payload, list):
        return any(is_initialize_request(item) for item in payload)
    return (
        isinstance(payload, dict)
        and payload.get("jsonrpc") == "2.0"
        and payload.get("method") == "initialize"
        and "id" in payload
    )


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    replayed = False

    async def replay() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


async def reject_invalid_session(scope: Scope, receive: Receive, send: Send) -> None:
    response = JSONResponse(INVALID_SESSION_ERROR, status_code=400)
    await response(scope, receive, send)


class SessionRegistry:
    """Maps MCP session ids to live streamable-HTTP transports."""

    def __init__(
        self,
        server_factory: Callable[[], Server],
        *,
        json_response: bool = False,
        security_settings: Optional[TransportSecuritySettings] = None,
        handshake_timeout_s: float = 30.0,
        transport_factory: Callable[..., Any] = StreamableHTTPServerTransport,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        self.server_factory = server_factory
        self.json_response = json_response
        self.security_settings = security_settings
        self.handshake_timeout_s = handshake_timeout_s
        self._transport_factory = transport_factory
        self._id_factory = id_factory
        self._sessions: Dict[str, Session] = {}
        self._lock = anyio.Lock()
        self._task_group: Optional[TaskGroup] = None

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        if self._task_group is not None:
            raise RuntimeError("SessionRegistry.run() is already active")
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            LOGGER.info("session_registry_started")
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                self._task_group = None
                self._sessions.clear()
                LOGGER.info("session_registry_stopped")

    async def lookup_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.state != SessionState.active:
                return None
            return session

    async def session_count(self) -> int:
        async with self._lock:
            return sum(1 for s in self._sessions.values() if s.state == SessionState.active)

    async def create_session(self) -> Session:
        if self._task_group is None:
            raise RuntimeError("SessionRegistry.run() must be entered before creating sessions")
        async with self._lock:
            session_id = self._id_factory()
            while session_id in self._sessions:
                session_id = self._id_factory()
            transport = self._transport_factory(
                mcp_session_id=session_id,
                is_json_response_enabled=self.json_response,
                event_store=None,
                security_settings=self.security_settings,
            )
            session = Session(session_id=session_id, transport=transport)
            self._sessions[session_id] = session
        await self._task_group.start(self._run_server, session)
        LOGGER.info("session_created", session_id=session_id)
        return session

    async def activate_session(self, session: Session) -> None:
        async with self._lock:
            if session.state != SessionState.pending:
                return
            session.transition(SessionState.active)
        LOGGER.info("session_activated", session_id=session.session_id)

    async def close_session(self, session_id: str) -> None:
        with anyio.CancelScope(shield=True):
            async with self._lock:
                session = self._sessions.pop(session_id, None)
                if session is None:
                    return
                session.transition(SessionState.closed)
            if not getattr(session.transport, "is_terminated", True):
                await session.transport.terminate()
        LOGGER.info("session_closed", session_id=session_id)

    async def _run_server(
        self, session: Session, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED
    ) -> None:
        server = self.server_factory()
        try:
            async with session.transport.connect() as (read_stream, write_stream):
                task_status.started()
                await server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                    stateless=False,
                )
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("session_server_crashed", session_id=session.session_id, error=str(exc))
        finally:
            await self.close_session(session.session_id)

    async def _initialize(self, scope: Scope, receive: Receive, send: Send) -> None:
        session = await self.create_session()
        response_status: Dict[str, int] = {}

        # Sessions turn active before the handshake response is sent.
        async def send_with_activation(message: Message) -> None:
            if message["type"] == "http.response.start" and "status" not in response_status:
                response_status["status"] = int(message["status"])
                if response_status["status"] < 400:
                    await self.activate_session(session)
            await send(message)

        try:
            with anyio.move_on_after(self.handshake_timeout_s) as deadline:
                await session.transport.handle_request(scope, receive, send_with_activation)
            if deadline.cancelled_caught and not response_status:
                LOGGER.warning("session_handshake_timed_out", session_id=session.session_id)
                response = JSONResponse(HANDSHAKE_TIMEOUT_ERROR, status_code=503)
                await response(scope, receive, send)
        finally:
            if session.state == SessionState.pending:
                LOGGER.warning(
                    "session_handshake_rejected",
                    session_id=session.session_id,
                    status=response_status.get("status"),
                )
                await self.close_session(session.session_id)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        if session_id:
            session = await self.lookup_session(session_id)
            if session is None:
                LOGGER.info("session_rejected", reason="unknown_session", method=request.method)
                await reject_invalid_session(scope, receive, send)
                return
            await session.transport.handle_request(scope, receive, send)
            if getattr(session.transport, "is_terminated", False):
                await self.close_session(session_id)
            return

        if request.method == "POST":
            body = await request.body()
            try:
                payload = json.loads(body) if body else None
            except ValueError:
                payload = None
            if is_initialize_request(payload):
                await self._initialize(scope, _replay_receive(body, receive), send)
                return

        LOGGER.info("session_rejected", reason="missing_session", method=request.method)
        await reject_invalid_session(scope, receive, send)
