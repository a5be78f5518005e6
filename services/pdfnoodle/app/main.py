from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from mcp.server.transport_security import TransportSecuritySettings
from starlette.routing import Route

from libs.core import logging as core_logging

from .config import Settings, load_settings
from .mcp import create_mcp_server, create_tool_registry
from .sessions import SessionRegistry

core_logging.configure_logging("pdfnoodle")
LOGGER = core_logging.get_logger("pdfnoodle")

SETTINGS = load_settings()


def _security_settings(settings: Settings) -> Optional[TransportSecuritySettings]:
    if not settings.allowed_hosts:
        return None
    return TransportSecuritySettings(
        enable_dns_rebinding_protection=True,
        allowed_hosts=settings.allowed_hosts,
        allowed_origins=[origin for origin in settings.cors_allow_origins if origin != "*"],
    )


def create_app(
    settings: Settings,
    *,
    upstream_transport: Any = None,
    sleep: Any = None,
) -> FastAPI:
    tool_registry = create_tool_registry(settings, transport=upstream_transport, sleep=sleep)
    sessions = SessionRegistry(
        lambda: create_mcp_server(tool_registry),
        json_response=settings.json_response,
        security_settings=_security_settings(settings),
        handshake_timeout_s=settings.handshake_timeout_s,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        async with sessions.run():
            LOGGER.info("mcp_endpoint_ready", path="/mcp", port=settings.port)
            yield

    app = FastAPI(title="PDFNoodle MCP Server", lifespan=lifespan)
    app.state.settings = settings
    app.state.sessions = sessions
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=[MCP_SESSION_ID_HEADER],
    )
    app.router.routes.append(Route("/mcp", endpoint=sessions, methods=["GET", "POST", "DELETE"]))

    @app.get("/health", response_class=PlainTextResponse)
    def health() -> str:
        return "OK"

    return app


app = create_app(SETTINGS)


def run() -> None:
    LOGGER.info("server_starting", host=SETTINGS.host, port=SETTINGS.port)
    uvicorn.run(app, host=SETTINGS.host, port=SETTINGS.port, log_level="info")


if __name__ == "__main__":
    run()
