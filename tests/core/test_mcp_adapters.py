from __future__ import annotations

import asyncio
import json
import socket
import threading
import time
from typing import Any

import httpx
import pytest

uvicorn = pytest.importorskip("uvicorn")
pytest.importorskip("mcp")
from mcp import ClientSession  # noqa: E402
from mcp.client.streamable_http import streamable_http_client  # noqa: E402

from services.pdfnoodle.app.config import Settings  # noqa: E402
from services.pdfnoodle.app.main import create_app  # noqa: E402


class _FakePdfNoodle:
    def __init__(self) -> None:
        self.status_calls = 0
        self.requests: list[tuple[str, str]] = []
        self.lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self.lock:
            self.requests.append((request.method, request.url.path))
        if request.url.path == "/v1/integration/templates":
            return httpx.Response(200, json=[{"id": "invoice"}, {"id": "receipt"}])
        if request.url.path == "/v1/pdf/sync":
            return httpx.Response(
                200,
                json={
                    "signedUrl": "https://x/y.pdf",
                    "metadata": {"executionTime": "1.2s", "fileSize": "10KB"},
                },
            )
        if request.url.path == "/v1/html-to-pdf/sync":
            return httpx.Response(
                202, json={"requestId": "r1", "statusUrl": "https://s/r1", "message": "queued"}
            )
        if request.url.path == "/v1/pdf/status/r1":
            with self.lock:
                self.status_calls += 1
                done = self.status_calls >= 2
            if done:
                return httpx.Response(
                    200,
                    json={"requestId": "r1", "renderStatus": "SUCCESS", "signedUrl": "https://x/r1.pdf"},
                )
            return httpx.Response(
                200, json={"requestId": "r1", "renderStatus": "ONGOING", "signedUrl": ""}
            )
        return httpx.Response(404, text="not found")


async def _no_sleep(_seconds: float) -> None:
    return


def _pick_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def _start_server(app: Any) -> tuple[Any, threading.Thread, str]:
    port = _pick_free_port()
    config = uvicorn.Config(app=app, host="127.0.0.1", port=port, log_level="error")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    for _ in range(80):
        if getattr(server, "started", False):
            break
        time.sleep(0.05)
    if not getattr(server, "started", False):
        raise RuntimeError("uvicorn_server_start_failed")
    return server, thread, f"http://127.0.0.1:{port}"


def _stop_server(server: Any, thread: threading.Thread) -> None:
    server.should_exit = True
    thread.join(timeout=5)


@pytest.fixture()
def pdfnoodle_server():
    upstream = _FakePdfNoodle()
    app = create_app(
        Settings(allowed_hosts=["127.0.0.1:*"]),
        upstream_transport=httpx.MockTransport(upstream.handler),
        sleep=_no_sleep,
    )
    server, thread, base_url = _start_server(app)
    try:
        yield f"{base_url}/mcp", upstream
    finally:
        _stop_server(server, thread)


def _text(result: Any) -> str:
    return "\n".join(getattr(item, "text", "") for item in result.content)


def test_list_tools_over_streamable_http(pdfnoodle_server) -> None:
    mcp_url, _upstream = pdfnoodle_server

    async def _run() -> list[str]:
        async with streamable_http_client(mcp_url) as (read_stream, write_stream, _sid):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                result = await session.list_tools()
                return [tool.name for tool in result.tools]

    names = asyncio.run(_run())
    assert set(names) == {
        "list_templates",
        "get_template_variables",
        "html_to_pdf",
        "generate_pdf",
        "check_pdf_status",
    }


def test_tool_calls_share_one_session(pdfnoodle_server) -> None:
    mcp_url, upstream = pdfnoodle_server

    async def _run() -> dict[str, Any]:
        async with streamable_http_client(mcp_url) as (read_stream, write_stream, get_sid):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                templates = await session.call_tool("list_templates", {"apiKey": "k", "limit": 1})
                generated = await session.call_tool(
                    "generate_pdf", {"apiKey": "k", "templateId": "invoice", "data": "{}"}
                )
                polled = await session.call_tool("html_to_pdf", {"apiKey": "k", "html": "<p/>"})
                queued = await session.call_tool(
                    "html_to_pdf",
                    {"apiKey": "k", "html": "<p/>", "waitForCompletion": False},
                )
                broken = await session.call_tool(
                    "html_to_pdf", {"apiKey": "k", "html": "<p/>", "pdfParams": "{oops"}
                )
                return {
                    "session_id": get_sid(),
                    "templates": templates,
                    "generated": generated,
                    "polled": polled,
                    "queued": queued,
                    "broken": broken,
                }

    results = asyncio.run(_run())

    assert results["session_id"]
    assert json.loads(_text(results["templates"])) == [{"id": "invoice"}]
    generated = _text(results["generated"])
    assert "https://x/y.pdf" in generated and "1.2s" in generated and "10KB" in generated
    assert not results["generated"].isError
    assert "PDF Generated Successfully (async)!" in _text(results["polled"])
    assert "https://x/r1.pdf" in _text(results["polled"])
    assert "Request ID: r1" in _text(results["queued"])
    assert results["broken"].isError
    assert "Invalid JSON provided for 'pdfParams' parameter" in _text(results["broken"])
    assert upstream.status_calls == 2
