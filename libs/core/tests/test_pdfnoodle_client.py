from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from libs.core.models import RenderStatus
from libs.core.pdfnoodle_client import PdfNoodleApiError, PdfNoodleClient, PdfNoodleError


def _run(coro):
    return asyncio.run(coro)


async def _call(handler, action, base_url: str = "https://api.test/v1/"):
    async with PdfNoodleClient(
        "secret-key", base_url=base_url, transport=httpx.MockTransport(handler)
    ) as client:
        return await action(client)


def test_sends_bearer_key_and_json_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"signedUrl": "https://x/y.pdf"})

    response = _run(_call(handler, lambda c: c.generate_pdf("tpl-1", {"name": "Ada"})))

    assert response.status == 200
    assert response.data == {"signedUrl": "https://x/y.pdf"}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.test/v1/pdf/sync"
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert request.headers["Accept"] == "application/json"
    assert json.loads(request.content) == {"templateId": "tpl-1", "data": {"name": "Ada"}}


def test_base_url_without_trailing_slash_keeps_path() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=[])

    _run(_call(handler, lambda c: c.list_templates(), base_url="https://api.test/v1"))
    assert seen == ["https://api.test/v1/integration/templates"]


def test_accepted_status_is_returned_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            202, json={"requestId": "r1", "statusUrl": "https://s", "message": "queued"}
        )

    response = _run(_call(handler, lambda c: c.html_to_pdf({"html": "<p/>"})))
    assert response.status == 202
    assert response.data["requestId"] == "r1"


def test_error_status_carries_body_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="invalid api key")

    with pytest.raises(PdfNoodleApiError) as excinfo:
        _run(_call(handler, lambda c: c.list_templates()))
    assert excinfo.value.status_code == 401
    assert str(excinfo.value) == "PDFNoodle API Error (401): invalid api key"


def test_non_json_success_body_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(PdfNoodleError) as excinfo:
        _run(_call(handler, lambda c: c.list_templates()))
    assert "Invalid JSON response" in excinfo.value.detail


def test_network_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(PdfNoodleError) as excinfo:
        _run(_call(handler, lambda c: c.list_templates()))
    assert "timed out" in str(excinfo.value)


def test_get_status_parses_payload_and_quotes_ids() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path.decode("ascii"))
        return httpx.Response(
            200,
            json={"requestId": "a/b", "renderStatus": "ONGOING", "signedUrl": ""},
        )

    status = _run(_call(handler, lambda c: c.get_status("a/b")))
    assert status.render_status == RenderStatus.ongoing
    assert seen == ["/v1/pdf/status/a%2Fb"]


def test_template_variables_endpoint() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"variables": ["name"]})

    response = _run(_call(handler, lambda c: c.get_template_variables("tpl-9")))
    assert response.data == {"variables": ["name"]}
    assert seen == ["/v1/integration/templates/tpl-9/variables"]


def test_status_payload_without_render_status_is_reported_readably() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"requestId": "r1"})

    with pytest.raises(PdfNoodleError) as excinfo:
        _run(_call(handler, lambda c: c.get_status("r1")))
    assert str(excinfo.value) == "Invalid status payload for request r1"
