from __future__ import annotations

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from . import logging as core_logging
from .models import ApiResponse, RenderStatusResponse

DEFAULT_API_BASE = "https://api.pdfnoodle.com/v1/"
LOGGER = core_logging.get_logger("pdfnoodle")


class PdfNoodleError(Exception):
    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class PdfNoodleApiError(PdfNoodleError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"PDFNoodle API Error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class PdfNoodleClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_API_BASE,
        timeout_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url.endswith("/"):
            base_url = f"{base_url}/"
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def __aenter__(self) -> "PdfNoodleClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> ApiResponse:
        LOGGER.debug("pdfnoodle_request", method=method, endpoint=endpoint)
        try:
            response = await self._http.request(
                method,
                endpoint,
                content=json.dumps(body).encode("utf-8") if body is not None else None,
            )
        except httpx.HTTPError as exc:
            raise PdfNoodleError(str(exc) or exc.__class__.__name__) from exc
        if not response.is_success and response.status_code != 202:
            raise PdfNoodleApiError(response.status_code, response.text)
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise PdfNoodleError(
                f"Invalid JSON response from {endpoint} (status {response.status_code})"
            ) from exc
        return ApiResponse(status=response.status_code, data=data)

    async def list_templates(self) -> ApiResponse:
        return await self.request("GET", "integration/templates")

    async def get_template_variables(self, template_id: str) -> ApiResponse:
        return await self.request(
            "GET", f"integration/templates/{quote(template_id, safe='')}/variables"
        )

    async def html_to_pdf(self, payload: Dict[str, Any]) -> ApiResponse:
        return await self.request("POST", "html-to-pdf/sync", payload)

    async def generate_pdf(self, template_id: str, data: Any) -> ApiResponse:
        return await self.request("POST", "pdf/sync", {"templateId": template_id, "data": data})

    async def get_status(self, request_id: str) -> RenderStatusResponse:
        response = await self.request("GET", f"pdf/status/{quote(request_id, safe='')}")
        if not isinstance(response.data, dict):
            raise PdfNoodleError(f"Invalid status payload for request {request_id}")
        try:
            return RenderStatusResponse.model_validate(response.data)
        except ValidationError as exc:
            raise PdfNoodleError(f"Invalid status payload for request {request_id}") from exc
