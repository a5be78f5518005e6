from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from libs.core.models import (
    ApiResponse,
    RenderMetadata,
    RenderQueued,
    RenderStatus,
    RenderSuccess,
    ToolResult,
    ToolSpec,
)
from libs.core.pdfnoodle_client import PdfNoodleClient
from libs.core.render_poller import RenderPoller
from libs.framework.tool_runtime import Tool, ToolExecutionError, ToolInputError, ToolRegistry

ClientFactory = Callable[[str], PdfNoodleClient]

_API_KEY_SCHEMA = {"type": "string", "description": "Your PDFNoodle API key"}
_WAIT_SCHEMA = {
    "type": "boolean",
    "description": (
        "If true (default), waits for async renders to complete. Set to false to get "
        "the requestId immediately for long renders."
    ),
}


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey")


class ListTemplatesInput(_ToolInput):
    limit: Optional[int] = None


class TemplateVariablesInput(_ToolInput):
    template_id: str = Field(alias="templateId")


class PdfStatusInput(_ToolInput):
    request_id: str = Field(alias="requestId")


class HtmlToPdfInput(_ToolInput):
    html: str
    pdf_params: Optional[str] = Field(default=None, alias="pdfParams")
    convert_to_image: Optional[bool] = Field(default=None, alias="convertToImage")
    metadata: Optional[str] = None
    has_cover: Optional[bool] = Field(default=None, alias="hasCover")
    wait_for_completion: bool = Field(default=True, alias="waitForCompletion")


class GeneratePdfInput(_ToolInput):
    template_id: str = Field(alias="templateId")
    data: str
    wait_for_completion: bool = Field(default=True, alias="waitForCompletion")


UNSET = object()


def parse_json_argument(raw: Optional[str], name: str, *, required: bool = False) -> Any:
    if not raw and not required:
        return UNSET
    try:
        return json.loads(raw or "")
    except json.JSONDecodeError as exc:
        raise ToolInputError(f"Invalid JSON provided for '{name}' parameter") from exc


def _structured(data: Any) -> Dict[str, Any]:
    if isinstance(data, dict):
        return data
    return {"result": data}


def _metadata_lines(metadata: Optional[RenderMetadata]) -> str:
    execution_time = (metadata.execution_time if metadata else None) or "N/A"
    file_size = (metadata.file_size if metadata else None) or "N/A"
    return f"Execution time: {execution_time}\nFile size: {file_size}"


def render_success_text(
    file_type: str, signed_url: Optional[str], metadata: Optional[RenderMetadata], *, polled: bool
) -> str:
    headline = "Generated Successfully (async)!" if polled else "Generated Successfully!"
    return f"{file_type} {headline}\nDownload URL: {signed_url}\n{_metadata_lines(metadata)}"


def render_queued_text(request_id: str) -> str:
    return (
        "PDF generation queued (taking longer than 30 seconds).\n"
        f"Request ID: {request_id}\n"
        "Use the check_pdf_status tool to monitor progress."
    )


class PdfNoodleTools:
    def __init__(self, client_factory: ClientFactory, poller: RenderPoller) -> None:
        self.client_factory = client_factory
        self.poller = poller

    async def list_templates(self, payload: Dict[str, Any]) -> ToolResult:
        request = ListTemplatesInput.model_validate(payload)
        async with self.client_factory(request.api_key) as client:
            response = await client.list_templates()
        data = response.data
        if request.limit is not None and isinstance(data, list):
            data = data[: max(0, request.limit)]
        return ToolResult(text=json.dumps(data, indent=2), data=_structured(data))

    async def get_template_variables(self, payload: Dict[str, Any]) -> ToolResult:
        request = TemplateVariablesInput.model_validate(payload)
        async with self.client_factory(request.api_key) as client:
            response = await client.get_template_variables(request.template_id)
        return ToolResult(text=json.dumps(response.data, indent=2), data=_structured(response.data))

    async def check_pdf_status(self, payload: Dict[str, Any]) -> ToolResult:
        request = PdfStatusInput.model_validate(payload)
        async with self.client_factory(request.api_key) as client:
            status = await client.get_status(request.request_id)
        data = status.model_dump(by_alias=True, exclude_none=True, mode="json")
        if status.render_status == RenderStatus.success:
            return ToolResult(
                text=f"PDF Ready! Download URL: {status.signed_url}\n{_metadata_lines(status.metadata)}",
                data=data,
            )
        if status.render_status == RenderStatus.ongoing:
            return ToolResult(
                text=(
                    "PDF generation is still in progress. "
                    f"Request ID: {request.request_id}. Please check again in a few seconds."
                ),
                data=data,
            )
        return ToolResult(
            text=f"PDF generation failed. Request ID: {request.request_id}",
            data=data,
            is_error=True,
        )

    async def html_to_pdf(self, payload: Dict[str, Any]) -> ToolResult:
        request = HtmlToPdfInput.model_validate(payload)
        body: Dict[str, Any] = {"html": request.html}
        pdf_params = parse_json_argument(request.pdf_params, "pdfParams")
        if pdf_params is not UNSET:
            body["pdfParams"] = pdf_params
        metadata = parse_json_argument(request.metadata, "metadata")
        if metadata is not UNSET:
            body["metadata"] = metadata
        if request.convert_to_image is not None:
            body["convertToImage"] = request.convert_to_image
        if request.has_cover is not None:
            body["hasCover"] = request.has_cover
        file_type = "PNG" if request.convert_to_image else "PDF"
        async with self.client_factory(request.api_key) as client:
            response = await client.html_to_pdf(body)
            return await self._finish_render(
                client, response, file_type=file_type, wait=request.wait_for_completion
            )

    async def generate_pdf(self, payload: Dict[str, Any]) -> ToolResult:
        request = GeneratePdfInput.model_validate(payload)
        data = parse_json_argument(request.data, "data", required=True)
        async with self.client_factory(request.api_key) as client:
            response = await client.generate_pdf(request.template_id, data)
            return await self._finish_render(
                client, response, file_type="PDF", wait=request.wait_for_completion
            )

    async def _finish_render(
        self,
        client: PdfNoodleClient,
        response: ApiResponse,
        *,
        file_type: str,
        wait: bool,
    ) -> ToolResult:
        if response.status == 200:
            success = RenderSuccess.model_validate(response.data)
            return ToolResult(
                text=render_success_text(
                    file_type, success.signed_url, success.metadata, polled=False
                ),
                data=_structured(response.data),
            )
        if response.status == 202:
            queued = RenderQueued.model_validate(response.data)
            if not wait:
                return ToolResult(
                    text=render_queued_text(queued.request_id), data=_structured(response.data)
                )
            final = await self.poller.await_completion(client, queued.request_id)
            return ToolResult(
                text=render_success_text(file_type, final.signed_url, final.metadata, polled=True),
                data=final.model_dump(by_alias=True, exclude_none=True, mode="json"),
            )
        raise ToolExecutionError(f"Unexpected response status: {response.status}")


def register_pdfnoodle_tools(
    registry: ToolRegistry, client_factory: ClientFactory, poller: RenderPoller
) -> None:
    handlers = PdfNoodleTools(client_factory, poller)
    registry.register(
        Tool(
            spec=ToolSpec(
                name="list_templates",
                title="List Templates",
                description="Retrieve available PDF templates from PDFNoodle",
                input_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": _API_KEY_SCHEMA,
                        "limit": {
                            "type": "integer",
                            "minimum": 0,
                            "description": "Number of templates to return",
                        },
                    },
                    "required": ["apiKey"],
                },
                error_prefix="Error fetching templates",
            ),
            handler=handlers.list_templates,
        )
    )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_template_variables",
                title="Get Template Variables",
                description="Retrieve the list of variables required by a specific PDF template",
                input_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": _API_KEY_SCHEMA,
                        "templateId": {
                            "type": "string",
                            "description": "The ID of the template to get variables for",
                        },
                    },
                    "required": ["apiKey", "templateId"],
                },
                error_prefix="Error fetching template variables",
            ),
            handler=handlers.get_template_variables,
        )
    )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="check_pdf_status",
                title="Check PDF Status",
                description="Check the status of an asynchronous PDF generation request",
                input_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": _API_KEY_SCHEMA,
                        "requestId": {
                            "type": "string",
                            "description": "The request ID returned from a queued PDF generation",
                        },
                    },
                    "required": ["apiKey", "requestId"],
                },
                error_prefix="Error checking PDF status",
            ),
            handler=handlers.check_pdf_status,
        )
    )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="html_to_pdf",
                title="HTML to PDF",
                description=(
                    "Convert HTML content to a PDF document. Automatically handles "
                    "long-running renders by polling for completion."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": _API_KEY_SCHEMA,
                        "html": {
                            "type": "string",
                            "description": "The HTML content you want to render",
                        },
                        "pdfParams": {
                            "type": "string",
                            "description": (
                                "JSON string of PDF parameters (e.g., page size, margins). "
                                "See PDFNoodle docs for options."
                            ),
                        },
                        "convertToImage": {
                            "type": "boolean",
                            "description": (
                                "If true, returns a PNG file instead of PDF (default: false)"
                            ),
                        },
                        "metadata": {
                            "type": "string",
                            "description": "JSON string of PDF metadata (e.g., title, author)",
                        },
                        "hasCover": {
                            "type": "boolean",
                            "description": (
                                "If true, hides header/footer on the first page (default: false)"
                            ),
                        },
                        "waitForCompletion": _WAIT_SCHEMA,
                    },
                    "required": ["apiKey", "html"],
                },
                error_prefix="Error converting HTML to PDF",
            ),
            handler=handlers.html_to_pdf,
        )
    )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="generate_pdf",
                title="Generate PDF",
                description=(
                    "Generate a PDF document using a PDFNoodle template and data. "
                    "Automatically handles long-running renders by polling for completion."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "apiKey": _API_KEY_SCHEMA,
                        "templateId": {
                            "type": "string",
                            "description": "The ID of the template to use",
                        },
                        "data": {
                            "type": "string",
                            "description": "JSON string of data variables to populate the template",
                        },
                        "waitForCompletion": _WAIT_SCHEMA,
                    },
                    "required": ["apiKey", "templateId", "data"],
                },
                error_prefix="Error generating PDF",
            ),
            handler=handlers.generate_pdf,
        )
    )
