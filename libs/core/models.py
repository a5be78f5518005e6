from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionState(str, Enum):
    pending = "pending"
    active = "active"
    closed = "closed"


class RenderStatus(str, Enum):
    ongoing = "ONGOING"
    success = "SUCCESS"
    failed = "FAILED"
    unknown = "UNKNOWN"

    @classmethod
    def _missing_(cls, value: object) -> "RenderStatus":
        return cls.unknown


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RenderMetadata(_ApiModel):
    execution_time: Optional[str] = Field(default=None, alias="executionTime")
    file_size: Optional[str] = Field(default=None, alias="fileSize")


class RenderSuccess(_ApiModel):
    signed_url: str = Field(alias="signedUrl")
    metadata: Optional[RenderMetadata] = None


class RenderQueued(_ApiModel):
    request_id: str = Field(alias="requestId")
    status_url: Optional[str] = Field(default=None, alias="statusUrl")
    message: Optional[str] = None


class RenderStatusResponse(_ApiModel):
    request_id: Optional[str] = Field(default=None, alias="requestId")
    render_status: RenderStatus = Field(alias="renderStatus")
    signed_url: Optional[str] = Field(default=None, alias="signedUrl")
    metadata: Optional[RenderMetadata] = None

    @field_validator("render_status", mode="before")
    @classmethod
    def _coerce_render_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return RenderStatus(value)
        return value


class ApiResponse(BaseModel):
    status: int
    data: Any = None


class ToolSpec(BaseModel):
    name: str
    title: str
    description: str
    input_schema: Dict[str, Any]
    error_prefix: str


class ToolResult(BaseModel):
    text: str
    data: Optional[Dict[str, Any]] = None
    is_error: bool = False
