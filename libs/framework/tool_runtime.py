from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from jsonschema import Draft202012Validator

from libs.core import logging as core_logging
from libs.core.models import ToolResult, ToolSpec

LOGGER = core_logging.get_logger("pdfnoodle")


class ToolExecutionError(Exception):
    pass


class ToolInputError(ToolExecutionError):
    pass


tool_input_type = dict[str, Any]
tool_handler_type = Callable[[tool_input_type], Awaitable[ToolResult]]


@dataclass
class Tool:
    spec: ToolSpec
    handler: tool_handler_type


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.spec.name] = tool

    def list_specs(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise KeyError(f"Tool not found: {name}")
        return self._tools[name]

    async def execute(self, name: str, payload: tool_input_type | None) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            LOGGER.warning("tool_call_unknown", tool=name)
            return ToolResult(text=f"Unknown tool: {name}", is_error=True)
        started_at = time.monotonic()
        arguments = payload if isinstance(payload, dict) else {}
        LOGGER.info("tool_call_started", tool=name, arguments=sorted(arguments))
        try:
            validate_schema(tool.spec.input_schema, arguments, "input")
            result = await tool.handler(arguments)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or exc.__class__.__name__
            LOGGER.warning(
                "tool_call_failed",
                tool=name,
                error=message,
                error_type=exc.__class__.__name__,
                duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
            )
            return ToolResult(text=f"{tool.spec.error_prefix}: {message}", is_error=True)
        LOGGER.info(
            "tool_call_finished",
            tool=name,
            is_error=result.is_error,
            duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
        )
        return result


def validate_schema(schema: dict[str, Any] | None, payload: dict[str, Any], label: str) -> None:
    if not schema:
        return
    try:
        validator = Draft202012Validator(schema)
    except Exception as exc:  # noqa: BLE001
        raise ToolExecutionError(f"Invalid {label} schema: {exc}") from exc
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
    if errors:
        messages = "; ".join(
            f"{'/'.join(map(str, err.path)) or '<root>'}: {err.message}" for err in errors[:5]
        )
        raise ToolInputError(f"{label} schema validation failed: {messages}")
