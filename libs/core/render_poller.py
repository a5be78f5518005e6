from __future__ import annotations

import asyncio
import random
import time
from typing import Awaitable, Callable, Optional

from . import logging as core_logging
from .models import RenderStatus, RenderStatusResponse
from .pdfnoodle_client import PdfNoodleClient, PdfNoodleError
from .state_machine import is_terminal_render_status

LOGGER = core_logging.get_logger("pdfnoodle")

DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_INITIAL_DELAY_MS = 2000.0
DEFAULT_MAX_DELAY_MS = 10000.0
DEFAULT_BACKOFF_FACTOR = 1.5

SleepFn = Callable[[float], Awaitable[None]]


class RenderFailedError(PdfNoodleError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"PDF generation failed for request {request_id}")
        self.request_id = request_id


class RenderTimeoutError(PdfNoodleError):
    def __init__(self, request_id: str, attempts: int) -> None:
        super().__init__(
            f"PDF generation timed out after {attempts} attempts for request {request_id}"
        )
        self.request_id = request_id
        self.attempts = attempts


def backoff_schedule(
    attempts: int,
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS,
    factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
) -> list[float]:
    delays: list[float] = []
    delay = initial_delay_ms
    for _ in range(max(0, attempts)):
        delays.append(delay)
        delay = min(delay * factor, max_delay_ms)
    return delays


class RenderPoller:
    """Waits for a queued render to reach a terminal status.

    Each attempt sleeps first and then queries ``pdf/status/{id}``. The wait
    starts at ``initial_delay_ms`` and grows by ``backoff_factor`` up to
    ``max_delay_ms``. ``jitter`` only perturbs the slept duration; the
    underlying schedule is unchanged.
    """

    def __init__(
        self,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        jitter: float = 0.0,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.initial_delay_ms = max(0.0, float(initial_delay_ms))
        self.max_delay_ms = max(self.initial_delay_ms, float(max_delay_ms))
        self.backoff_factor = max(1.0, float(backoff_factor))
        self.jitter = min(1.0, max(0.0, float(jitter)))
        self._sleep: SleepFn = sleep or asyncio.sleep

    def _jittered(self, delay_ms: float) -> float:
        if not self.jitter:
            return delay_ms
        return delay_ms * (1.0 + random.uniform(-self.jitter, self.jitter))

    async def await_completion(
        self, client: PdfNoodleClient, request_id: str
    ) -> RenderStatusResponse:
        started_at = time.monotonic()
        schedule = backoff_schedule(
            self.max_attempts, self.initial_delay_ms, self.backoff_factor, self.max_delay_ms
        )
        for attempt, delay_ms in enumerate(schedule, start=1):
            await self._sleep(self._jittered(delay_ms) / 1000.0)
            status = await client.get_status(request_id)
            LOGGER.info(
                "render_poll_attempt",
                request_id=request_id,
                attempt=attempt,
                render_status=status.render_status.value,
                delay_ms=int(delay_ms),
            )
            if is_terminal_render_status(status.render_status):
                if status.render_status == RenderStatus.failed:
                    LOGGER.warning("render_poll_failed", request_id=request_id, attempts=attempt)
                    raise RenderFailedError(request_id)
                LOGGER.info(
                    "render_poll_finished",
                    request_id=request_id,
                    attempts=attempt,
                    duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
                )
                return status
        LOGGER.warning(
            "render_poll_timed_out", request_id=request_id, attempts=self.max_attempts
        )
        raise RenderTimeoutError(request_id, self.max_attempts)
