from __future__ import annotations

from typing import Dict, Set

from .models import RenderStatus, SessionState

SESSION_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.pending: {SessionState.active, SessionState.closed},
    SessionState.active: {SessionState.closed},
    SessionState.closed: set(),
}

TERMINAL_RENDER_STATUSES: Set[RenderStatus] = {RenderStatus.success, RenderStatus.failed}


def validate_session_transition(current: SessionState, new: SessionState) -> bool:
    return new in SESSION_TRANSITIONS.get(current, set())


def is_terminal_render_status(status: RenderStatus) -> bool:
    return status in TERMINAL_RENDER_STATUSES
