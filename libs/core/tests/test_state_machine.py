from libs.core import models, state_machine


def test_valid_session_transition():
    assert state_machine.validate_session_transition(
        models.SessionState.pending, models.SessionState.active
    )


def test_pending_session_can_be_discarded():
    assert state_machine.validate_session_transition(
        models.SessionState.pending, models.SessionState.closed
    )


def test_closed_session_cannot_reopen():
    assert not state_machine.validate_session_transition(
        models.SessionState.closed, models.SessionState.active
    )
    assert not state_machine.validate_session_transition(
        models.SessionState.active, models.SessionState.pending
    )


def test_terminal_render_statuses():
    assert state_machine.is_terminal_render_status(models.RenderStatus.success)
    assert state_machine.is_terminal_render_status(models.RenderStatus.failed)
    assert not state_machine.is_terminal_render_status(models.RenderStatus.ongoing)
    assert not state_machine.is_terminal_render_status(models.RenderStatus.unknown)


def test_unrecognised_render_status_parses_as_unknown():
    status = models.RenderStatusResponse.model_validate(
        {"requestId": "r1", "renderStatus": "QUEUED"}
    )
    assert status.render_status == models.RenderStatus.unknown
