__all__ = [
    "models",
    "state_machine",
    "logging",
    "pdfnoodle_client",
    "render_poller",
]
