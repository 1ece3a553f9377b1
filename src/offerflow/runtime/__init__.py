"""Runtime facade shared by the CLI, the daemon and the control panel."""

from .service import RuntimeService, get_runtime_service

__all__ = [
    "RuntimeService",
    "get_runtime_service",
]
