"""Caller-facing boundary: request coordination and the editor popup adapter."""

from .completion_popup import CompletionPopup, RequestEditorBinding, popup_factory_for
from .request_coordinator import MissingCredentialError, RequestCoordinator, client_settings_from

__all__ = [
    "CompletionPopup",
    "MissingCredentialError",
    "RequestCoordinator",
    "RequestEditorBinding",
    "client_settings_from",
    "popup_factory_for",
]
