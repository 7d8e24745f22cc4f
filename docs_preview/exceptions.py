"""Domain-specific exceptions for the docs preview server."""

from enum import Enum


class DocsPreviewError(Exception):
    """Base exception for all docs preview errors."""


class RenderFailure(str, Enum):
    """Why a diagram render produced no image."""

    TOOL_FAILURE = "tool_failure"
    EMPTY_OUTPUT = "empty_output"


class RenderError(DocsPreviewError):
    """The external renderer could not produce an image."""

    def __init__(self, reason: RenderFailure, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = f"{reason.value}: {detail}" if detail else reason.value
        super().__init__(message)


class CacheWriteError(DocsPreviewError):
    """Persisting a rendered image to the durable cache failed."""


class CleanupError(DocsPreviewError):
    """Removing a temporary render workspace failed."""


class SessionSendError(DocsPreviewError):
    """An event could not be handed to a viewer session."""


class ConfigurationError(DocsPreviewError):
    """Error related to configuration issues."""


class InvalidDiagramError(DocsPreviewError):
    """A diagram request could not be decoded into source text."""
