# src/pagepilot/errors.py
from typing import Optional

from .models import Size


class AgentError(Exception):
    """Base for everything the run loop classifies. str(exc) is shown to the user."""


# ============================================================
# Configuration
# ============================================================

class ConfigurationError(AgentError):
    pass


class MissingCredentialError(ConfigurationError):
    def __init__(self):
        super().__init__("Add a Gemini API key to run Agent Mode.")


# ============================================================
# Perception
# ============================================================

class PerceptionError(AgentError):
    pass


class SurfaceUnavailableError(PerceptionError):
    def __init__(self):
        super().__init__("No active page surface is available for capture.")


class SurfaceDetachedError(PerceptionError):
    def __init__(self):
        super().__init__("Cannot capture: the page surface has been closed.")


class NotLaidOutError(PerceptionError):
    def __init__(self, size: Size):
        self.size = size
        super().__init__(f"Cannot capture: page surface bounds are zero ({size}).")


class StillLoadingError(PerceptionError):
    def __init__(self, url: Optional[str]):
        self.url = url
        super().__init__(f"Cannot capture: the page is still loading ({url or 'unknown URL'}).")


class PageNotReadyError(PerceptionError):
    def __init__(self, url: Optional[str]):
        self.url = url
        super().__init__(f"Cannot capture: the page did not finish loading in time ({url or 'unknown URL'}).")


class CaptureFailedError(PerceptionError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Snapshot failed with error: {type(cause).__name__}: {cause}")


class ImageEncodeError(PerceptionError):
    def __init__(self):
        super().__init__("Snapshot failed: capture returned no image.")


# ============================================================
# Transport
# ============================================================

class TransportError(AgentError):
    def __init__(self, message: str, *, status: Optional[int] = None, retryable: bool = False):
        self.status = status
        self.retryable = retryable
        super().__init__(message)


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or 500 <= status <= 599)
