"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class StreamGrabError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(StreamGrabError):
    """Raised for issues related to configuration loading or validation."""


class FetchError(StreamGrabError):
    """Raised when an authenticated request fails after its single fallback."""

    def __init__(self, message: str, url: str = "", status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ManifestFetchError(StreamGrabError):
    """Raised when the top-level or media manifest cannot be downloaded."""


class ManifestParseError(StreamGrabError):
    """Raised when a manifest is malformed or yields no usable representations."""


class RepresentationNotFoundError(StreamGrabError):
    """Raised when the caller's requested quality is not present in the manifest."""


class KeyFetchError(StreamGrabError):
    """
    Raised when an AES-128 key cannot be retrieved. Non-fatal: the acquisition
    continues without decryption.
    """


class SegmentFetchError(StreamGrabError):
    """Raised when segment retrieval is aborted."""


class FailureBudgetExceededError(SegmentFetchError):
    """Raised when too many segments fail; usually an expired session."""


class AssemblyError(StreamGrabError):
    """Raised when no usable segments are available to assemble."""


class SaveError(StreamGrabError):
    """Raised when the assembled artifact cannot be written to disk."""


class UnsupportedStreamError(StreamGrabError):
    """Raised for stream types the engine cannot acquire (e.g. MSE blobs)."""


class StateTransitionError(StreamGrabError):
    """Raised when the acquisition state machine is driven out of order."""


class CaptureImportError(StreamGrabError):
    """Raised when a HAR capture or a scanned page cannot be read."""
