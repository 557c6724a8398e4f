# errors.py
"""Exceptions raised by the Falcon client and tool dispatcher."""


class FalconError(Exception):
    """Base class for every error surfaced to the MCP host."""


class ConfigurationError(FalconError):
    """Required credentials or settings are missing or invalid."""


class ValidationError(FalconError):
    """Tool arguments are malformed. Raised before any network call."""


class _RemoteError(FalconError):
    def __init__(self, prefix: str, status_code: int = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = prefix
        if status_code is not None:
            message = f"{message}: {status_code}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class AuthenticationError(_RemoteError):
    """The token exchange was rejected or returned an unusable payload."""

    def __init__(self, status_code: int = None, detail: str = ""):
        super().__init__("Authentication failed", status_code, detail)


class TransportError(_RemoteError):
    """A Falcon API call returned a non-success status or never completed."""

    def __init__(self, status_code: int = None, detail: str = ""):
        super().__init__("Falcon API request failed", status_code, detail)


class SessionError(FalconError):
    """An RTR session could not be created."""


class CommandExecutionError(FalconError):
    """An RTR command failed inside an active session."""
