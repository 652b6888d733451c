from typing import Any, Dict, Optional


class GeminiFilesError(RuntimeError):
    pass


class ConfigError(GeminiFilesError):
    """No usable API key, or a malformed settings override."""


class InputError(GeminiFilesError):
    """Bad arguments or local inputs, raised before any network activity."""


class TransportError(GeminiFilesError):
    def __init__(self, message: str, status: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status = status
        self.payload = payload or {}


class MalformedResponseError(GeminiFilesError):
    pass


class ApiError(GeminiFilesError):
    """A well-formed response that carries an ``error`` payload."""

    def __init__(self, message: str, code: Optional[Any] = None, status: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.status = status


class QueryError(GeminiFilesError):
    pass


class SafetyBlockError(QueryError):
    pass
