"""Typed errors for remote endpoint and config failures.

These are raised by the request helpers and converted into fallback values
at the public surface of RemoteLLM. Callers of embed/generate/rerank never
see them.
"""

from typing import Optional


class RemoteLLMError(RuntimeError):
    """Base class for failures talking to a remote inference endpoint."""


class EndpointRequestError(RemoteLLMError):
    """Raised when the HTTP call fails or returns a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RemoteProtocolError(RemoteLLMError):
    """Raised when a response body is missing expected fields or has the wrong shape."""


class RerankProtocolError(RemoteProtocolError):
    """Raised when a rerank response references a document index outside the input."""


class ConfigCorruptError(ValueError):
    """Raised when the persisted config document cannot be parsed."""
