from __future__ import annotations


class ZoeError(Exception):
    """Base error for the assistant gateway."""


class GatewayRequestError(ZoeError):
    """Hard request failure rendered as a JSON error before any stream opens."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(GatewayRequestError):
    """Request payload failed structural validation."""

    status_code = 400


class BadRequestError(GatewayRequestError):
    """Request is well-formed but cannot be answered (e.g. no user turn)."""

    status_code = 400


class UnauthorizedError(GatewayRequestError):
    """Missing, malformed, or insufficient bearer credential."""

    status_code = 401


class ProviderConfigError(ZoeError):
    """Missing or invalid provider configuration."""


class ProviderError(ZoeError):
    """Completion provider request failure."""


class ProviderAuthError(ProviderError):
    """Completion provider rejected our credentials."""


class ProviderRateLimitError(ProviderError):
    """Completion provider throttled the request."""


class ProviderTimeoutError(ProviderError):
    """Completion stream stalled or exceeded its time budget."""


class ProviderStreamError(ProviderError):
    """Completion stream delivered a chunk that could not be parsed."""


class EmbeddingError(ZoeError):
    """Embedding provider failure."""


class RetrievalError(ZoeError):
    """Knowledge search failure."""


class DatabaseError(ZoeError):
    """Database layer failure."""
