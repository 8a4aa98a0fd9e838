"""Typed service-layer failures. Each carries the HTTP status the API returns."""


class ServiceError(Exception):
    """Base class. The message is safe to show to the client."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class UpstreamError(ServiceError):
    """An external call (LLM, payment provider) failed."""
    status_code = 502


class ResponseShapeError(ServiceError):
    """An external call succeeded but returned unusable output."""
    status_code = 422


class ConfigurationError(ServiceError):
    """Required server configuration is missing."""
    status_code = 500
