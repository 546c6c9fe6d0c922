"""
Exception hierarchy for VoiceFlow.

Remote failures are grouped per external service: every ServiceError knows
which service raised it and carries a message that can be shown to the
user as-is.
"""

from typing import Optional


class VoiceFlowError(Exception):
    """Base exception for all VoiceFlow errors."""
    pass


class ConfigurationError(VoiceFlowError):
    """Error in application configuration or settings."""
    pass


class StorageError(VoiceFlowError):
    """Error reading or writing persisted records."""
    pass


class ServiceError(VoiceFlowError):
    """Base exception for errors talking to an external API."""

    def __init__(self, service: str, message: str):
        self.service = service
        self.message = message
        super().__init__(message)


class MissingAPIKeyError(ServiceError):
    """Raised when no API key is stored for a service."""

    def __init__(self, service: str, key_name: Optional[str] = None):
        hint = f" Set it with `voiceflow keys set {key_name}`." if key_name else ""
        super().__init__(service, f"No {service} API key.{hint}")
        self.key_name = key_name


class InvalidURLError(ServiceError):
    """Raised when an endpoint or a returned link is not an http(s) URL."""

    def __init__(self, service: str, url: str = ""):
        super().__init__(service, "Invalid API URL.")
        self.url = url


class InvalidResponseError(ServiceError):
    """Raised when a response body is not the JSON object the API returns."""

    def __init__(self, service: str):
        super().__init__(service, "Invalid response from server")


class APIError(ServiceError):
    """Raised when an API answers with a non-success status."""

    def __init__(
        self,
        service: str,
        status_code: int,
        body: str = "",
        label: Optional[str] = None,
        message: Optional[str] = None
    ):
        self.status_code = status_code
        self.body = body
        if message is None:
            label = label or f"{service} API"
            message = f"{label} error ({status_code}): {body or 'Unknown error'}"
        super().__init__(service, message)


class RetryExhaustedError(APIError):
    """Raised when the server kept answering 429/503 until retries ran out."""

    def __init__(self, service: str, status_code: int, attempts: int, body: str = ""):
        self.attempts = attempts
        super().__init__(
            service,
            status_code,
            body,
            message=f"{service} server returned {status_code} after {attempts} attempts"
        )


class NetworkError(ServiceError):
    """Raised when the request never produced a response."""

    def __init__(self, service: str, cause: Exception):
        self.cause = cause
        super().__init__(service, f"Network error talking to {service}: {cause}")


class ParseError(ServiceError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, service: str):
        super().__init__(service, f"Failed to parse {service} API response.")


class NoImageInResponseError(ServiceError):
    """Raised when an image API answers successfully but without an image."""

    def __init__(self, service: str):
        super().__init__(service, "No image was returned by the API.")


class ImageDownloadError(ServiceError):
    """Raised when a generated image URL cannot be downloaded."""

    def __init__(self, service: str):
        super().__init__(service, "Failed to download generated image.")


class TranscriptionError(VoiceFlowError):
    """Error transcribing audio."""
    pass


class LocalModelError(TranscriptionError):
    """Error using the on-device Whisper model."""
    pass
