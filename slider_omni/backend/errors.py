"""
Exception hierarchy for the generation service.

Every failure that can reach a caller is one of these classes. The API layer
converts them to JSON responses using ``status_code`` and ``kind``.
"""

from typing import Optional, Dict, Any


class SliderError(Exception):
    """Base exception for all service errors"""

    status_code = 500
    kind = "internal_error"

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [self.message]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        return "".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


# === Access errors ===

class AuthenticationError(SliderError):
    """Missing, malformed, expired or forged credentials"""
    status_code = 401
    kind = "unauthenticated"

    def __init__(self, message: str = "authentication required", **kwargs):
        super().__init__(message, **kwargs)


class AuthorizationError(SliderError):
    """Authenticated, but lacking the elevated permission"""
    status_code = 403
    kind = "forbidden"

    def __init__(self, message: str = "forbidden", **kwargs):
        super().__init__(message, **kwargs)


class InsufficientCreditError(SliderError):
    status_code = 402
    kind = "insufficient_credit"


# === Configuration errors ===

class ProviderConfigurationError(SliderError):
    """No active LLM provider, or one missing required fields"""
    status_code = 400
    kind = "bad_configuration"


# === Generation errors ===

class ContentGenerationError(SliderError):
    """The model could not produce usable slide content"""
    status_code = 502
    kind = "generation_failed"


class UpstreamGenerationError(ContentGenerationError):
    """Transport failure, timeout, non-2xx or malformed body from the provider"""
    pass


class ContentParseError(ContentGenerationError):
    """An array was found in the model output but it is not valid slide data"""
    pass


class RenderingError(SliderError):
    """Assembled HTML failed structural validation"""
    status_code = 500
    kind = "rendering_failed"


class PersistenceError(SliderError):
    status_code = 500
    kind = "persistence_failed"


# === Request errors ===

class NotFoundError(SliderError):
    status_code = 404
    kind = "not_found"


class ValidationFailedError(SliderError):
    status_code = 400
    kind = "invalid_request"


class ConflictError(SliderError):
    status_code = 409
    kind = "conflict"
