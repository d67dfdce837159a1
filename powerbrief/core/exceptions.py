"""
Error taxonomy for the OneSheet pipeline.

Every error carries the HTTP status the API layer answers with, so the
services raise domain errors and the exception handlers in ``api.app``
translate them without a lookup table.
"""

from typing import Any, Dict, Optional


class PowerBriefError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(PowerBriefError):
    """Malformed or incomplete caller input."""

    status_code = 400


class AuthorizationError(PowerBriefError):
    """Caller is not authenticated (401) or may not access the record (403)."""

    status_code = 403


class NotFoundError(PowerBriefError):
    """Referenced record, configuration or item does not exist."""

    status_code = 404


class ConfigurationError(PowerBriefError):
    """Prompt configuration is missing a provider-specific field."""

    status_code = 400

    def __init__(self, message: str, missing_field: Optional[str] = None):
        super().__init__(message)
        self.missing_field = missing_field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.missing_field:
            body["missingField"] = self.missing_field
        return body


class GenerationError(PowerBriefError):
    """Provider call failed; the provider's own message is preserved."""

    status_code = 500

    def __init__(self, message: str, provider: Optional[str] = None, provider_message: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.provider_message = provider_message

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.provider:
            body["provider"] = self.provider
        if self.provider_message:
            body["providerMessage"] = self.provider_message
        return body


class ParseError(PowerBriefError):
    """Provider text could not be read as the expected structure."""

    status_code = 500

    def __init__(self, message: str, raw_response: str = "", preview_chars: int = 500):
        super().__init__(message)
        self.raw_response = raw_response
        self.preview_chars = preview_chars

    @property
    def raw_preview(self) -> str:
        if len(self.raw_response) <= self.preview_chars:
            return self.raw_response
        return self.raw_response[:self.preview_chars] + "..."

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["rawResponse"] = self.raw_preview
        return body


class ConflictError(PowerBriefError):
    """The record changed between read and conditional write."""

    status_code = 409


class MediaFetchError(Exception):
    """Media download failed. Handled inside the dispatcher, never returned to callers."""
