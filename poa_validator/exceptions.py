"""
Exception hierarchy for POA validation.

Only a handful of these ever leave the package. Unreadable files, missing
fields and an unreachable notary registry are all expected outcomes and end
up as reason codes on the verdict; exceptions are how the stages hand those
outcomes to the pipeline, not how the pipeline talks to its caller.
"""

from __future__ import annotations


class PoaValidationError(Exception):
    """Base exception for all POA validation failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class UnreadableFileError(PoaValidationError):
    """The upload could not be turned into text at all."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UNREADABLE_FILE", message, details)


class ConfigurationError(PoaValidationError):
    """The pipeline was constructed with invalid options."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INVALID_CONFIGURATION", message, details)


class NotaryLookupUnavailable(PoaValidationError):
    """The commission registry could not be reached or gave no usable answer."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NOTARY_VERIFICATION_UNAVAILABLE", message, details)


class ValidationCancelled(PoaValidationError):
    """The caller cancelled an in-flight validation."""

    def __init__(self, message: str = "Validation cancelled", details: dict | None = None):
        super().__init__("VALIDATION_CANCELLED", message, details)
