"""
Error taxonomy shared by the provider gateway, account store and pipeline.

Each error maps to one HTTP status in main.py; the message is what the
user sees.
"""

from typing import Optional


class UGCError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(UGCError):
    """Missing or malformed user input. Raised before any network call."""

    status_code = 400

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])

    @classmethod
    def missing(cls, fields: list[str]) -> "ValidationError":
        return cls(f"Missing required fields: {', '.join(fields)}", fields)


class MissingCredentialError(UGCError):
    """No provider key configured for the call."""

    status_code = 400

    def __init__(self, provider: str):
        super().__init__(f"Missing {provider} API Key")
        self.provider = provider


class UpstreamError(UGCError):
    """Provider returned a non-success response, or the call never completed."""

    status_code = 502


class AuthError(UGCError):
    """Invalid, expired or absent session token."""

    status_code = 401


class NotFoundError(UGCError):
    status_code = 404


class AccountExistsError(ValidationError):
    status_code = 409


class StoreError(UGCError):
    """The account store file exists but cannot be read."""

    status_code = 500
