"""Error taxonomy shared by the credential services.

Routers translate these into HTTP status codes; services never raise
HTTPException themselves.
"""

from __future__ import annotations


class CredentialServiceError(Exception):
    """Base class for every error the credential core raises on purpose."""


class NotFoundError(CredentialServiceError):
    """Missing credential, achievement, profile, status list or key."""


class ConflictError(CredentialServiceError):
    """Duplicate record, e.g. importing a credential id that already exists."""


class ValidationError(CredentialServiceError, ValueError):
    """Malformed input payload or missing required credential fields."""


class ConfigurationError(CredentialServiceError):
    """Signing key material is absent or unusable."""
