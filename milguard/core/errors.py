"""
Error taxonomy shared by the core and the HTTP layer.

Every error carries the HTTP status it maps to; main.py renders them
as ``{"error": message}``.
"""


class MilGuardError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MilGuardError):
    """Malformed or empty input, unknown content type, bad progress value."""
    status_code = 400


class ModuleLockedError(ValidationError):
    status_code = 409


class AuthRequiredError(MilGuardError):
    status_code = 401


class NotFoundError(MilGuardError):
    status_code = 404


class ProviderError(MilGuardError):
    """A single external provider failed (timeout, non-2xx, bad payload)."""
    status_code = 502

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class NoVerdictError(MilGuardError):
    """No provider produced a usable result, so there is nothing to aggregate."""
    status_code = 502


class StorageError(MilGuardError):
    status_code = 500
