from typing import Any, Dict, List, Optional


class UploadLedgerError(Exception):
    """Base class for every error raised by the ledger."""

    def __init__(self, message: str, *, upload_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.upload_id = upload_id


class RecordNotFound(UploadLedgerError):
    """No record with the requested id. Expected and non-fatal."""


class DuplicateIdentity(UploadLedgerError):
    """An insert collided with an existing upload id.

    Callers either resume the existing upload (run ``check_exists`` again)
    or surface a conflict to the user.
    """


class ValidationFailure(UploadLedgerError):
    """Input violates the record's field constraints. Not retryable as is."""

    def __init__(
        self,
        message: str,
        *,
        upload_id: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, upload_id=upload_id)
        self.errors = errors or []


class ResidenceUnresolved(UploadLedgerError):
    """No storage residence is registered for the record's provider."""

    def __init__(
        self,
        provider_name: str,
        *,
        namespace: Optional[str] = None,
        location: Optional[str] = None,
        upload_id: Optional[str] = None,
    ):
        super().__init__(
            f"unable to find residence for provider {provider_name!r} "
            f"(namespace={namespace!r}, location={location!r})",
            upload_id=upload_id,
        )
        self.provider_name = provider_name
        self.namespace = namespace
        self.location = location


class ResidenceError(UploadLedgerError):
    """The storage residence refused or failed a physical delete."""
