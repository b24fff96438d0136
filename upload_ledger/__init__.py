from .errors import (
    DuplicateIdentity,
    RecordNotFound,
    ResidenceUnresolved,
    UploadLedgerError,
    ValidationFailure,
)
from .identity import resolve_upload_id
from .ledger import UploadLedger
from .cleanup import CleanupCoordinator
from .residence import MinioResidence, ResidenceRegistry
from .retention import older_than, sweep_stale
from .store import RecordStore, SqlAlchemyRecordStore

__all__ = [
    "CleanupCoordinator",
    "DuplicateIdentity",
    "MinioResidence",
    "RecordNotFound",
    "RecordStore",
    "ResidenceRegistry",
    "ResidenceUnresolved",
    "SqlAlchemyRecordStore",
    "UploadLedger",
    "UploadLedgerError",
    "ValidationFailure",
    "older_than",
    "resolve_upload_id",
    "sweep_stale",
]
