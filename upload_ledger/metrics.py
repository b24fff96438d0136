from prometheus_client import Counter

UPLOADS_CREATED = Counter(
    "upload_ledger_created_total", "Upload records created", ["provider"]
)
DUPLICATE_IDENTITIES = Counter(
    "upload_ledger_duplicate_total", "Inserts rejected as an existing upload id"
)
LOOKUPS = Counter(
    "upload_ledger_lookups_total", "Exists checks by outcome", ["result"]
)
UPDATES = Counter(
    "upload_ledger_updates_total", "Record updates by kind", ["kind"]
)
UPDATE_CONFLICTS = Counter(
    "upload_ledger_update_conflicts_total",
    "Concurrent updates that needed another read-merge-write pass",
)
REMOVALS = Counter(
    "upload_ledger_removed_total", "Record deletions", ["result"]
)
CLEANUPS = Counter(
    "upload_ledger_cleanups_total", "Remote cleanups by outcome", ["status"]
)
SWEPT = Counter(
    "upload_ledger_swept_total", "Stale records handled by a sweep", ["policy", "status"]
)
