import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .errors import UploadLedgerError
from .metrics import SWEPT

if TYPE_CHECKING:
    from .cleanup import CleanupCoordinator
    from .ledger import UploadLedger
    from .models import UploadModel
    from .store import RecordStore

logger = logging.getLogger(__name__)

SweepPolicy = Literal["remove", "cleanup"]


class SweepReport(BaseModel):
    policy: SweepPolicy
    cutoff: datetime
    removed: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


async def older_than(store: "RecordStore", cutoff: datetime) -> List["UploadModel"]:
    """Records created strictly before ``cutoff``. Deletes nothing."""
    return await store.created_before(cutoff)


async def sweep_stale(
    ledger: "UploadLedger",
    cutoff: datetime,
    policy: SweepPolicy = "remove",
    coordinator: Optional["CleanupCoordinator"] = None,
) -> SweepReport:
    """Apply ``policy`` to every record older than ``cutoff``.

    ``remove`` drops the tracking record only; ``cleanup`` deletes the
    remote object first. Per-record failures are collected in the report
    rather than aborting the sweep, and are logged as errors.
    """
    if policy == "cleanup" and coordinator is None:
        raise ValueError("cleanup sweeps need a CleanupCoordinator")

    report = SweepReport(policy=policy, cutoff=cutoff)
    stale = await older_than(ledger.store, cutoff)
    logger.info("sweeping %d upload(s) created before %s (%s)", len(stale), cutoff, policy)

    for upload in stale:
        try:
            if policy == "cleanup":
                await coordinator.cleanup(upload)
            else:
                await ledger.remove_entry(upload)
        except UploadLedgerError as e:
            report.failed[upload.id] = e.message
            SWEPT.labels(policy=policy, status="failed").inc()
            logger.error("sweep could not %s upload %s: %s", policy, upload.id, e.message)
            continue
        report.removed.append(upload.id)
        SWEPT.labels(policy=policy, status="ok").inc()

    return report
