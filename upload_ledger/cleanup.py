import logging

from .errors import ResidenceUnresolved
from .ledger import RecordOrId, UploadLedger
from .metrics import CLEANUPS
from .residence import ResidenceRegistry

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """Deletes an upload's remote object, then its tracking record.

    Only works for providers registered up front in ``residences``; a record
    whose provider is unknown is left alone and ResidenceUnresolved raised.
    """

    def __init__(self, ledger: UploadLedger, residences: ResidenceRegistry):
        self.ledger = ledger
        self.residences = residences

    async def cleanup(self, record: RecordOrId) -> None:
        if isinstance(record, str):
            upload = await self.ledger.find(record)
            if upload is None:
                CLEANUPS.labels(status="absent").inc()
                logger.debug("cleanup of %s: record already gone", record)
                return
        else:
            upload = record

        residence = self.residences.get_residence(
            upload.provider_name,
            namespace=upload.provider_namespace,
            location=upload.provider_location,
        )
        if residence is None:
            CLEANUPS.labels(status="unresolved").inc()
            logger.error(
                "no residence for upload %s (%s/%s/%s)",
                upload.id,
                upload.provider_namespace,
                upload.provider_name,
                upload.provider_location,
            )
            raise ResidenceUnresolved(
                upload.provider_name,
                namespace=upload.provider_namespace,
                location=upload.provider_location,
                upload_id=upload.id,
            )

        # remote first: a crash in between leaves a record that can be cleaned again
        await residence.destroy(upload)
        await self.ledger.remove_entry(upload)
        CLEANUPS.labels(status="ok").inc()
        logger.info("cleaned up upload %s via %r", upload.id, residence)
