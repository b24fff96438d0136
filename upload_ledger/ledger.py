import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm.exc import StaleDataError

from . import config
from .errors import DuplicateIdentity, RecordNotFound, ValidationFailure
from .identity import resolve_upload_id
from .metrics import (
    DUPLICATE_IDENTITIES,
    LOOKUPS,
    REMOVALS,
    UPDATE_CONFLICTS,
    UPDATES,
    UPLOADS_CREATED,
)
from .models import UploadModel
from .retention import older_than
from .schemas import UploadChanges, UploadLookup, UploadParams
from .store import Mutation, RecordStore

logger = logging.getLogger(__name__)

Params = Union[Mapping[str, Any], UploadParams]
RecordOrId = Union[UploadModel, str]


def _validate(schema, params, upload_id: Optional[str] = None):
    if isinstance(params, schema):
        return params
    try:
        return schema.model_validate(dict(params))
    except ValidationError as e:
        raise ValidationFailure(
            f"invalid {schema.__name__}: {e.error_count()} error(s)",
            upload_id=upload_id,
            errors=e.errors(include_url=False),
        ) from e


def _upload_id(record: RecordOrId) -> str:
    return record if isinstance(record, str) else record.id


class UploadLedger:
    """Create, look up, update and remove upload records.

    The ledger holds no state of its own; every call goes to ``store``.
    Cleaning up the remote object is CleanupCoordinator's job.
    """

    def __init__(self, store: RecordStore, update_retries: int = config.UPDATE_RETRIES):
        self.store = store
        self.update_retries = max(1, update_retries)

    async def check_exists(self, params: Mapping[str, Any]) -> Optional[UploadModel]:
        """Return the record the params identify, or None.

        With an explicit ``upload_id`` any identity fields supplied alongside
        it must match the stored record too.
        """
        lookup = _validate(UploadLookup, params)
        if lookup.upload_id:
            fields: Dict[str, Any] = {"id": lookup.upload_id}
            fields.update(lookup.supplied_identity())
            upload = await self.store.find_by_fields(fields)
        else:
            if not lookup.user_id or not lookup.file_id:
                raise ValidationFailure(
                    "check_exists needs upload_id, or user_id and file_id"
                )
            upload_id = resolve_upload_id(
                lookup.user_id, lookup.file_id, lookup.file_name, lookup.file_size
            )
            upload = await self.store.find_by_id(upload_id)

        LOOKUPS.labels(result="hit" if upload else "miss").inc()
        return upload

    async def find(self, upload_id: str) -> Optional[UploadModel]:
        return await self.store.find_by_id(upload_id)

    async def all_uploads(self) -> List[UploadModel]:
        return await self.store.scan_all()

    async def older_than(self, cutoff: datetime) -> List[UploadModel]:
        return await older_than(self.store, cutoff)

    async def add_entry(self, params: Params) -> UploadModel:
        data = _validate(UploadParams, params)
        upload = UploadModel(
            id=resolve_upload_id(
                data.user_id, data.file_id, data.file_name, data.file_size
            ),
            user_id=data.user_id,
            file_name=data.file_name,
            file_size=data.file_size,
            file_id=data.file_id,
            provider_namespace=data.provider_namespace,
            provider_name=data.provider_name,
            provider_location=data.provider_location,
            bucket_name=data.bucket_name,
            object_key=data.object_key,
            object_options=data.object_options,
            resumable_id=data.resumable_id,
            resumable=data.resumable,
            file_path=data.file_path,
            part_list=list(data.part_list),
            part_data=data.part_data,
        )
        try:
            upload = await self.store.insert(upload)
        except DuplicateIdentity:
            DUPLICATE_IDENTITIES.inc()
            logger.info("upload %s already exists", upload.id)
            raise

        UPLOADS_CREATED.labels(provider=upload.provider_name).inc()
        logger.info(
            "created upload %s for user %s (%s/%s, resumable=%s)",
            upload.id,
            upload.user_id,
            upload.bucket_name,
            upload.object_key,
            upload.resumable,
        )
        return upload

    async def update_entry(
        self, record: RecordOrId, params: Mapping[str, Any]
    ) -> UploadModel:
        upload_id = _upload_id(record)
        changes = _validate(UploadChanges, params, upload_id).model_dump(
            exclude_unset=True
        )

        def merge(upload: UploadModel) -> None:
            if "part_list" in changes:
                stored = list(upload.part_list or [])
                incoming = list(changes["part_list"])
                if incoming[: len(stored)] != stored:
                    raise ValidationFailure(
                        "part_list can only be appended to", upload_id=upload.id
                    )
            resumable = changes.get("resumable", upload.resumable)
            resumable_id = changes.get("resumable_id", upload.resumable_id)
            if resumable_id and not resumable:
                raise ValidationFailure(
                    "resumable_id set on a non-resumable upload", upload_id=upload.id
                )
            for name, value in changes.items():
                setattr(upload, name, value)

        upload = await self._apply(upload_id, merge)
        UPDATES.labels(kind="merge").inc()
        logger.debug("updated upload %s: %s", upload_id, sorted(changes))
        return upload

    async def add_part(
        self,
        record: RecordOrId,
        part: Any,
        part_data: Optional[Dict[str, Any]] = None,
    ) -> UploadModel:
        """Append a completed chunk to ``part_list``.

        The append happens against the row as currently stored, so chunks
        finishing in parallel all land in the list.
        """
        upload_id = _upload_id(record)

        def append(upload: UploadModel) -> None:
            upload.part_list = [*(upload.part_list or []), part]
            if part_data is not None:
                upload.part_data = dict(part_data)

        upload = await self._apply(upload_id, append)
        UPDATES.labels(kind="part").inc()
        logger.debug("upload %s now has %d part(s)", upload_id, len(upload.part_list))
        return upload

    async def remove_entry(self, record: RecordOrId) -> None:
        upload_id = _upload_id(record)
        removed = await self.store.delete(upload_id)
        REMOVALS.labels(result="removed" if removed else "absent").inc()
        if removed:
            logger.info("removed upload %s", upload_id)
        else:
            logger.debug("upload %s was already gone", upload_id)

    async def _apply(self, upload_id: str, mutate: Mutation) -> UploadModel:
        attempt = 0
        while True:
            attempt += 1
            try:
                upload = await self.store.update(upload_id, mutate)
            except StaleDataError:
                UPDATE_CONFLICTS.inc()
                if attempt >= self.update_retries:
                    raise
                logger.warning(
                    "concurrent update on %s, retrying (%d/%d)",
                    upload_id,
                    attempt,
                    self.update_retries,
                )
                continue
            if upload is None:
                raise RecordNotFound(f"upload {upload_id} not found", upload_id=upload_id)
            return upload
