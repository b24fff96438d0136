import abc
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, StatementError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import DuplicateIdentity, ValidationFailure
from .models import UploadModel

logger = logging.getLogger(__name__)

Mutation = Callable[[UploadModel], None]


def _utc(value: datetime) -> datetime:
    # naive timestamps are taken to be UTC, as the database writes them
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _refused_input(e: StatementError) -> bool:
    """True when the database or driver refused a value, not the connection."""
    if isinstance(e, DBAPIError):
        return isinstance(e, (DataError, IntegrityError))
    return True


def _rejected(e: StatementError, upload_id: str) -> ValidationFailure:
    logger.debug("store rejected %s: %s", upload_id, e.orig)
    return ValidationFailure(
        f"upload {upload_id} rejected by the store: {e.orig}", upload_id=upload_id
    )


class RecordStore(abc.ABC):
    """Durable keyed storage for upload records.

    Implementations enforce primary-key uniqueness atomically at insert and
    maintain ``created_at``/``updated_at`` themselves.
    """

    @abc.abstractmethod
    async def insert(self, upload: UploadModel) -> UploadModel:
        """Persist a new record or raise DuplicateIdentity."""

    @abc.abstractmethod
    async def find_by_id(self, upload_id: str) -> Optional[UploadModel]: ...

    @abc.abstractmethod
    async def find_by_fields(self, fields: Mapping[str, Any]) -> Optional[UploadModel]: ...

    @abc.abstractmethod
    async def update(self, upload_id: str, mutate: Mutation) -> Optional[UploadModel]:
        """Apply ``mutate`` to the current stored row and persist it.

        Returns None when the record no longer exists.
        """

    @abc.abstractmethod
    async def delete(self, upload_id: str) -> bool:
        """Delete by id; False when there was nothing to delete."""

    @abc.abstractmethod
    async def scan_all(self) -> List[UploadModel]: ...

    async def created_before(self, cutoff: datetime) -> List[UploadModel]:
        cutoff = _utc(cutoff)
        return [u for u in await self.scan_all() if _utc(u.created_at) < cutoff]


class SqlAlchemyRecordStore(RecordStore):
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def insert(self, upload: UploadModel) -> UploadModel:
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    session.add(upload)
                    await session.flush()
                    await session.refresh(upload)
        except IntegrityError as e:
            # primary key is the upload fingerprint; the constraint decides races
            logger.debug("insert of %s rejected: %s", upload.id, e.orig)
            raise DuplicateIdentity(
                f"upload {upload.id} already exists", upload_id=upload.id
            ) from e
        except StatementError as e:
            if not _refused_input(e):
                raise
            raise _rejected(e, upload.id) from e
        return upload

    async def find_by_id(self, upload_id: str) -> Optional[UploadModel]:
        async with self._sessionmaker() as session:
            return await session.get(UploadModel, upload_id)

    async def find_by_fields(self, fields: Mapping[str, Any]) -> Optional[UploadModel]:
        stmt = select(UploadModel)
        for name, value in fields.items():
            stmt = stmt.where(getattr(UploadModel, name) == value)
        async with self._sessionmaker() as session:
            res = await session.execute(stmt.limit(1))
            return res.scalar_one_or_none()

    async def update(self, upload_id: str, mutate: Mutation) -> Optional[UploadModel]:
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    res = await session.execute(
                        select(UploadModel)
                        .where(UploadModel.id == upload_id)
                        .with_for_update()
                    )
                    upload = res.scalar_one_or_none()
                    if upload is None:
                        return None
                    mutate(upload)
                    await session.flush()
                    await session.refresh(upload)
        except StatementError as e:
            if not _refused_input(e):
                raise
            raise _rejected(e, upload_id) from e
        return upload

    async def delete(self, upload_id: str) -> bool:
        async with self._sessionmaker() as session:
            async with session.begin():
                res = await session.execute(
                    delete(UploadModel).where(UploadModel.id == upload_id)
                )
        return res.rowcount > 0

    async def scan_all(self) -> List[UploadModel]:
        async with self._sessionmaker() as session:
            res = await session.execute(select(UploadModel))
            return list(res.scalars().all())

    async def created_before(self, cutoff: datetime) -> List[UploadModel]:
        async with self._sessionmaker() as session:
            res = await session.execute(
                select(UploadModel)
                .where(UploadModel.created_at < cutoff)
                .order_by(UploadModel.created_at)
            )
            return list(res.scalars().all())
