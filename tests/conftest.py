"""Shared fixtures: a throwaway SQLite ledger and fake storage residences."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import update

from upload_ledger.cleanup import CleanupCoordinator
from upload_ledger.database import close_engine, create_tables, make_engine, make_sessionmaker
from upload_ledger.ledger import UploadLedger
from upload_ledger.models import UploadModel
from upload_ledger.residence import ResidenceRegistry
from upload_ledger.store import SqlAlchemyRecordStore


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    yield engine
    await close_engine(engine)


@pytest.fixture
def sessionmaker(db_engine):
    return make_sessionmaker(db_engine)


@pytest.fixture
def store(sessionmaker):
    return SqlAlchemyRecordStore(sessionmaker)


@pytest.fixture
def ledger(store):
    return UploadLedger(store)


@pytest.fixture
def residence():
    """Residence double for the 'amazon' provider in the global namespace."""
    fake = AsyncMock()
    fake.name = "amazon"
    fake.location = None
    return fake


@pytest.fixture
def registry(residence):
    registry = ResidenceRegistry()
    registry.register(residence)
    return registry


@pytest.fixture
def coordinator(ledger, registry):
    return CleanupCoordinator(ledger, registry)


@pytest.fixture
def upload_params():
    return {
        "user_id": "u1",
        "file_id": "abc",
        "file_name": "x.png",
        "file_size": 100,
        "provider_name": "amazon",
        "bucket_name": "b",
        "object_key": "k",
    }


@pytest.fixture
def backdate(sessionmaker):
    """Overwrite created_at so retention tests control record age."""

    async def _backdate(upload_id: str, when: datetime) -> None:
        async with sessionmaker() as session:
            async with session.begin():
                await session.execute(
                    update(UploadModel)
                    .where(UploadModel.id == upload_id)
                    .values(created_at=when)
                )

    return _backdate
