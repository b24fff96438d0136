from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio

from upload_ledger.retention import older_than, sweep_stale
from upload_ledger.store import RecordStore

CUTOFF = datetime(2026, 1, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def aged_uploads(ledger, backdate, upload_params):
    """Three uploads created one second before, at, and after CUTOFF."""
    uploads = {}
    for offset in (-1, 0, 1):
        upload = await ledger.add_entry({**upload_params, "file_size": 100 + offset})
        await backdate(upload.id, CUTOFF + timedelta(seconds=offset))
        uploads[offset] = upload
    return uploads


async def test_older_than_is_strict(ledger, aged_uploads):
    stale = await ledger.older_than(CUTOFF)

    assert [u.id for u in stale] == [aged_uploads[-1].id]


async def test_older_than_does_not_delete(ledger, store, aged_uploads):
    await older_than(store, CUTOFF + timedelta(days=1))

    assert len(await ledger.all_uploads()) == 3


async def test_sweep_removes_stale_records(ledger, aged_uploads, residence):
    report = await sweep_stale(ledger, CUTOFF + timedelta(seconds=1))

    assert sorted(report.removed) == sorted([aged_uploads[-1].id, aged_uploads[0].id])
    assert report.failed == {}
    residence.destroy.assert_not_awaited()
    remaining = await ledger.all_uploads()
    assert [u.id for u in remaining] == [aged_uploads[1].id]


async def test_cleanup_sweep_reports_unresolved(ledger, coordinator, backdate, residence, upload_params):
    ours = await ledger.add_entry(upload_params)
    foreign = await ledger.add_entry({**upload_params, "file_size": 7, "provider_name": "azure"})
    await backdate(ours.id, CUTOFF - timedelta(hours=1))
    await backdate(foreign.id, CUTOFF - timedelta(hours=1))

    report = await sweep_stale(ledger, CUTOFF, policy="cleanup", coordinator=coordinator)

    assert report.removed == [ours.id]
    assert list(report.failed) == [foreign.id]
    residence.destroy.assert_awaited_once()
    assert await ledger.find(foreign.id) is not None


async def test_cleanup_sweep_needs_coordinator(ledger):
    with pytest.raises(ValueError):
        await sweep_stale(ledger, CUTOFF, policy="cleanup")


class ScanOnlyStore(RecordStore):
    """Store that only knows how to list everything, with naive timestamps."""

    def __init__(self, uploads):
        self.uploads = uploads

    async def insert(self, upload):
        raise NotImplementedError

    async def find_by_id(self, upload_id):
        return None

    async def find_by_fields(self, fields):
        return None

    async def update(self, upload_id, mutate):
        return None

    async def delete(self, upload_id):
        return False

    async def scan_all(self):
        return list(self.uploads)


async def test_scan_fallback_mixes_naive_and_aware_timestamps():
    store = ScanOnlyStore(
        [
            SimpleNamespace(id="old", created_at=CUTOFF - timedelta(seconds=1)),
            SimpleNamespace(id="edge", created_at=CUTOFF),
            SimpleNamespace(id="new", created_at=CUTOFF.replace(tzinfo=timezone.utc) + timedelta(seconds=1)),
        ]
    )

    stale = await older_than(store, CUTOFF.replace(tzinfo=timezone.utc))

    assert [u.id for u in stale] == ["old"]
    assert [u.id for u in await older_than(store, CUTOFF)] == ["old"]
