"""Tests for the Job Store: claims, partial writes and terminal writes."""

import pytest

from fakes import FakeRest
from wardrobe_gateway.errors import InvalidTransition, JobConflict, JobNotFound
from wardrobe_gateway.job_store import MemoryJobStore, SupabaseJobStore
from wardrobe_gateway.jobs import JobStatus


@pytest.fixture(params=["memory", "supabase"])
def store(request):
    if request.param == "memory":
        return MemoryJobStore()
    return SupabaseJobStore(FakeRest())


@pytest.mark.asyncio
async def test_claim_moves_queued_to_running(store):
    job = await store.create("u1", "auto_tag", {"wardrobe_item_id": "i1"})
    assert job.status is JobStatus.QUEUED

    claimed = await store.claim(job.id, "u1")
    assert claimed.status is JobStatus.RUNNING
    assert (await store.get(job.id)).status is JobStatus.RUNNING


@pytest.mark.asyncio
async def test_second_claim_conflicts(store):
    job = await store.create("u1", "auto_tag", {})
    await store.claim(job.id, "u1")
    with pytest.raises(JobConflict, match="Job already running"):
        await store.claim(job.id, "u1")


@pytest.mark.asyncio
async def test_claim_of_finished_job_conflicts(store):
    job = await store.create("u1", "auto_tag", {})
    await store.claim(job.id, "u1")
    await store.complete(job.id, {"ok": True})
    with pytest.raises(JobConflict, match="succeeded"):
        await store.claim(job.id, "u1")


@pytest.mark.asyncio
async def test_claim_scoped_by_owner(store):
    job = await store.create("u1", "auto_tag", {})
    with pytest.raises(JobNotFound):
        await store.claim(job.id, "someone-else")
    with pytest.raises(JobNotFound):
        await store.claim("no-such-job", "u1")


@pytest.mark.asyncio
async def test_partial_write_only_while_running(store):
    job = await store.create("u1", "wardrobe_item_generate", {})
    assert not await store.write_partial(job.id, {"image_id": "early"})

    await store.claim(job.id, "u1")
    assert await store.write_partial(job.id, {"image_id": "img-1"})
    current = await store.get(job.id)
    assert current.status is JobStatus.RUNNING
    assert current.result == {"image_id": "img-1"}

    await store.complete(job.id, {"image_id": "img-1", "tags": []})
    assert not await store.write_partial(job.id, {"image_id": "late"})
    assert (await store.get(job.id)).result == {"image_id": "img-1", "tags": []}


@pytest.mark.asyncio
async def test_fail_records_error_verbatim(store):
    job = await store.create("u1", "headshot_generate", {})
    await store.claim(job.id, "u1")
    failed = await store.fail(job.id, "Generation blocked: SAFETY")
    assert failed.status is JobStatus.FAILED
    assert failed.error == "Generation blocked: SAFETY"


@pytest.mark.asyncio
async def test_terminal_write_requires_running(store):
    job = await store.create("u1", "auto_tag", {})
    with pytest.raises(InvalidTransition):
        await store.complete(job.id, {})
    await store.claim(job.id, "u1")
    await store.fail(job.id, "boom")
    with pytest.raises(InvalidTransition):
        await store.complete(job.id, {})


@pytest.mark.asyncio
async def test_lost_claim_race_conflicts():
    class RacingRest(FakeRest):
        async def update(self, table, values, filters):
            # Another dispatch claimed the row after our read
            for row in self.rows(table):
                row["status"] = "running"
            return await super().update(table, values, filters)

    store = SupabaseJobStore(RacingRest())
    job = await store.create("u1", "auto_tag", {})
    with pytest.raises(JobConflict):
        await store.claim(job.id, "u1")


@pytest.mark.asyncio
async def test_supabase_updates_are_conditioned_on_status():
    rest = FakeRest()
    store = SupabaseJobStore(rest)
    job = await store.create("u1", "auto_tag", {})
    await store.claim(job.id, "u1")
    await store.write_partial(job.id, {"x": 1})
    await store.complete(job.id, {"x": 2})

    updates = [call for call in rest.calls if call[0] == "update"]
    assert updates[0][3]["status"] == "eq.queued"
    assert all(call[3]["status"] == "eq.running" for call in updates[1:])
