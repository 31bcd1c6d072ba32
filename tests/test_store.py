"""
AnalysisStore: in-memory behaviour and the MongoDB calls it makes.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from agent_pulse.utils.store import AnalysisStore


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_job_lifecycle(self, store):
        job_id = await store.insert_job({"url": "https://shop.example.com", "status": "pending"})
        await store.update_job(job_id, {"status": "scraping"})

        job = await store.get_job(job_id)

        assert job["status"] == "scraping"
        assert job["id"] == job_id
        assert job["created_at"]

    @pytest.mark.asyncio
    async def test_unknown_job_update_raises(self, store):
        with pytest.raises(KeyError):
            await store.update_job("missing", {"status": "failed"})

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, store):
        analysis_id = await store.insert_analysis({"domain": "a.com", "grade": "Optimized"})
        copy = await store.get_analysis(analysis_id)
        copy["grade"] = "changed"
        assert (await store.get_analysis(analysis_id))["grade"] == "Optimized"

    @pytest.mark.asyncio
    async def test_recent_analysis_by_domain(self, store):
        await store.insert_analysis({"domain": "a.com", "created_at": "2026-01-01T00:00:00+00:00", "n": 1})
        await store.insert_analysis({"domain": "a.com", "created_at": "2026-01-03T00:00:00+00:00", "n": 2})
        await store.insert_analysis({"domain": "b.com", "created_at": "2026-01-04T00:00:00+00:00", "n": 3})

        latest = await store.query_recent_analysis_by_domain("a.com", "2026-01-02T00:00:00+00:00")
        assert latest["n"] == 2
        assert await store.query_recent_analysis_by_domain("a.com", "2026-02-01T00:00:00+00:00") is None


class TestMongoStore:

    @pytest.fixture
    def mongo(self):
        db = MagicMock()
        for name in ("analysis_jobs", "analyses"):
            collection = getattr(db, name)
            collection.insert_one = AsyncMock()
            collection.update_one = AsyncMock()
            collection.find_one = AsyncMock(return_value={"_id": "oid", "id": "x", "domain": "a.com"})
        return db

    @pytest.mark.asyncio
    async def test_insert_and_update_job(self, mongo):
        store = AnalysisStore(mongo)
        job_id = await store.insert_job({"id": "j1", "url": "https://a.com"})
        await store.update_job(job_id, {"status": "completed"})

        assert mongo.analysis_jobs.insert_one.await_args.args[0]["id"] == "j1"
        mongo.analysis_jobs.update_one.assert_awaited_once_with({"id": "j1"}, {"$set": {"status": "completed"}})

    @pytest.mark.asyncio
    async def test_reads_strip_object_id(self, mongo):
        store = AnalysisStore(mongo)
        doc = await store.get_analysis("x")
        assert "_id" not in doc

    @pytest.mark.asyncio
    async def test_recent_query_sorts_newest_first(self, mongo):
        store = AnalysisStore(mongo)
        await store.query_recent_analysis_by_domain("a.com", "2026-01-01")
        mongo.analyses.find_one.assert_awaited_once_with(
            {"domain": "a.com", "created_at": {"$gte": "2026-01-01"}},
            sort=[("created_at", -1)],
        )
