"""
agent_pulse/utils/store.py — persistence for analysis jobs and analyses.
Falls back to in-memory dicts when MongoDB is unavailable.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean(doc: Optional[dict]) -> Optional[dict]:
    if doc and "_id" in doc:
        doc.pop("_id")
    return doc


class AnalysisStore:
    """
    Single-row reads and writes over two collections, `analysis_jobs` and
    `analyses`. Timestamps are ISO-8601 UTC strings, so lexical comparison is
    chronological.
    """

    def __init__(self, db=None):
        self.db = db
        self._jobs: Dict[str, dict] = {}
        self._analyses: Dict[str, dict] = {}

    # ── Jobs ──────────────────────────────────────────────────────────────────

    async def insert_job(self, fields: Dict[str, Any]) -> str:
        job_id = fields.get("id") or str(uuid.uuid4())
        doc = {**fields, "id": job_id}
        doc.setdefault("created_at", utc_now_iso())
        if self.db is not None:
            await self.db.analysis_jobs.insert_one(dict(doc))
        else:
            self._jobs[job_id] = doc
        return job_id

    async def update_job(self, job_id: str, fields: Dict[str, Any]) -> None:
        if self.db is not None:
            await self.db.analysis_jobs.update_one({"id": job_id}, {"$set": fields})
            return
        if job_id not in self._jobs:
            raise KeyError(f"Unknown job {job_id}")
        self._jobs[job_id].update(fields)

    async def get_job(self, job_id: str) -> Optional[dict]:
        if self.db is not None:
            return _clean(await self.db.analysis_jobs.find_one({"id": job_id}))
        job = self._jobs.get(job_id)
        return dict(job) if job else None

    # ── Analyses ──────────────────────────────────────────────────────────────

    async def insert_analysis(self, fields: Dict[str, Any]) -> str:
        analysis_id = fields.get("id") or str(uuid.uuid4())
        doc = {**fields, "id": analysis_id}
        doc.setdefault("created_at", utc_now_iso())
        if self.db is not None:
            await self.db.analyses.insert_one(dict(doc))
        else:
            self._analyses[analysis_id] = doc
        return analysis_id

    async def get_analysis(self, analysis_id: str) -> Optional[dict]:
        if self.db is not None:
            return _clean(await self.db.analyses.find_one({"id": analysis_id}))
        analysis = self._analyses.get(analysis_id)
        return dict(analysis) if analysis else None

    async def query_recent_analysis_by_domain(self, domain: str, since: str) -> Optional[dict]:
        """Latest analysis of `domain` created at or after `since`, if any."""
        if self.db is not None:
            doc = await self.db.analyses.find_one(
                {"domain": domain, "created_at": {"$gte": since}},
                sort=[("created_at", -1)],
            )
            return _clean(doc)
        matches = [
            a for a in self._analyses.values()
            if a.get("domain") == domain and a.get("created_at", "") >= since
        ]
        if not matches:
            return None
        return dict(max(matches, key=lambda a: a.get("created_at", "")))
