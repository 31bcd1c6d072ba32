"""
Analyze router — create analysis jobs, poll them, fetch finished analyses.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..models import AnalyzeRequest
from ..services.analysis_job import JobRunner, job_status_view
from ..utils.store import AnalysisStore

router = APIRouter(prefix="/api", tags=["Analysis"])


def get_store(request: Request) -> AnalysisStore:
    return request.app.state.store


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner


@router.post("/analyze", status_code=202)
async def analyze(
    req: AnalyzeRequest,
    sync: bool = Query(False, description="Wait for the analysis to finish before responding"),
    runner: JobRunner = Depends(get_runner),
    store: AnalysisStore = Depends(get_store),
):
    job_id = await runner.submit(req.url, wait=sync)
    if not sync:
        return {"job_id": job_id, "status": "pending"}

    job = await store.get_job(job_id)
    analysis = await store.get_analysis(job["analysis_id"]) if job.get("analysis_id") else None
    return {**job_status_view(job, analysis), "job_id": job_id, "analysis": analysis}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, store: AnalysisStore = Depends(get_store)):
    job = await store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    analysis = await store.get_analysis(job["analysis_id"]) if job.get("analysis_id") else None
    return job_status_view(job, analysis)


@router.get("/analyses/{analysis_id}")
async def get_analysis(analysis_id: str, store: AnalysisStore = Depends(get_store)):
    analysis = await store.get_analysis(analysis_id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return analysis
