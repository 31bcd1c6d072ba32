from .http_client import HttpClient, HttpResponse
from .fetcher import fetch, smart_fetch, needs_rendering
from .smart_extract import extract_smartly
from .score_calculator import score_and_summarize, grade_for
from .analysis_job import AnalysisJob, JobRunner, job_status_view
