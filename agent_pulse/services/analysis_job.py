"""
agent_pulse/services/analysis_job.py
The analysis job state machine:

    pending → scraping → analyzing → scoring → completed
                                  ↘ failed (from any non-terminal state)

One linear procedure drives every transition. Each step's label is persisted
before its work begins so a status poll always sees what is running. Every
check is total; only the outer handler in AnalysisJob.run marks a job failed.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set
from urllib.parse import urlparse

from ..config import Settings, get_settings
from ..exceptions import ContentAcquisitionError, FetchError
from ..models import (
    TERMINAL_JOB_STATUSES, Analysis, CheckStatus, ExtractedSchema, Job, JobError, JobProgress, JobStatus,
)
from ..utils.store import AnalysisStore, utc_now_iso
from .discovery_checks import (
    check_bot_access, check_faq_schema, check_llms_txt, check_product_schema, check_server_response_time,
    check_sitemap, check_website_schema, measure_ttfb, site_origin,
)
from .distribution_checks import (
    build_legacy_distribution_checks, calculate_protocol_readiness, detect_platform,
)
from .feeds import discover_feeds
from .fetcher import fetch, smart_fetch
from .http_client import HttpClient
from .page_speed import check_page_speed, get_page_speed_metrics
from .recommendations import generate_recommendations
from .renderer import Renderer
from .schema_extract import extract_json_ld, find_organization_schema
from .score_calculator import score_and_summarize
from .smart_extract import extract_smartly
from .transaction_checks import check_https, check_offer_schema, check_payment_methods, check_ucp_compliance
from .trust_checks import check_organization, check_return_policy, check_trust_signals

logger = logging.getLogger(__name__)

TOTAL_STEPS = 5


class AnalysisJob:
    """Runs one job to a terminal state. All I/O goes through `client` and `store`."""

    def __init__(
        self,
        store: AnalysisStore,
        client: HttpClient,
        settings: Optional[Settings] = None,
        renderer: Optional[Renderer] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.client = client
        self.settings = settings or get_settings()
        self.renderer = renderer
        self.log = log or logger

    async def _transition(self, job_id: str, status: JobStatus, step: int, label: str, **extra) -> None:
        progress = JobProgress(step=step, total_steps=TOTAL_STEPS, current_check=label)
        await self.store.update_job(job_id, {
            "status": status.value,
            "progress": progress.model_dump(),
            **extra,
        })
        self.log.info(f"[job {job_id}] {status.value} ({step}/{TOTAL_STEPS}): {label}")

    async def _fetch_product_page(self, url: str) -> Optional[str]:
        result = await smart_fetch(
            self.client, url, renderer=self.renderer,
            timeout=self.settings.fetch_timeout_seconds, log=self.log,
        )
        return result.html

    async def _fetch_homepage_schemas(self, url: str) -> Optional[List[ExtractedSchema]]:
        homepage = site_origin(url) + "/"
        try:
            result = await fetch(self.client, homepage, timeout=self.settings.fetch_timeout_seconds)
        except FetchError as e:
            self.log.warning(f"[job] homepage fetch failed for {homepage}: {e}")
            return None
        if result.status_code >= 400:
            return None
        return extract_json_ld(result.html)

    async def run(self, job_id: str, url: str) -> Optional[str]:
        """Run the pipeline; returns the analysis id, or None when the job failed."""
        s = self.settings
        started = time.monotonic()
        parsed = urlparse(url)
        domain = parsed.hostname or ""
        origin = site_origin(url)

        try:
            # ── Step 1: acquire content ──────────────────────────────────────
            await self._transition(
                job_id, JobStatus.SCRAPING, 1, "Fetching page content...", started_at=utc_now_iso(),
            )
            ttfb_ms = await measure_ttfb(self.client, url, timeout=s.ttfb_timeout_seconds, log=self.log)
            fetch_started = time.monotonic()
            page = await smart_fetch(
                self.client, url, renderer=self.renderer, timeout=s.fetch_timeout_seconds, log=self.log,
            )
            fetch_ms = int((time.monotonic() - fetch_started) * 1000)
            if len(page.html) < s.min_content_length:
                raise ContentAcquisitionError(
                    f"Page content too short to analyze ({len(page.html)} chars)"
                )
            html = page.html

            # ── Step 2: schemas ──────────────────────────────────────────────
            await self._transition(job_id, JobStatus.ANALYZING, 2, "Extracting schemas...")
            smart = await extract_smartly(html, url, fetch_product_page=self._fetch_product_page, log=self.log)
            schemas = smart.schemas
            all_schemas = schemas + (smart.category_page_schemas or [])
            product = smart.product_validation.schema_data

            # ── Step 3: checks ───────────────────────────────────────────────
            await self._transition(job_id, JobStatus.ANALYZING, 3, "Running checks...")
            bot_access, sitemap, llms, speed = await asyncio.gather(
                check_bot_access(self.client, url, timeout=s.robots_timeout_seconds, log=self.log),
                check_sitemap(self.client, url, timeout=s.sitemap_timeout_seconds, log=self.log),
                check_llms_txt(self.client, url, timeout=s.llms_timeout_seconds, log=self.log),
                get_page_speed_metrics(
                    self.client, url, domain,
                    api_key=s.google_pagespeed_api_key,
                    store=self.store,
                    cache_hours=s.pagespeed_cache_hours,
                    timeout=s.pagespeed_timeout_seconds,
                    log=self.log,
                ),
            )

            # Organization usually lives on the homepage only
            org_schemas, org_from_homepage = all_schemas, False
            site_schemas = all_schemas
            if find_organization_schema(all_schemas) is None and not smart.page_type.is_homepage:
                homepage_schemas = await self._fetch_homepage_schemas(url)
                if homepage_schemas:
                    site_schemas = all_schemas + homepage_schemas
                    if find_organization_schema(homepage_schemas) is not None:
                        org_schemas, org_from_homepage = homepage_schemas, True

            d2 = check_product_schema(smart.product_validation)
            d5, website_validation = check_website_schema(site_schemas)
            d6, faq_validation = check_faq_schema(all_schemas)
            d7 = check_server_response_time(ttfb_ms)
            n1 = check_page_speed(speed)
            t1, offer_validation = check_offer_schema(schemas, product, log=self.log)
            t2 = check_https(url)
            t3, _ = check_ucp_compliance(schemas, product, log=self.log)
            r1, org_validation = check_organization(org_schemas, from_homepage=org_from_homepage, log=self.log)
            r2, policy_validation = check_return_policy(all_schemas)
            r3 = check_trust_signals(url, all_schemas)

            # ── Step 4: distribution signals ─────────────────────────────────
            await self._transition(job_id, JobStatus.ANALYZING, 4, "Checking distribution signals...")
            platform = detect_platform(html, domain)
            feeds = await discover_feeds(
                self.client, origin, html, bot_access.robots_txt, platform.platform,
                timeout=s.feed_timeout_seconds, log=self.log,
            )
            primary = feeds.primary_feed
            has_feed = primary is not None and primary.accessible
            readiness = await calculate_protocol_readiness(
                self.client, origin, html,
                has_feed=has_feed,
                has_required_fields=has_feed and primary.has_required_fields,
                has_product=smart.product_validation.found,
                has_offer=smart.schema_quality.has_offer,
                has_gtin=smart.schema_quality.has_gtin,
                timeout=s.manifest_timeout_seconds,
                log=self.log,
            )
            t4 = check_payment_methods(html, platform)
            legacy = build_legacy_distribution_checks(platform, smart.schema_quality, feeds, readiness)

            # ── Step 5: score + persist ──────────────────────────────────────
            await self._transition(job_id, JobStatus.SCORING, 5, "Calculating score...")
            checks = [
                bot_access.check, d2, sitemap, llms, d5, d6, d7,
                n1,
                t1, t2, t3, t4,
                r1, r2, r3,
                *legacy,
            ]
            scored = score_and_summarize(checks)
            recommendations = generate_recommendations(checks, {
                "D2": smart.product_validation,
                "D5": website_validation,
                "D6": faq_validation,
                "T1": offer_validation,
                "T3": offer_validation,
                "R1": org_validation,
                "R2": policy_validation,
            })

            analysis = Analysis(
                job_id=job_id,
                url=url,
                domain=domain,
                total_score=scored["total_score"],
                max_score=scored["max_score"],
                normalized_score=scored["normalized_score"],
                grade=scored["grade"],
                category_scores=scored["category_scores"],
                checks=checks,
                recommendations=recommendations,
                summary=scored["summary"],
                platform=platform,
                feeds_found=feeds.feeds,
                primary_feed=primary,
                protocol_readiness=readiness,
                scrape_metadata={
                    "status_code": page.status_code,
                    "content_type": page.content_type,
                    "final_url": page.final_url,
                    "redirected": page.redirected,
                    "render_used": page.render_used,
                    "render_reason": page.render_reason,
                    "fetch_duration_ms": fetch_ms,
                    "ttfb_ms": ttfb_ms,
                    "page_metadata": page.page_metadata,
                    "page_type": smart.page_type.model_dump(mode="json"),
                    "schema_source_url": smart.source_url,
                    "checked_product_page": smart.checked_product_page,
                    "product_page_url": smart.product_page_url,
                    "extraction_message": smart.message,
                },
                analysis_duration_ms=int((time.monotonic() - started) * 1000),
                created_at=utc_now_iso(),
            )
            analysis_id = await self.store.insert_analysis(analysis.model_dump(mode="json", exclude={"id"}))
            await self.store.update_job(job_id, {
                "status": JobStatus.COMPLETED.value,
                "analysis_id": analysis_id,
                "completed_at": utc_now_iso(),
            })
            self.log.info(
                f"[job {job_id}] completed: {scored['total_score']}/{scored['max_score']}"
                f" → {scored['normalized_score']} ({scored['grade']})"
            )
            return analysis_id

        except Exception as e:
            self.log.exception(f"[job {job_id}] failed: {e}")
            error = JobError(code=type(e).__name__, message=str(e) or type(e).__name__, retryable=True)
            await self.store.update_job(job_id, {
                "status": JobStatus.FAILED.value,
                "error": error.model_dump(),
                "completed_at": utc_now_iso(),
            })
            return None


# ── Runner ─────────────────────────────────────────────────────────────────────

class JobRunner:
    """
    Creates jobs and runs them, either awaited in the caller's task or
    detached as a supervised background task.
    """

    def __init__(
        self,
        store: AnalysisStore,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], HttpClient]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.client_factory = client_factory or (lambda: HttpClient(user_agent=self.settings.user_agent))
        self.log = log or logger
        self._tasks: Set[asyncio.Task] = set()

    async def create_job(self, url: str) -> str:
        job = Job(id=str(uuid.uuid4()), url=url, created_at=utc_now_iso())
        return await self.store.insert_job(job.model_dump(mode="json"))

    def _renderer(self, client: HttpClient) -> Optional[Renderer]:
        s = self.settings
        if not s.firecrawl_api_key:
            return None
        return Renderer(
            client, s.firecrawl_api_key, s.firecrawl_api_url,
            wait_for_ms=s.render_wait_for_ms,
            page_timeout_ms=s.render_page_timeout_ms,
            timeout=s.render_timeout_seconds,
        )

    async def run(self, job_id: str, url: str) -> Optional[str]:
        async with self.client_factory() as client:
            job = AnalysisJob(self.store, client, self.settings, renderer=self._renderer(client), log=self.log)
            return await job.run(job_id, url)

    async def _supervised(self, job_id: str, url: str) -> None:
        try:
            await self.run(job_id, url)
        except Exception as e:
            self.log.exception(f"[job {job_id}] background task crashed: {e}")
            await self.store.update_job(job_id, {
                "status": JobStatus.FAILED.value,
                "error": JobError(code=type(e).__name__, message=str(e) or type(e).__name__).model_dump(),
                "completed_at": utc_now_iso(),
            })

    async def submit(self, url: str, wait: bool = False) -> str:
        """Insert a pending job and start it. With wait=True, return only once it is terminal."""
        job_id = await self.create_job(url)
        if wait:
            await self.run(job_id, url)
        else:
            task = asyncio.create_task(self._supervised(job_id, url))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return job_id

    async def drain(self) -> None:
        """Wait for every detached job still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ── Status view ────────────────────────────────────────────────────────────────

def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def job_status_view(job: Dict[str, Any], analysis: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """The shape a status poll returns: progress, timing and, once done, a score summary."""
    start = _parse_iso(job.get("started_at")) or _parse_iso(job.get("created_at"))
    end = _parse_iso(job.get("completed_at")) or datetime.now(timezone.utc)
    elapsed_ms = int((end - start).total_seconds() * 1000) if start else None

    summary = None
    if analysis is not None:
        checks = analysis.get("checks") or []
        summary = {
            "score": analysis.get("normalized_score"),
            "grade": analysis.get("grade"),
            "checks_count": len(checks),
            "issues_count": sum(
                1 for c in checks
                if c.get("max_score", 0) > 0
                and c.get("status") in (CheckStatus.FAIL.value, CheckStatus.PARTIAL.value)
            ),
        }

    status = job.get("status", JobStatus.PENDING.value)
    return {
        "id": job.get("id"),
        "url": job.get("url"),
        "status": status,
        "done": status in {s.value for s in TERMINAL_JOB_STATUSES},
        "progress": job.get("progress") or JobProgress().model_dump(),
        "analysis_id": job.get("analysis_id"),
        "elapsed_ms": elapsed_ms,
        "summary": summary,
        "error": job.get("error"),
    }
