"""
End-to-end job pipeline against a fake network: scoring scenarios, failure
handling, progress reporting and the runner's detached mode.
"""
import pytest
from unittest.mock import AsyncMock

from agent_pulse.models import CheckStatus, JobStatus
from agent_pulse.rubric import CRITICAL_AI_BOTS
from agent_pulse.services.analysis_job import AnalysisJob, JobRunner, job_status_view
from agent_pulse.services.page_speed import PAGESPEED_API_URL

ORIGIN = "https://shop.example.com"
URL = ORIGIN + "/product/blue-widget"

PRODUCT = {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Blue Widget",
    "description": "A sturdy blue widget for everyday use.",
    "image": "https://cdn.example.com/img/widget.jpg",
    "brand": {"@type": "Brand", "name": "Acme"},
    "sku": "W-1",
    "gtin": "4006381333931",
    "offers": {
        "@type": "Offer",
        "price": "19.99",
        "priceCurrency": "USD",
        "availability": "https://schema.org/InStock",
        "seller": {"@type": "Organization", "name": "Acme Shop"},
        "shippingDetails": {
            "@type": "OfferShippingDetails",
            "shippingDestination": {"@type": "DefinedRegion", "addressCountry": "US"},
            "deliveryTime": {"@type": "ShippingDeliveryTime", "transitTime": {"minValue": 2, "maxValue": 5}},
            "shippingRate": {"@type": "MonetaryAmount", "value": 0, "currency": "USD"},
        },
    },
}

RETURN_POLICY = {
    "@context": "https://schema.org",
    "@type": "MerchantReturnPolicy",
    "applicableCountry": "US",
    "merchantReturnDays": 30,
    "returnMethod": "https://schema.org/ReturnByMail",
    "returnFees": "https://schema.org/FreeReturn",
}

ORGANIZATION = {
    "@context": "https://schema.org",
    "@type": "Organization",
    "name": "Acme Shop",
    "url": ORIGIN,
    "logo": ORIGIN + "/logo.png",
    "contactPoint": {"@type": "ContactPoint", "telephone": "+1-555-0100"},
    "address": {"@type": "PostalAddress", "addressCountry": "US"},
    "sameAs": ["https://twitter.com/acmeshop"],
}

WEBSITE = {
    "@context": "https://schema.org",
    "@type": "WebSite",
    "name": "Acme Shop",
    "url": ORIGIN,
    "potentialAction": {
        "@type": "SearchAction",
        "target": ORIGIN + "/search?q={search_term_string}",
        "query-input": "required name=search_term_string",
    },
}

SITEMAP = f"<?xml version='1.0'?><urlset><url><loc>{URL}</loc></url></urlset>"

LIGHTHOUSE = {"lighthouseResult": {
    "categories": {"performance": {"score": 0.95}},
    "audits": {"largest-contentful-paint": {"numericValue": 1400.0}},
}}


@pytest.fixture
def storefront(page_html, responses):
    """Routes for a well-marked-up product page on a store with no robots.txt or llms.txt."""
    html_response, _ = responses
    page = page_html(PRODUCT, RETURN_POLICY, ORGANIZATION, WEBSITE, body="<button>Add to cart</button>")
    return {
        URL: html_response(page),
        ORIGIN + "/sitemap.xml": html_response(SITEMAP, content_type="application/xml"),
    }


async def _run(store, client, settings, url=URL):
    job_id = await JobRunner(store, settings).create_job(url)
    analysis_id = await AnalysisJob(store, client, settings).run(job_id, url)
    return job_id, analysis_id


class TestScoringScenarios:

    @pytest.mark.asyncio
    async def test_well_marked_up_product_page(self, fake_http, storefront, store, settings):
        job_id, analysis_id = await _run(store, fake_http(storefront), settings)

        analysis = await store.get_analysis(analysis_id)
        scores = {c["id"]: (c["status"], c["score"], c["max_score"]) for c in analysis["checks"]}

        assert scores["D1"] == ("pass", 12, 12)
        assert scores["D2"] == ("pass", 13, 13)
        assert scores["D3"] == ("pass", 10, 10)
        assert scores["D4"] == ("fail", 0, 2)
        assert scores["D5"] == ("pass", 3, 3)
        assert scores["D6"] == ("fail", 0, 3)
        assert scores["D7"] == ("pass", 3, 3)
        assert scores["N1"] == ("skipped", 0, 0)
        assert scores["T1"] == ("pass", 15, 15)
        assert scores["T2"] == ("pass", 5, 5)
        assert scores["T3"] == ("pass", 10, 10)
        assert scores["T4"] == ("partial", 1, 5)
        assert scores["R1"] == ("pass", 10, 10)
        assert scores["R2"] == ("pass", 5, 5)
        assert scores["R3"] == ("pass", 7, 7)

        assert analysis["total_score"] == 94
        assert analysis["max_score"] == 103
        assert analysis["normalized_score"] == 91
        assert analysis["grade"] == "Agent-Native"
        assert analysis["platform"]["platform"] == "Custom"
        # No feed, payment rails or manifests: the display-only checks still get fixes
        assert [r["check_id"] for r in analysis["recommendations"]] == ["P3", "P6", "P7", "T4", "D4", "D6"]

        job = await store.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED.value
        assert job["analysis_id"] == analysis_id

    @pytest.mark.asyncio
    async def test_check_order_and_legacy_checks(self, fake_http, storefront, store, settings):
        _, analysis_id = await _run(store, fake_http(storefront), settings)
        analysis = await store.get_analysis(analysis_id)

        assert [c["id"] for c in analysis["checks"]] == [
            "D1", "D2", "D3", "D4", "D5", "D6", "D7", "N1", "T1", "T2", "T3", "T4", "R1", "R2", "R3",
            "P1", "P2", "P3", "P4", "P5", "P6", "P7",
        ]
        legacy = [c for c in analysis["checks"] if c["id"].startswith("P")]
        assert all(c["max_score"] == 0 for c in legacy)
        assert analysis["category_scores"]["distribution"] == {"score": 0, "max_score": 0}
        metadata = analysis["scrape_metadata"]
        assert metadata["render_used"] is False
        assert metadata["redirected"] is False
        assert metadata["page_metadata"] == {}
        assert 0 <= metadata["ttfb_ms"] < 400
        assert analysis["protocol_readiness"]["answer_engines"]["status"] == "ready"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("robots", [
        "User-agent: *\nDisallow: /",
        "\n\n".join(f"User-agent: {bot}\nDisallow: /" for bot in CRITICAL_AI_BOTS),
    ], ids=["wildcard-group", "per-bot-groups"])
    async def test_blocked_bots_drop_grade(self, fake_http, storefront, store, settings, responses, robots):
        html_response, _ = responses
        storefront[ORIGIN + "/robots.txt"] = html_response(robots, content_type="text/plain")

        _, analysis_id = await _run(store, fake_http(storefront), settings)
        analysis = await store.get_analysis(analysis_id)

        d1 = analysis["checks"][0]
        assert (d1["id"], d1["status"], d1["score"]) == ("D1", "fail", 0)
        assert d1["data"]["blocked_bots"] == list(CRITICAL_AI_BOTS)
        assert analysis["total_score"] == 82
        assert analysis["normalized_score"] == 80
        assert analysis["grade"] == "Optimized"
        assert analysis["recommendations"][0]["check_id"] == "D1"

    @pytest.mark.asyncio
    async def test_measured_page_speed_enters_the_score(self, fake_http, storefront, store, settings, responses):
        _, json_response = responses
        storefront[PAGESPEED_API_URL] = json_response(LIGHTHOUSE)
        settings.google_pagespeed_api_key = "test-key"

        _, analysis_id = await _run(store, fake_http(storefront), settings)
        analysis = await store.get_analysis(analysis_id)

        n1 = next(c for c in analysis["checks"] if c["id"] == "N1")
        assert (n1["status"], n1["score"], n1["max_score"]) == ("pass", 15, 15)
        assert analysis["total_score"] == 109
        assert analysis["max_score"] == 118
        assert analysis["normalized_score"] == 92

    @pytest.mark.asyncio
    async def test_unmeasured_beats_poorly_measured(self, fake_http, storefront, store, settings, responses):
        _, json_response = responses
        _, skipped_id = await _run(store, fake_http(storefront), settings)

        slow = {"lighthouseResult": {"categories": {"performance": {"score": 0.4}}, "audits": {}}}
        storefront[PAGESPEED_API_URL] = json_response(slow)
        settings.google_pagespeed_api_key = "test-key"
        _, measured_id = await _run(store, fake_http(storefront), settings)

        skipped = await store.get_analysis(skipped_id)
        measured = await store.get_analysis(measured_id)
        assert measured["total_score"] == 97
        assert measured["normalized_score"] == 82
        assert skipped["normalized_score"] > measured["normalized_score"]

    @pytest.mark.asyncio
    async def test_organization_found_on_homepage(self, fake_http, page_html, storefront, store, settings, responses):
        html_response, _ = responses
        storefront[URL] = html_response(page_html(PRODUCT, RETURN_POLICY, body="<button>Add to cart</button>"))
        storefront[ORIGIN + "/"] = html_response(page_html(ORGANIZATION, WEBSITE))

        _, analysis_id = await _run(store, fake_http(storefront), settings)
        analysis = await store.get_analysis(analysis_id)
        checks = {c["id"]: c for c in analysis["checks"]}

        assert checks["R1"]["score"] == 10
        assert checks["R1"]["details"].endswith("(found on homepage)")
        assert checks["D5"]["score"] == 3


class TestFailures:

    @pytest.mark.asyncio
    async def test_malformed_link_does_not_fail_job(self, fake_http, page_html, storefront, store, settings, responses):
        html_response, _ = responses
        body = '<button>Add to cart</button><a href="http://[broken/feed.xml">Feed</a>'
        storefront[URL] = html_response(page_html(PRODUCT, RETURN_POLICY, ORGANIZATION, WEBSITE, body=body))

        job_id, analysis_id = await _run(store, fake_http(storefront), settings)

        assert analysis_id is not None
        assert (await store.get_job(job_id))["status"] == JobStatus.COMPLETED.value
        analysis = await store.get_analysis(analysis_id)
        assert analysis["normalized_score"] == 91
        assert analysis["feeds_found"] == []

    @pytest.mark.asyncio
    async def test_deeply_nested_json_ld_is_skipped(self, fake_http, page_html, storefront, store, settings, responses):
        html_response, _ = responses
        nested = '<script type="application/ld+json">' + "[" * 100000 + "]" * 100000 + "</script>"
        storefront[URL] = html_response(page_html(
            PRODUCT, RETURN_POLICY, ORGANIZATION, WEBSITE, body="<button>Add to cart</button>" + nested,
        ))

        _, analysis_id = await _run(store, fake_http(storefront), settings)

        assert analysis_id is not None
        assert (await store.get_analysis(analysis_id))["normalized_score"] == 91

    @pytest.mark.asyncio
    async def test_short_content_fails_job(self, fake_http, store, settings, responses):
        html_response, _ = responses
        client = fake_http({URL: html_response("<html>tiny</html>")})

        job_id, analysis_id = await _run(store, client, settings)

        assert analysis_id is None
        job = await store.get_job(job_id)
        assert job["status"] == JobStatus.FAILED.value
        assert job["error"]["code"] == "ContentAcquisitionError"
        assert "too short" in job["error"]["message"]
        assert job["completed_at"]

    @pytest.mark.asyncio
    async def test_unreachable_page_fails_job(self, fake_http, store, settings):
        job_id, _ = await _run(store, fake_http(), settings)
        job = await store.get_job(job_id)
        assert job["status"] == JobStatus.FAILED.value
        assert job["error"]["code"] == "ContentAcquisitionError"


class TestProgress:

    @pytest.mark.asyncio
    async def test_labels_persisted_in_order(self, fake_http, storefront, store, settings):
        store.update_job = AsyncMock(wraps=store.update_job)

        await _run(store, fake_http(storefront), settings)

        updates = [call.args[1] for call in store.update_job.call_args_list]
        labels = [u["progress"]["current_check"] for u in updates if "progress" in u]
        assert labels == [
            "Fetching page content...",
            "Extracting schemas...",
            "Running checks...",
            "Checking distribution signals...",
            "Calculating score...",
        ]
        assert [u["status"] for u in updates] == [
            "scraping", "analyzing", "analyzing", "analyzing", "scoring", "completed",
        ]


class TestJobRunner:

    @pytest.mark.asyncio
    async def test_created_job_is_pending(self, store, settings):
        job_id = await JobRunner(store, settings).create_job(URL)

        job = await store.get_job(job_id)

        assert job["id"] == job_id
        assert job["status"] == JobStatus.PENDING.value
        assert job["progress"] == {"step": 0, "total_steps": 5, "current_check": "Initializing..."}
        assert job["analysis_id"] is None
        assert job["error"] is None
        assert job["created_at"]
        assert job["started_at"] is None

    @pytest.mark.asyncio
    async def test_detached_job_completes_after_drain(self, fake_http, storefront, store, settings):
        client = fake_http(storefront)
        runner = JobRunner(store, settings, client_factory=lambda: client)

        job_id = await runner.submit(URL)
        await runner.drain()

        job = await store.get_job(job_id)
        assert job["status"] == JobStatus.COMPLETED.value
        assert client.closed is True

    @pytest.mark.asyncio
    async def test_waited_job_is_terminal_on_return(self, fake_http, storefront, store, settings):
        runner = JobRunner(store, settings, client_factory=lambda: fake_http(storefront))
        job_id = await runner.submit(URL, wait=True)
        assert (await store.get_job(job_id))["status"] == JobStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_crashed_background_task_marks_job_failed(self, store, settings):
        def broken_factory():
            raise RuntimeError("no network stack")

        runner = JobRunner(store, settings, client_factory=broken_factory)
        job_id = await runner.submit(URL)
        await runner.drain()

        job = await store.get_job(job_id)
        assert job["status"] == JobStatus.FAILED.value
        assert job["error"]["code"] == "RuntimeError"

    def test_no_renderer_without_api_key(self, fake_http, store, settings):
        assert JobRunner(store, settings)._renderer(fake_http()) is None


class TestJobStatusView:

    def test_pending_job(self):
        view = job_status_view({"id": "j1", "url": URL, "status": "pending",
                                "created_at": "2026-01-01T00:00:00+00:00"})
        assert view["done"] is False
        assert view["summary"] is None
        assert view["progress"]["current_check"] == "Initializing..."
        assert view["elapsed_ms"] > 0

    def test_completed_job_with_analysis(self):
        job = {
            "id": "j1", "url": URL, "status": "completed", "analysis_id": "a1",
            "started_at": "2026-01-01T00:00:00+00:00", "completed_at": "2026-01-01T00:00:04+00:00",
        }
        analysis = {"normalized_score": 91, "grade": "Agent-Native", "checks": [
            {"id": "D1", "status": CheckStatus.PASS.value, "max_score": 12},
            {"id": "D4", "status": CheckStatus.FAIL.value, "max_score": 2},
            {"id": "N1", "status": CheckStatus.SKIPPED.value, "max_score": 0},
            {"id": "P1", "status": CheckStatus.FAIL.value, "max_score": 0},
        ]}

        view = job_status_view(job, analysis)

        assert view["done"] is True
        assert view["elapsed_ms"] == 4000
        assert view["summary"] == {"score": 91, "grade": "Agent-Native", "checks_count": 4, "issues_count": 1}
