"""
Feed discovery: classification of fetched bodies, ranking, and which
failed candidates survive into the report.
"""
import pytest

from agent_pulse.models import FeedInfo, FeedSource, FeedType
from agent_pulse.services.feeds import classify_feed, discover_feeds, pick_primary_feed, rank_feeds

ORIGIN = "https://shop.example.com"


class TestClassifyFeed:

    def test_shopify_products_json(self):
        body = '{"products": [{"title": "Widget", "variants": [{"price": "9.00"}]}, {"title": "Gadget"}]}'
        feed = classify_feed(ORIGIN + "/products.json", FeedSource.NATIVE, "application/json", body)
        assert feed.type == FeedType.JSON
        assert feed.product_count == 2
        assert feed.has_required_fields is True
        assert feed.is_empty is False

    def test_json_missing_price(self):
        feed = classify_feed("u", FeedSource.HTML, "application/json", '[{"name": "Widget"}]')
        assert feed.missing_fields == ["price"]

    def test_google_merchant_xml(self):
        body = (
            '<?xml version="1.0"?><rss><channel>'
            "<item><g:price>9.00 USD</g:price></item><item><g:price>1.00 USD</g:price></item>"
            "</channel></rss>"
        )
        feed = classify_feed("u", FeedSource.COMMON_PATH, "text/xml", body)
        assert feed.type == FeedType.XML
        assert feed.product_count == 2
        assert feed.has_required_fields is True

    def test_csv_header_and_rows(self):
        feed = classify_feed("u", FeedSource.HTML, "text/csv", "id,title,price\n1,Widget,9\n2,Gadget,3\n")
        assert feed.product_count == 2
        assert feed.has_required_fields is True

    def test_deeply_nested_json_counts_nothing(self):
        body = "[" * 100000 + "]" * 100000
        feed = classify_feed("u", FeedSource.HTML, "application/json", body)
        assert feed.type == FeedType.JSON
        assert feed.product_count == 0
        assert feed.is_empty is True

    def test_empty_feed(self):
        feed = classify_feed("u", FeedSource.NATIVE, "application/json", '{"products": []}')
        assert feed.is_empty is True
        assert feed.accessible is True


class TestRanking:

    def test_order_accessible_then_count_then_source(self):
        feeds = [
            FeedInfo(url="broken", source=FeedSource.NATIVE, accessible=False),
            FeedInfo(url="empty", source=FeedSource.NATIVE, accessible=True, product_count=0, is_empty=True),
            FeedInfo(url="small", source=FeedSource.NATIVE, accessible=True, product_count=3, is_empty=False),
            FeedInfo(url="big", source=FeedSource.COMMON_PATH, accessible=True, product_count=50, is_empty=False),
            FeedInfo(url="html", source=FeedSource.HTML, accessible=True, product_count=3, is_empty=False),
        ]
        assert [f.url for f in rank_feeds(feeds)] == ["big", "small", "html", "empty", "broken"]

    def test_primary_falls_back_to_first_ranked(self):
        ranked = [FeedInfo(url="empty", source=FeedSource.NATIVE, accessible=True, is_empty=True)]
        assert pick_primary_feed(ranked).url == "empty"
        assert pick_primary_feed([]) is None


class TestDiscoverFeeds:

    @pytest.mark.asyncio
    async def test_native_endpoint_becomes_primary(self, fake_http, responses):
        _, json_response = responses
        client = fake_http({
            ORIGIN + "/products.json": json_response({"products": [{"title": "W", "price": "1"}]}),
        })

        discovery = await discover_feeds(client, ORIGIN, "<html></html>", None, "Shopify")

        assert discovery.primary_feed.url == ORIGIN + "/products.json"
        assert discovery.primary_feed.source == FeedSource.NATIVE
        # Missing guessed paths are dropped from the report
        assert [f.url for f in discovery.feeds] == [ORIGIN + "/products.json"]

    @pytest.mark.asyncio
    async def test_robots_sitemaps_filtered_by_feed_hint(self, fake_http, responses):
        html_response, _ = responses
        robots = f"Sitemap: {ORIGIN}/sitemap.xml\nSitemap: {ORIGIN}/merchant-feed.xml\n"
        xml = '<?xml version="1.0"?><products><product><price>1</price></product></products>'
        client = fake_http({ORIGIN + "/merchant-feed.xml": html_response(xml, content_type="application/xml")})

        discovery = await discover_feeds(client, ORIGIN, "<html></html>", robots, "Custom")

        assert not client.requested(ORIGIN + "/sitemap.xml")
        assert discovery.primary_feed.source == FeedSource.ROBOTS
        assert discovery.primary_feed.product_count == 1

    @pytest.mark.asyncio
    async def test_referenced_soft_404_is_reported_inaccessible(self, fake_http, responses):
        html_response, _ = responses
        html = '<html><head><link rel="alternate" type="application/rss+xml" href="/feed.rss"></head></html>'
        client = fake_http({ORIGIN + "/feed.rss": html_response("<!DOCTYPE html><html>Home</html>")})

        discovery = await discover_feeds(client, ORIGIN, html, None, "Custom")

        assert len(discovery.feeds) == 1
        assert discovery.feeds[0].source == FeedSource.HTML
        assert discovery.feeds[0].accessible is False

    @pytest.mark.asyncio
    async def test_no_feeds(self, fake_http):
        discovery = await discover_feeds(fake_http(), ORIGIN, "<html></html>", None, "Unknown")
        assert discovery.feeds == []
        assert discovery.primary_feed is None

    @pytest.mark.asyncio
    async def test_unparseable_links_are_skipped(self, fake_http, responses):
        html_response, _ = responses
        html = (
            '<html><body><a href="http://[broken/feed.xml">Feed</a>'
            '<a href="/products-feed.xml">Products</a></body></html>'
        )
        robots = "Sitemap: http://[broken/merchant-feed.xml\n"
        xml = '<?xml version="1.0"?><products><product><price>1</price></product></products>'
        client = fake_http({ORIGIN + "/products-feed.xml": html_response(xml, content_type="application/xml")})

        discovery = await discover_feeds(client, ORIGIN, html, robots, "Custom")

        assert [f.url for f in discovery.feeds] == [ORIGIN + "/products-feed.xml"]
        assert discovery.primary_feed.source == FeedSource.HTML
