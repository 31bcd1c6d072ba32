"""
agent_pulse/services/renderer.py
Render fallback: a headless-browser-as-a-service (Firecrawl) that returns
the page's HTML after JavaScript has run. Every call spends a paid credit,
so smart_fetch only reaches for it when static HTML is not enough.
"""
import asyncio
from typing import Optional

import aiohttp

from ..exceptions import RenderError
from ..models import RenderResult
from .http_client import HttpClient


class Renderer:
    def __init__(
        self,
        client: HttpClient,
        api_key: Optional[str],
        api_url: str = "https://api.firecrawl.dev/v1/scrape",
        wait_for_ms: int = 3000,
        page_timeout_ms: int = 25000,
        timeout: float = 30,
    ):
        self.client = client
        self.api_key = api_key
        self.api_url = api_url
        self.wait_for_ms = wait_for_ms
        self.page_timeout_ms = page_timeout_ms
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def render(self, url: str) -> RenderResult:
        if not self.api_key:
            raise RenderError("Render service API key not configured")

        payload = {
            "url": url,
            "formats": ["rawHtml"],
            "waitFor": self.wait_for_ms,
            "timeout": self.page_timeout_ms,
        }
        try:
            resp = await self.client.post_json(
                self.api_url,
                payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise RenderError(f"Render service timed out after {self.timeout:g}s") from e
        except aiohttp.ClientError as e:
            raise RenderError(f"Render service unreachable: {e}") from e

        if not resp.ok:
            raise RenderError(f"Render service error: HTTP {resp.status}")

        try:
            body = resp.json()
        except (ValueError, RecursionError) as e:
            raise RenderError("Render service returned malformed JSON") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise RenderError("Render service response has no data")
        html = data.get("rawHtml") or data.get("html")
        if not html:
            raise RenderError("Render service returned no HTML")

        meta = data.get("metadata") or {}
        return RenderResult(
            html=html,
            title=meta.get("title"),
            description=meta.get("description"),
            og_image=meta.get("ogImage"),
        )
