"""
agent_pulse/services/http_client.py
Thin aiohttp wrapper implementing the page-fetcher I/O contract:
GET/HEAD/POST with an explicit timeout → (status, headers, body).

Callers own error handling: timeouts surface as asyncio.TimeoutError and
transport failures as aiohttp.ClientError.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp


@dataclass
class HttpResponse:
    status: int
    url: str
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def json(self) -> Any:
        return json.loads(self.text)


class HttpClient:
    """
    Shared by every component of one analysis. Pass an existing
    aiohttp.ClientSession to reuse a connection pool; otherwise the client
    opens (and later closes) its own.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
        verify_ssl: bool = True,
    ):
        self._session = session
        self._owns_session = session is None
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = {"User-Agent": self.user_agent} if self.user_agent else {}
        merged.update(headers or {})
        return merged

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10,
        params: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        session = self._get_session()
        async with session.get(
            url,
            headers=self._headers(headers),
            params=params,
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
            ssl=self.verify_ssl,
        ) as resp:
            body = await resp.text(errors="replace")
            return HttpResponse(
                status=resp.status,
                url=str(resp.url),
                text=body,
                headers={k.lower(): v for k, v in resp.headers.items()},
            )

    async def head(self, url: str, timeout: float = 10) -> HttpResponse:
        session = self._get_session()
        async with session.head(
            url,
            headers=self._headers(None),
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
            ssl=self.verify_ssl,
        ) as resp:
            return HttpResponse(
                status=resp.status,
                url=str(resp.url),
                headers={k.lower(): v for k, v in resp.headers.items()},
            )

    async def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30,
    ) -> HttpResponse:
        session = self._get_session()
        async with session.post(
            url,
            json=payload,
            headers=self._headers(headers),
            timeout=aiohttp.ClientTimeout(total=timeout),
            ssl=self.verify_ssl,
        ) as resp:
            body = await resp.text(errors="replace")
            return HttpResponse(
                status=resp.status,
                url=str(resp.url),
                text=body,
                headers={k.lower(): v for k, v in resp.headers.items()},
            )

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
