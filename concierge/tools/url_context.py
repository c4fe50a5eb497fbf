from __future__ import annotations

import asyncio
import math
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from ..errors import ToolInputError, UpstreamProviderError
from ..logging_config import logger
from .url_guards import Resolver, resolve_host, validate_outbound_url

MAX_REDIRECTS = 3
MAX_EXTRACTED_CHARS = 4000
WORDS_PER_MINUTE = 200
USER_AGENT = "ConciergeBot/1.0 (+url-context)"
_TEXT_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")


class UrlInput(BaseModel):
    url: str | None = Field(default=None, max_length=2048)
    text: str | None = Field(default=None, max_length=200_000)


def _meta(soup: BeautifulSoup, *selectors: tuple[str, str]) -> str | None:
    for attr, value in selectors:
        tag = soup.find("meta", attrs={attr: value})
        if tag is not None and tag.get("content"):
            return str(tag["content"]).strip()
    return None


def _word_count(text: str) -> int:
    return len(text.split())


def analyze_html(url: str, html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    title = (
        (soup.title.string.strip() if soup.title and soup.title.string else None)
        or _meta(soup, ("property", "og:title"), ("name", "twitter:title"))
        or "Untitled"
    )
    description = _meta(
        soup,
        ("name", "description"),
        ("property", "og:description"),
        ("name", "twitter:description"),
    ) or ""
    metadata = {
        "ogTitle": _meta(soup, ("property", "og:title")) or "",
        "ogDescription": _meta(soup, ("property", "og:description")) or "",
        "twitterTitle": _meta(soup, ("name", "twitter:title")) or "",
        "keywords": _meta(soup, ("name", "keywords")) or "",
    }
    for tag in soup(["script", "style", "noscript", "svg", "nav", "footer", "header"]):
        tag.decompose()
    text = " ".join(soup.get_text(" ").split())
    words = _word_count(text)
    return {
        "url": url,
        "title": title,
        "description": description[:500],
        "wordCount": words,
        "readingTime": math.ceil(words / WORDS_PER_MINUTE),
        "extractedText": text[:MAX_EXTRACTED_CHARS],
        "metadata": metadata,
    }


def analyze_text(content: str) -> dict[str, Any]:
    words = _word_count(content)
    return {
        "url": None,
        "title": "Provided Text",
        "description": content[:160],
        "wordCount": words,
        "readingTime": max(1, math.ceil(len(content) / 900)),
        "extractedText": content[:MAX_EXTRACTED_CHARS],
        "metadata": {},
    }


class UrlAnalyzer:
    """
    Fetches a public web page and extracts title, description and readable
    text. Redirects are followed by hand so every hop is re-validated.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        allowed_domains: list[str] | None = None,
        timeout: float = 8.0,
        total_timeout: float = 20.0,
        max_bytes: int = 5_000_000,
        resolver: Resolver = resolve_host,
    ) -> None:
        self.client = client
        self.allowed_domains = list(allowed_domains or [])
        self.timeout = timeout
        self.total_timeout = total_timeout
        self.max_bytes = max_bytes
        self.resolver = resolver

    async def _fetch(self, url: str) -> tuple[str, str]:
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            current = await validate_outbound_url(
                current, allowed_domains=self.allowed_domains, resolver=self.resolver
            )
            async with self.client.stream(
                "GET",
                current,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html,text/plain"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
            ) as resp:
                if resp.is_redirect:
                    location = resp.headers.get("location")
                    if not location:
                        raise ToolInputError("Redirect without location")
                    current = urljoin(current, location)
                    continue
                if resp.status_code >= 400:
                    raise ToolInputError(f"Fetching URL failed with HTTP {resp.status_code}")
                content_type = resp.headers.get("content-type", "").lower()
                if content_type and not content_type.startswith(_TEXT_CONTENT_TYPES):
                    raise ToolInputError(f"Unsupported content type: {content_type.split(';')[0]}")
                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ToolInputError("Page is too large to analyze")
                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise ToolInputError("Page is too large to analyze")
                encoding = resp.encoding or "utf-8"
                return current, body.decode(encoding, errors="replace")
        raise ToolInputError("Too many redirects")

    async def analyze_url(self, url: str) -> dict[str, Any]:
        try:
            final_url, html = await asyncio.wait_for(self._fetch(url), self.total_timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("url_context: timeout fetching %s", url)
            raise UpstreamProviderError("URL fetch timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("url_context: transport error fetching %s: %s", url, exc)
            raise UpstreamProviderError(f"URL fetch failed: {exc}") from exc
        return analyze_html(final_url, html)

    async def run(self, session_id: str | None, params: UrlInput) -> dict[str, Any]:
        if params.url and params.url.strip():
            return await self.analyze_url(params.url)
        if params.text and params.text.strip():
            return analyze_text(params.text)
        raise ToolInputError("Provide url or text")


__all__ = ["UrlAnalyzer", "UrlInput", "analyze_html", "analyze_text"]
