"""Section Scraper — fetch a page and split it into titled text sections.

Fetch layer uses httpx.AsyncClient and tries the site directly, then a
chain of public CORS proxies; parse layer is pure (no I/O).
If every fetch fails the caller still gets one placeholder section.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from app.core.config import settings

logger = logging.getLogger(__name__)

_HTTP_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

# Proxy URL templates; {url} is the percent-encoded target
PROXY_TEMPLATES = [
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
]

SECTION_SELECTORS = [
    "main",
    '[role="main"]',
    "article",
    "section",
    "#main-content",
    "#content",
    ".content",
    ".main-content",
    "header",
    "footer",
    "nav",
    "aside",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
]

MIN_HTML_LENGTH = 100
MIN_SECTION_TEXT = 50
PREVIEW_CHARS = 200
MAX_SECTIONS = 10

_WS_RE = re.compile(r"\s+")

FAILED_SECTION_TEXT = (
    "Unable to scrape website content. This might be due to CORS restrictions "
    "or the website blocking external access."
)


@dataclass
class ScrapedSection:
    selector: str
    title: str
    text: str
    full_text: str

    def to_dict(self) -> dict:
        return {
            "selector": self.selector,
            "title": self.title,
            "text": self.text,
            "fullText": self.full_text,
        }


def normalize_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def placeholder_section() -> ScrapedSection:
    return ScrapedSection(
        selector="body",
        title="Scraping Failed",
        text=FAILED_SECTION_TEXT,
        full_text=FAILED_SECTION_TEXT
        + " The website may have security measures in place that prevent external tools from accessing its content.",
    )


# ── Fetch layer ──────────────────────────────────────────────────


def candidate_urls(url: str) -> list[str]:
    """Direct URL first, then each proxy."""
    encoded = quote(url, safe="")
    return [url] + [template.format(url=encoded) for template in PROXY_TEMPLATES]


async def fetch_page_html(client: httpx.AsyncClient, url: str) -> str:
    """Return the first HTML body longer than MIN_HTML_LENGTH, or "" if all sources fail."""
    for candidate in candidate_urls(url):
        try:
            resp = await client.get(candidate, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.info("Fetch via %s failed: %s", candidate, exc)
            continue

        if resp.status_code == 200 and len(resp.text) > MIN_HTML_LENGTH:
            logger.debug("Fetched %s via %s (%d chars)", url, candidate, len(resp.text))
            return resp.text
        logger.info("Fetch via %s returned %d (%d chars)", candidate, resp.status_code, len(resp.text))

    logger.warning("All fetch sources failed for %s", url)
    return ""


# ── Parse layer ──────────────────────────────────────────────────


def _section_title(element, selector: str, index: int) -> str:
    heading = element.select_one("h1, h2, h3, h4, h5, h6")
    if heading is not None and heading.get_text(strip=True):
        return normalize_whitespace(heading.get_text(" "))
    for attr in ("aria-label", "title"):
        value = element.get(attr)
        if value and value.strip():
            return value.strip()
    return f"{selector} {index + 1}"


def extract_sections(html: str, limit: int = MAX_SECTIONS) -> list[ScrapedSection]:
    """Split HTML into unique-by-title sections with a short preview and full text."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    sections: list[ScrapedSection] = []
    seen_titles: set[str] = set()

    for selector in SECTION_SELECTORS:
        for index, element in enumerate(soup.select(selector)):
            full_text = normalize_whitespace(element.get_text(" "))
            if len(full_text) <= MIN_SECTION_TEXT:
                continue

            title = _section_title(element, selector, index)
            if title in seen_titles:
                continue
            seen_titles.add(title)

            preview = full_text[:PREVIEW_CHARS] + "..." if len(full_text) > PREVIEW_CHARS else full_text
            sections.append(
                ScrapedSection(
                    selector=f"{selector}:nth-of-type({index + 1})",
                    title=title,
                    text=preview,
                    full_text=full_text,
                )
            )
            if len(sections) >= limit:
                return sections

    return sections


async def scrape_website_sections(url: str, client: httpx.AsyncClient | None = None) -> list[ScrapedSection]:
    """Fetch ``url`` and return its sections; never raises on network failure."""
    if client is None:
        async with httpx.AsyncClient(headers=_HTTP_HEADERS, timeout=settings.scrape_timeout_seconds) as own:
            html = await fetch_page_html(own, url)
    else:
        html = await fetch_page_html(client, url)

    if len(html) <= MIN_HTML_LENGTH:
        return [placeholder_section()]

    sections = extract_sections(html)
    logger.info("Scraped %d sections from %s", len(sections), url)
    return sections or [placeholder_section()]
