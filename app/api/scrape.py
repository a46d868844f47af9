"""Section scraping endpoint."""

from urllib.parse import urlparse

from fastapi import APIRouter

from app.core.exceptions import RequestValidationError
from app.schemas.evaluation import ErrorResponse, ScrapedSectionOut, ScrapeRequest, ScrapeResponse
from app.scraper.sections import scrape_website_sections

router = APIRouter(tags=["scrape"])


@router.post("/scrape", response_model=ScrapeResponse, responses={400: {"model": ErrorResponse}})
async def scrape(body: ScrapeRequest) -> ScrapeResponse:
    """Split a page into titled sections (placeholder section if unreachable)."""
    url = body.url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise RequestValidationError(["url must be a valid http(s) URL"])

    sections = await scrape_website_sections(url)
    return ScrapeResponse(url=url, sections=[ScrapedSectionOut(**s.to_dict()) for s in sections])
