"""Pydantic models for the evaluation service's HTTP surface.

The evaluate endpoint validates its body by hand (see
app/evaluation/validation.py) so every violation is reported at once;
these models cover the simpler endpoints and the documented responses.
"""

from pydantic import BaseModel, Field


class ScrapeRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048, description="Page to split into sections")


class ScrapedSectionOut(BaseModel):
    selector: str
    title: str
    text: str = Field(description="First 200 characters of the section text")
    fullText: str


class ScrapeResponse(BaseModel):
    url: str
    sections: list[ScrapedSectionOut] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    service: str
    llmConfigured: bool
    model: str


class ErrorResponse(BaseModel):
    error: str
    details: list[str] | None = None
    message: str | None = None
    path: str | None = None
    timestamp: str | None = None
