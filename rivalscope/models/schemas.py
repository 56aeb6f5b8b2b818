# rivalscope/models/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rivalscope.utils.helper import utc_now_iso


class CamelModel(BaseModel):
    """Base model: field snake_case di Python, camelCase di JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =========================
# Input
# =========================


class Competitor(CamelModel):
    name: str
    website: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("competitor name must not be empty")
        return v


class BusinessContext(CamelModel):
    """Konteks bisnis pengguna; semua field opsional, bentuk bebas."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )

    company: Optional[str] = None
    industry: Optional[str] = None
    target_market: List[str] = Field(default_factory=list)
    business_model: Optional[str] = None
    value_proposition: Optional[str] = None
    key_products: List[str] = Field(default_factory=list)
    competitive_advantages: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    objectives: List[str] = Field(default_factory=list)
    summary: Optional[str] = None

    @field_validator(
        "target_market",
        "key_products",
        "competitive_advantages",
        "challenges",
        "objectives",
        mode="before",
    )
    @classmethod
    def _listify(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v

    def is_empty(self) -> bool:
        return not any(self.model_dump(exclude_none=True).values())

    def as_prompt_lines(self) -> List[str]:
        lines = []
        for key, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if not value:
                continue
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            lines.append(f"- {key}: {value}")
        return lines


class AnalysisOptions(CamelModel):
    skip_website_scraping: bool = False
    max_documents: int = Field(default=20, ge=1, le=100)
    include_news: bool = False


# =========================
# Step records
# =========================


class SearchQuery(CamelModel):
    query: str
    purpose: str = ""
    search_type: str = "search"  # search | news


class SearchHit(CamelModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    position: int = 0
    date: Optional[str] = None


class SearchResult(CamelModel):
    query: str
    results: List[SearchHit] = Field(default_factory=list)


class PrioritizedUrl(CamelModel):
    url: str
    reason: str
    source: str
    score: float = 0.0


class ScrapedDocument(CamelModel):
    url: str
    content: str = ""
    title: Optional[str] = None
    success: bool
    error: Optional[str] = None


# =========================
# Output
# =========================


class ResultMetadata(CamelModel):
    total_cost: float = 0.0
    timestamp: str = Field(default_factory=utc_now_iso)
    success: bool
    error: Optional[str] = None


class CompetitorAnalysisResult(CamelModel):
    competitor: Competitor
    search_queries: List[SearchQuery] = Field(default_factory=list)
    search_results: List[SearchResult] = Field(default_factory=list)
    prioritized_urls: List[PrioritizedUrl] = Field(default_factory=list)
    scraped_content: List[ScrapedDocument] = Field(default_factory=list)
    final_report: str
    metadata: ResultMetadata

    @classmethod
    def failed(
        cls, competitor: Competitor, error: str, total_cost: float = 0.0
    ) -> "CompetitorAnalysisResult":
        """Record gagal: step output kosong, metadata success=False."""
        return cls(
            competitor=competitor,
            final_report=(
                f"# {competitor.name} - Analysis Failed\n\n"
                f"Analysis failed due to error: {error}"
            ),
            metadata=ResultMetadata(total_cost=total_cost, success=False, error=error),
        )


class RunSummary(CamelModel):
    total_competitors: int
    successful_analyses: int
    total_cost: float
    avg_cost_per_competitor: float
    cost_target_met: bool
    processing_time_seconds: int


class AnalysisRequest(CamelModel):
    competitors: List[Competitor]
    business_context: BusinessContext = Field(default_factory=BusinessContext)
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)
