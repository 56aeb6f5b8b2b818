# rivalscope/services/analysis/prompts.py
from __future__ import annotations

import re
from typing import List

from rivalscope.models.schemas import (
    BusinessContext,
    Competitor,
    ScrapedDocument,
    SearchQuery,
    SearchResult,
)


SOURCE_CHAR_LIMIT = 4000

_QUOTES = re.compile(r"[\"“”]")


# =====================================================
# Stage 1: query generation
# =====================================================
def build_query_prompt(competitor: Competitor, context: BusinessContext) -> str:
    lines = [
        f'Generate effective search queries for competitive intelligence on "{competitor.name}".',
    ]
    if competitor.website:
        lines.append(f"Company website: {competitor.website}")
    if competitor.description:
        lines.append(f"Known description: {competitor.description}")
    if not context.is_empty():
        lines.append("")
        lines.append("Our business context (use it to steer the queries):")
        lines.extend(context.as_prompt_lines())

    lines.append(
        """
Target information areas: company overview and business model, products and
key offerings, market position, funding and financials, recent news,
leadership and company size, technology and differentiators, customers and pricing.

Guidelines:
- Use 2-4 word queries, focused but not overly specific
- Mix the company name with terms like "products", "funding", "news", "pricing"
- Include a few broader industry queries without the company name
- Aim for 10-12 queries; no question-style queries

Format every query as one line:
- [Query] - [Purpose]"""
    )
    return "\n".join(lines)


def parse_search_queries(text: str) -> List[SearchQuery]:
    """Baris '- query - purpose' → SearchQuery; baris lain diabaikan."""
    queries: List[SearchQuery] = []
    seen = set()
    for line in (text or "").splitlines():
        trimmed = line.strip()
        if not trimmed.startswith("- "):
            continue
        content = trimmed[2:]
        sep = content.rfind(" - ")
        if sep <= 0:
            continue
        query = _QUOTES.sub("", content[:sep]).strip().strip("[]").strip()
        purpose = content[sep + 3 :].strip().strip("[]").strip()
        if query and query.lower() not in seen:
            seen.add(query.lower())
            queries.append(SearchQuery(query=query, purpose=purpose))
    return queries


# =====================================================
# Stage 5: report synthesis
# =====================================================
def extract_key_points(content: str) -> List[str]:
    lowered = (content or "").lower()
    checks = [
        (("price", "$", "cost"), "Contains pricing/cost information"),
        (("product", "service", "feature"), "Contains product/service details"),
        (("founded", "company", "about"), "Contains company background information"),
        (("competitor", "versus", "compare"), "Contains competitive analysis"),
        (("news", "announcement", "announced", "launch"), "Contains recent developments"),
    ]
    points = [f"- {label}" for words, label in checks if any(w in lowered for w in words)]
    return points or ["- General company/business information"]


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def build_report_prompt(
    competitor: Competitor,
    context: BusinessContext,
    search_results: List[SearchResult],
    documents: List[ScrapedDocument],
) -> str:
    search_insights = "\n\n".join(
        f'**Query:** "{sr.query}"\n**Top Results:**\n'
        + "\n".join(f"- [{r.title}]({r.url})\n  *{r.snippet}*" for r in sr.results[:3])
        for sr in search_results
    )
    sources = "\n\n=== END SOURCE ===\n\n".join(
        f"**Source:** {doc.url}\n"
        f"**Key Information Found:**\n{chr(10).join(extract_key_points(doc.content))}\n"
        f"**Content:**\n{doc.content[:SOURCE_CHAR_LIMIT]}"
        + (
            f"\n[Content truncated - first {SOURCE_CHAR_LIMIT} characters]"
            if len(doc.content) > SOURCE_CHAR_LIMIT
            else ""
        )
        for doc in documents
    )
    context_block = "\n".join(context.as_prompt_lines()) or "- Not provided"

    return f"""Create a comprehensive competitive intelligence report for "{competitor.name}" based on the research data below.

**COMPETITOR INFORMATION:**
- Name: {competitor.name}
- Website: {competitor.website or "Not provided"}
- Description: {competitor.description or "No description provided"}

**OUR BUSINESS CONTEXT:**
{context_block}

**SEARCH RESEARCH SUMMARY:**
{search_insights or "No search results"}

**SCRAPED SOURCES:**
{sources}

**REPORT STRUCTURE:**
# {competitor.name} - Competitive Intelligence Report
## Executive Summary
## Company Overview
## Products & Services Analysis
## Market Position & Strategy
## Business & Financial Information
## Recent Developments & News
## Competitive Threats & Opportunities (strengths, weaknesses, threat level High/Medium/Low with reasoning)
## Strategic Intelligence & Action Items
## Sources & References

Cite the source URL for every specific fact as "(Source: URL)". When information
is not in the sources, write "Information not available in current sources".
Keep recommendations specific and actionable relative to our business context."""


def limited_data_report(
    competitor: Competitor,
    queries: List[SearchQuery],
    search_results: List[SearchResult],
    documents: List[ScrapedDocument],
) -> str:
    """Laporan tanpa AI saat tidak ada satu pun sumber yang berhasil di-scrape."""
    total_hits = sum(len(sr.results) for sr in search_results)
    query_lines = "\n".join(f'- "{q.query}" - {q.purpose}' for q in queries) or "- None"
    return f"""# {competitor.name} - Competitive Intelligence Report

## Limited Data Analysis

**Analysis Status:** Limited data available - no source could be scraped

### Research Attempted
- **Search Queries Generated:** {len(queries)}
- **Search Results Found:** {total_hits}
- **URLs Attempted:** {len(documents)}

### Search Queries Used
{query_lines}

### Available Competitor Information
- **Name:** {competitor.name}
- **Website:** {competitor.website or "Not provided"}
- **Description:** {competitor.description or "No description provided"}

### Next Steps Required
1. Verify competitor website accessibility
2. Try alternative search terms or sources
3. Consider manual research through company reports or industry publications
4. Check for alternative domain names or subsidiaries
"""


def preview(text: str, limit: int = 150) -> str:
    return _truncate(text or "", limit)
