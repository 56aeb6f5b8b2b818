from rivalscope.models.schemas import (
    BusinessContext,
    Competitor,
    ScrapedDocument,
    SearchHit,
    SearchQuery,
    SearchResult,
)
from rivalscope.services.analysis.prompts import (
    SOURCE_CHAR_LIMIT,
    build_query_prompt,
    build_report_prompt,
    extract_key_points,
    limited_data_report,
    parse_search_queries,
)


def test_parse_search_queries_accepts_dash_lines_only() -> None:
    text = """Sure! Here are queries:
- "Acme products" - Product overview
- Acme series B funding - Funding - investors
* not a query
- missing separator
-  - empty query
- acme products - duplicate
"""
    queries = parse_search_queries(text)
    assert [q.query for q in queries] == ["Acme products", "Acme series B funding - Funding"]
    assert queries[0].purpose == "Product overview"
    assert queries[1].purpose == "investors"
    assert all(q.search_type == "search" for q in queries)


def test_parse_search_queries_handles_empty_text() -> None:
    assert parse_search_queries("") == []
    assert parse_search_queries("no queries here") == []


def test_query_prompt_includes_context_when_given() -> None:
    competitor = Competitor(name="Acme", website="https://acme.io")
    prompt = build_query_prompt(
        competitor, BusinessContext(company="Globex", key_products=["Widget Pro"])
    )
    assert '"Acme"' in prompt
    assert "https://acme.io" in prompt
    assert "Widget Pro" in prompt
    assert "- [Query] - [Purpose]" in prompt

    bare = build_query_prompt(competitor, BusinessContext())
    assert "Our business context" not in bare


def test_report_prompt_truncates_long_sources() -> None:
    doc = ScrapedDocument(url="https://acme.io", content="x" * (SOURCE_CHAR_LIMIT + 500), success=True)
    prompt = build_report_prompt(
        Competitor(name="Acme"),
        BusinessContext(),
        [SearchResult(query="acme", results=[SearchHit(title="Acme", url="https://acme.io", snippet="s")])],
        [doc],
    )
    assert "x" * SOURCE_CHAR_LIMIT in prompt
    assert "x" * (SOURCE_CHAR_LIMIT + 1) not in prompt
    assert "[Content truncated" in prompt
    assert "# Acme - Competitive Intelligence Report" in prompt


def test_extract_key_points() -> None:
    points = extract_key_points("Pricing starts at $10. The product was announced last week.")
    assert "- Contains pricing/cost information" in points
    assert "- Contains product/service details" in points
    assert "- Contains recent developments" in points
    assert extract_key_points("lorem ipsum") == ["- General company/business information"]


def test_limited_data_report_lists_attempted_research() -> None:
    report = limited_data_report(
        Competitor(name="Acme"),
        [SearchQuery(query="acme funding", purpose="Funding")],
        [SearchResult(query="acme funding", results=[SearchHit(title="t", url="https://a.b")])],
        [ScrapedDocument(url="https://a.b", success=False, error="blocked")],
    )
    assert "## Limited Data Analysis" in report
    assert "**Search Queries Generated:** 1" in report
    assert "**Search Results Found:** 1" in report
    assert '"acme funding"' in report
