from rivalscope.models.schemas import Competitor, SearchHit, SearchResult
from rivalscope.services.analysis.prioritizer import prioritize_urls


def _result(query, *hits):
    return SearchResult(
        query=query,
        results=[
            SearchHit(title=title, url=url, snippet=snippet, position=i + 1)
            for i, (title, url, snippet) in enumerate(hits)
        ],
    )


ACME = Competitor(name="Acme", website="https://www.acme.io")


def test_domain_classes_rank_above_general_coverage() -> None:
    results = [
        _result(
            "acme overview",
            ("Some blog", "https://randomblog.net/post", "widgets"),
            ("Acme raises Series B", "https://techcrunch.com/acme-series-b", "funding news"),
            ("Acme profile", "https://www.crunchbase.com/organization/acme", "Acme Inc"),
            ("Home", "https://acme.io/", "The widget company"),
        )
    ]
    selected, candidates = prioritize_urls(ACME, results, max_documents=10)

    assert candidates == 4
    urls = [u.url for u in selected]
    assert urls[0] == "https://www.crunchbase.com/organization/acme"
    assert urls[-1] == "https://randomblog.net/post"
    assert selected[0].reason == "Funding/analyst coverage"
    assert {u.source for u in selected} == {"acme overview"}


def test_ties_keep_search_order_and_duplicates_use_first_occurrence() -> None:
    results = [
        _result(
            "first",
            ("One", "https://one.example/a", "no name"),
            ("Two", "https://two.example/b", "no name"),
        ),
        _result(
            "second",
            ("Two again", "https://two.example/b", "no name"),
            ("Three", "https://three.example/c", "no name"),
        ),
    ]
    selected, candidates = prioritize_urls(
        Competitor(name="Initech"), results, max_documents=10
    )
    assert candidates == 3
    assert [u.url for u in selected] == [
        "https://one.example/a",
        "https://two.example/b",
        "https://three.example/c",
    ]
    assert selected[1].source == "first"


def test_truncates_to_max_documents() -> None:
    hits = [(f"Page {i}", f"https://site{i}.example/", "text") for i in range(8)]
    selected, candidates = prioritize_urls(ACME, [_result("q", *hits)], max_documents=3)
    assert candidates == 8
    assert [u.url for u in selected] == [
        "https://site0.example/",
        "https://site1.example/",
        "https://site2.example/",
    ]


def test_skip_website_excludes_own_domain() -> None:
    results = [
        _result(
            "q",
            ("Acme home", "https://acme.io/", "Acme"),
            ("Acme pricing", "https://docs.acme.io/pricing", "Acme"),
            ("Acme on G2", "https://www.g2.com/products/acme", "Acme reviews"),
        )
    ]
    selected, _ = prioritize_urls(ACME, results, max_documents=10, skip_website=True)
    assert [u.url for u in selected] == ["https://www.g2.com/products/acme"]


def test_personal_social_profiles_are_penalized() -> None:
    results = [
        _result(
            "q",
            ("Jane on Facebook", "https://facebook.com/jane", "Acme employee"),
            ("Acme careers", "https://www.linkedin.com/company/acme", "Acme"),
            ("Random", "https://random.example/", "nothing"),
        )
    ]
    selected, _ = prioritize_urls(ACME, results, max_documents=10)
    assert selected[0].url == "https://www.linkedin.com/company/acme"
    assert selected[-1].url == "https://facebook.com/jane"
    assert selected[-1].reason == "Social profile"


def test_non_http_urls_are_ignored() -> None:
    results = [_result("q", ("Bad", "ftp://files.example/x", ""), ("Empty", "", ""))]
    selected, candidates = prioritize_urls(ACME, results, max_documents=5)
    assert selected == []
    assert candidates == 0
