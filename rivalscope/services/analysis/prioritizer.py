# rivalscope/services/analysis/prioritizer.py
"""
Stage 3: pemilihan URL untuk di-scrape.

Fungsi murni: skor per URL berdasarkan kelas domain + relevansi nama
kompetitor, lalu stable sort (urutan hasil search asli memutus skor
yang sama) dan truncation ke ``max_documents``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from rivalscope.models.schemas import Competitor, PrioritizedUrl, SearchResult


# (skor, label, domain)
DOMAIN_CLASSES: Tuple[Tuple[float, str, Tuple[str, ...]], ...] = (
    (
        10.0,
        "Funding/analyst coverage",
        ("crunchbase.com", "pitchbook.com", "gartner.com", "forrester.com", "idc.com", "gigaom.com"),
    ),
    (
        8.0,
        "Press & news coverage",
        (
            "prnewswire.com",
            "businesswire.com",
            "techcrunch.com",
            "forbes.com",
            "bloomberg.com",
            "reuters.com",
            "venturebeat.com",
        ),
    ),
    (
        8.0,
        "Product intelligence",
        ("g2.com", "capterra.com", "trustradius.com", "producthunt.com", "github.com"),
    ),
    (
        5.0,
        "Hiring/company profile",
        ("linkedin.com/company", "glassdoor.com", "indeed.com", "wikipedia.org"),
    ),
)
OWN_DOMAIN_SCORE = 8.0
DEFAULT_SCORE = 3.0

NAME_IN_TEXT_BONUS = 2.0
NAME_IN_URL_BONUS = 1.0
PERSONAL_PROFILE_PENALTY = 5.0
PERSONAL_PROFILES = (
    "facebook.com",
    "instagram.com",
    "tiktok.com",
    "twitter.com",
    "x.com",
    "linkedin.com/in/",
    "pinterest.com",
)


@dataclass(frozen=True)
class Candidate:
    url: str
    title: str
    snippet: str
    source: str


def host_of(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _matches(url: str, host: str, pattern: str) -> bool:
    if "/" in pattern:
        return pattern in url.lower()
    return host == pattern or host.endswith("." + pattern)


def own_domain(competitor: Competitor) -> Optional[str]:
    if not competitor.website:
        return None
    website = competitor.website
    if "://" not in website:
        website = "https://" + website
    return host_of(website) or None


def flatten_results(search_results: Sequence[SearchResult]) -> List[Candidate]:
    """Semua hit search dalam urutan asli, URL duplikat diambil kemunculan pertama."""
    seen = set()
    out: List[Candidate] = []
    for sr in search_results:
        for hit in sr.results:
            url = (hit.url or "").strip()
            if not url.startswith(("http://", "https://")) or url in seen:
                continue
            seen.add(url)
            out.append(Candidate(url=url, title=hit.title, snippet=hit.snippet, source=sr.query))
    return out


def score_candidate(
    candidate: Candidate, competitor: Competitor, competitor_domain: Optional[str]
) -> Tuple[float, str]:
    host = host_of(candidate.url)
    score, label = DEFAULT_SCORE, "General coverage"

    if competitor_domain and _matches(candidate.url, host, competitor_domain):
        score, label = OWN_DOMAIN_SCORE, "Official company website"
    else:
        for class_score, class_label, patterns in DOMAIN_CLASSES:
            if any(_matches(candidate.url, host, p) for p in patterns):
                score, label = class_score, class_label
                break

    name = competitor.name.lower()
    if name in f"{candidate.title} {candidate.snippet}".lower():
        score += NAME_IN_TEXT_BONUS
    if name.replace(" ", "") in candidate.url.lower():
        score += NAME_IN_URL_BONUS
    if any(_matches(candidate.url, host, p) for p in PERSONAL_PROFILES):
        score -= PERSONAL_PROFILE_PENALTY
        label = "Social profile"

    return score, label


def prioritize_urls(
    competitor: Competitor,
    search_results: Sequence[SearchResult],
    *,
    max_documents: int,
    skip_website: bool = False,
) -> Tuple[List[PrioritizedUrl], int]:
    """Kembalikan (URL terpilih, jumlah kandidat unik)."""
    candidates = flatten_results(search_results)
    domain = own_domain(competitor)

    scored = []
    for candidate in candidates:
        if skip_website and domain and _matches(candidate.url, host_of(candidate.url), domain):
            continue
        score, label = score_candidate(candidate, competitor, domain)
        scored.append((score, label, candidate))

    # sorted() stabil: skor sama tetap dalam urutan hasil search
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)
    selected = [
        PrioritizedUrl(url=c.url, reason=label, source=c.source, score=score)
        for score, label, c in ranked[: max(0, max_documents)]
    ]
    return selected, len(candidates)
