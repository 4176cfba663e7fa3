"""Pick a stored design template for briefs that came without a reference image."""
from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from poster_studio.errors import NoTemplateAvailable
from poster_studio.templates.domains import (
    DOMAIN_KEYWORDS,
    FALLBACK_CANDIDATE_LIMIT,
    FALLBACK_DOMAINS,
    GENERIC_KEYWORD_WEIGHT,
    KNOWN_DOMAINS,
    PRIMARY_CANDIDATE_LIMIT,
    SPECIFIC_KEYWORD_MIN_LENGTH,
    SPECIFIC_KEYWORD_WEIGHT,
    TOP_N,
)

logger = logging.getLogger(__name__)

_WORD_RX = re.compile(r"\w+", re.UNICODE)


@dataclass(frozen=True)
class TemplateCandidate:
    stored_path: str
    domain_tag: str
    description_text: str = ""
    tags: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TemplateSelection:
    candidate: TemplateCandidate
    primary_domain: Optional[str]
    score: int
    pool_size: int


class TemplateRepository(Protocol):
    async def fetch_by_domain(self, domain: str, limit: int) -> List[TemplateCandidate]:
        ...


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)")


_KEYWORD_PATTERNS: Dict[str, Tuple[Tuple[str, re.Pattern[str]], ...]] = {
    domain: tuple((keyword, _keyword_pattern(keyword)) for keyword in keywords)
    for domain, keywords in DOMAIN_KEYWORDS.items()
}


def keyword_weight(keyword: str) -> int:
    if len(keyword) >= SPECIFIC_KEYWORD_MIN_LENGTH:
        return SPECIFIC_KEYWORD_WEIGHT
    return GENERIC_KEYWORD_WEIGHT


def score_domains(brief: str) -> Dict[str, int]:
    """Weighted keyword-occurrence score per domain, in declaration order."""

    text = (brief or "").lower()
    scores: Dict[str, int] = {}
    for domain, patterns in _KEYWORD_PATTERNS.items():
        total = 0
        for keyword, pattern in patterns:
            hits = len(pattern.findall(text))
            if hits:
                total += hits * keyword_weight(keyword)
        scores[domain] = total
    return scores


def detect_primary_domain(brief: str) -> Optional[str]:
    """Highest scoring domain; the first declared wins ties, ``None`` when nothing matched."""

    best_domain: Optional[str] = None
    best_score = 0
    for domain, score in score_domains(brief).items():
        if score > best_score:
            best_domain, best_score = domain, score
    return best_domain


def brief_terms(brief: str) -> List[str]:
    seen: List[str] = []
    for word in _WORD_RX.findall((brief or "").lower()):
        if len(word) > 4 and word not in seen:
            seen.append(word)
    return seen


def score_candidate(
    candidate: TemplateCandidate, primary_domain: Optional[str], terms: Sequence[str]
) -> int:
    score = 0
    if primary_domain and candidate.domain_tag == primary_domain:
        score += 10
    haystack = " ".join(
        [candidate.description_text or "", *candidate.tags]
    ).lower()
    score += 2 * sum(1 for term in terms if term in haystack)
    if len(candidate.description_text or "") > 20:
        score += 3
    return score


def rank_candidates(
    candidates: Sequence[TemplateCandidate], primary_domain: Optional[str], brief: str
) -> List[Tuple[int, TemplateCandidate]]:
    terms = brief_terms(brief)
    scored = [(score_candidate(item, primary_domain, terms), item) for item in candidates]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return scored


async def _gather_pool(
    repository: TemplateRepository, primary_domain: Optional[str]
) -> List[TemplateCandidate]:
    if primary_domain:
        pool = await repository.fetch_by_domain(primary_domain, PRIMARY_CANDIDATE_LIMIT)
        if pool:
            return list(pool)
        logger.info("no templates for primary domain", extra={"domain": primary_domain})

    pool: List[TemplateCandidate] = []
    for domain in FALLBACK_DOMAINS:
        if domain == primary_domain:
            continue
        pool.extend(await repository.fetch_by_domain(domain, FALLBACK_CANDIDATE_LIMIT))
        if pool:
            break
    return pool


async def select_template(
    brief: str,
    repository: TemplateRepository,
    *,
    domain_hint: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> TemplateSelection:
    """Score the template pool against ``brief`` and pick one of the best few at random."""

    primary = detect_primary_domain(brief)
    if primary is None and domain_hint in KNOWN_DOMAINS:
        primary = domain_hint

    pool = await _gather_pool(repository, primary)
    if not pool:
        raise NoTemplateAvailable(
            "no design template available for this brief",
            detail={"primary_domain": primary},
        )

    ranked = rank_candidates(pool, primary, brief)
    top = ranked[:TOP_N]
    score, chosen = (rng or random).choice(top)
    logger.info(
        "template selected",
        extra={
            "primary_domain": primary,
            "pool_size": len(pool),
            "top_scores": [item[0] for item in top],
            "chosen": chosen.stored_path,
        },
    )
    return TemplateSelection(
        candidate=chosen, primary_domain=primary, score=score, pool_size=len(pool)
    )


__all__ = [
    "TemplateCandidate",
    "TemplateRepository",
    "TemplateSelection",
    "brief_terms",
    "detect_primary_domain",
    "rank_candidates",
    "score_candidate",
    "score_domains",
    "select_template",
]
