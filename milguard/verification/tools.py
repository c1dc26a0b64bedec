"""
Verification helpers: reverse image search links, fact-check lookup,
and a heuristic source-credibility score.
"""
import logging
from urllib.parse import quote, urlparse

import httpx

from milguard.core.config import GOOGLE_FACTCHECK_API_KEY, PROVIDER_TIMEOUT_SECONDS
from milguard.core.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

FACTCHECK_URL = "https://factchecktools.googleapis.com/v1alpha1/claims:search"

# Curated, deliberately short lists; extend as needed
REPUTABLE_DOMAINS = {
    "apnews.com", "reuters.com", "bbc.co.uk", "bbc.com", "npr.org", "pbs.org",
    "nature.com", "science.org", "who.int", "un.org", "snopes.com",
    "factcheck.org", "politifact.com", "fullfact.org",
}
UNRELIABLE_DOMAINS = {
    "theonion.com", "babylonbee.com", "infowars.com", "naturalnews.com",
    "worldnewsdailyreport.com", "beforeitsnews.com",
}
INSTITUTIONAL_SUFFIXES = (".gov", ".edu", ".mil", ".int")
LOW_TRUST_SUFFIXES = (".xyz", ".top", ".click", ".buzz", ".info")


def _parse_http_url(url: str, field: str):
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL")
    return url, parsed


# ======================================================
# REVERSE IMAGE SEARCH
# ======================================================
def reverse_image_search(image_url: str) -> dict:
    url, _ = _parse_http_url(image_url, "imageUrl")
    encoded = quote(url, safe="")
    return {
        "imageUrl": url,
        "engines": [
            {"name": "Google Lens", "url": f"https://lens.google.com/uploadbyurl?url={encoded}"},
            {"name": "TinEye", "url": f"https://tineye.com/search?url={encoded}"},
            {"name": "Bing Visual Search", "url": f"https://www.bing.com/images/search?view=detailv2&iss=sbi&q=imgurl:{encoded}"},
            {"name": "Yandex", "url": f"https://yandex.com/images/search?rpt=imageview&url={encoded}"},
        ],
    }


# ======================================================
# FACT CHECK
# ======================================================
async def fact_check_lookup(
    query: str,
    api_key: str = GOOGLE_FACTCHECK_API_KEY,
    http: httpx.AsyncClient | None = None,
    language: str = "en",
) -> dict:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Please enter a claim to fact-check")
    if not api_key:
        return {"query": query, "claims": [], "note": "Fact-check service is not configured"}

    params = {"query": query, "key": api_key, "languageCode": language, "pageSize": 10}
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS) as client:
                resp = await client.get(FACTCHECK_URL, params=params)
        else:
            resp = await http.get(FACTCHECK_URL, params=params)
    except httpx.HTTPError as e:
        logger.warning("fact-check request failed: %s", type(e).__name__)
        raise ProviderError("factCheck", f"request failed ({type(e).__name__})") from e

    if resp.status_code >= 400:
        raise ProviderError("factCheck", f"HTTP {resp.status_code}")

    try:
        body = resp.json()
    except ValueError as e:
        raise ProviderError("factCheck", "response was not valid JSON") from e
    if not isinstance(body, dict):
        raise ProviderError("factCheck", "unexpected response shape")

    claims = []
    for claim in body.get("claims", []):
        for review in claim.get("claimReview", []):
            claims.append({
                "claim": claim.get("text"),
                "claimant": claim.get("claimant"),
                "publisher": (review.get("publisher") or {}).get("name"),
                "rating": review.get("textualRating"),
                "url": review.get("url"),
                "reviewDate": review.get("reviewDate"),
            })
    return {"query": query, "claims": claims}


# ======================================================
# SOURCE CREDIBILITY
# ======================================================
def credibility_band(score: float) -> str:
    if score >= 0.7:
        return "high"
    if score >= 0.4:
        return "medium"
    return "low"


def score_source_credibility(url: str) -> dict:
    url, parsed = _parse_http_url(url, "url")
    domain = (parsed.hostname or "").lower()
    if domain.startswith("www."):
        domain = domain[4:]

    score = 0.5
    factors = []

    def matches(domains):
        return any(domain == d or domain.endswith("." + d) for d in domains)

    if parsed.scheme == "https":
        score += 0.05
        factors.append("Served over HTTPS")
    else:
        score -= 0.1
        factors.append("Not served over HTTPS")

    if matches(REPUTABLE_DOMAINS):
        score += 0.35
        factors.append("Known reputable news or fact-checking outlet")
    if matches(UNRELIABLE_DOMAINS):
        score -= 0.4
        factors.append("Known satire or unreliable publisher")
    if domain.endswith(INSTITUTIONAL_SUFFIXES):
        score += 0.25
        factors.append("Institutional domain")
    if domain.endswith(LOW_TRUST_SUFFIXES):
        score -= 0.15
        factors.append("Top-level domain often used for throwaway sites")
    if domain.count("-") >= 2 or any(ch.isdigit() for ch in domain.split(".")[0]):
        score -= 0.1
        factors.append("Unusual domain name pattern")

    score = round(min(1.0, max(0.0, score)), 2)
    return {
        "url": url,
        "domain": domain,
        "score": score,
        "rating": credibility_band(score),
        "factors": factors,
    }
