"""
LLM Curator Adapter

A second-tier reviewer for medium-confidence matches. The curator receives
the extracted entity, its article excerpt and the matched watchlist entry,
and answers in a labelled-line grammar:

    RECOMMENDATION: APPROVE|FLAG|INVESTIGATE
    CONFIDENCE: 0.0-1.0
    EXPLANATION: free text
    CATEGORY: PERSON|ORG|LOCATION|ASSET
    ISSUES: comma separated concerns, or None

Providers are strategies behind the Curator base class:
- TogetherCurator: OpenAI-compatible chat completions (Together.AI, Llama 3.1 70B)
- RuleBasedCurator: deterministic offline reviewer
- DisabledCurator: no provider configured; items go to human review

Policy: prefer missing a true positive over wrongly accusing someone. A
response we cannot read is a FLAG, never an approval.
"""
from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from unidecode import unidecode

from .config import CONFIDENCE_LEVEL_LABELS, CuratorSettings
from .errors import (
    ConfigurationError,
    CuratorParseError,
    CuratorTimeoutError,
    CuratorUnavailableError,
)
from .models import CuratorVerdict, Decision, ReviewItem, WatchlistEntity

logger = structlog.get_logger("memoria.curation.curator")

EXCERPT_LIMIT = 500
UNPARSEABLE_ISSUE = "curator response unparseable"
MAX_TOKENS = 500
# Low temperature for repeatable compliance decisions
TEMPERATURE = 0.3

_RECOMMENDATION = re.compile(
    r"^\W*RECOMMENDATION\W*:[\s*\[]*(APPROVE|FLAG|INVESTIGATE)\b", re.IGNORECASE | re.MULTILINE
)
_CONFIDENCE = re.compile(r"^\W*CONFIDENCE\W*:[\s*\[]*(\d+(?:\.\d+)?)", re.IGNORECASE | re.MULTILINE)
_EXPLANATION = re.compile(
    r"^\W*EXPLANATION\W*:\s*(.+?)(?=^\W*(?:CATEGORY|ISSUES|RECOMMENDATION|CONFIDENCE)\W*:|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_CATEGORY = re.compile(r"^\W*CATEGORY\W*:[\s*\[]*(PERSON|ORG|LOCATION|ASSET)\b", re.IGNORECASE | re.MULTILINE)
_ISSUES = re.compile(r"^\W*ISSUES\W*:\s*(.*)$", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class CuratorRequest:
    """What the curator sees about one review item."""
    entity_text: str
    normalized_text: str
    entity_type: str
    prior_confidence: int
    language: str
    article_excerpt: str
    matched: Optional[WatchlistEntity] = None
    match_score: float = 0.0
    match_type: str = "none"
    matched_on: Optional[str] = None

    @classmethod
    def from_item(cls, item: ReviewItem) -> "CuratorRequest":
        match = item.match
        return cls(
            entity_text=item.entity.raw_text,
            normalized_text=item.entity.normalized_text,
            entity_type=item.entity.entity_type.value,
            prior_confidence=item.entity.source_confidence,
            language=item.entity.language,
            article_excerpt=item.entity.article_context[:EXCERPT_LIMIT],
            matched=match.watchlist_entity,
            match_score=match.score,
            match_type=match.match_type.value,
            matched_on=match.matched_on,
        )

    def to_payload(self) -> dict:
        return {
            "entityText": self.entity_text,
            "normalizedText": self.normalized_text,
            "type": self.entity_type,
            "priorConfidence": self.prior_confidence,
            "language": self.language,
            "articleExcerpt": self.article_excerpt,
        }


def build_prompt(request: CuratorRequest) -> str:
    """Compliance review prompt for one match."""
    level = CONFIDENCE_LEVEL_LABELS.get(request.prior_confidence, "UNKNOWN")

    match_section = ""
    if request.matched is not None:
        official = request.matched
        match_section = f"""
**Tier 1 Match Found:**
- Matched official: {official.full_name}
- Match score: {request.match_score:.1f}% ({request.match_type} match)
- Matched on: {request.matched_on}
- Sanctions programs: {', '.join(sorted(official.sanctions_programs)) or 'N/A'}
- Aliases: {', '.join(official.aliases) or 'N/A'}
- Source: {official.source}
- Notes: {official.notes or 'N/A'}

Does this entity match the sanctioned official? Consider name variations
(full name vs alias), the context of the article, and potential false
positives (common names, different people).
"""

    return f"""You are a compliance curator for an accountability database documenting Venezuelan regime officials, sanctioned entities, and regime propagandists. Your primary goal is to prevent false positives (accusing innocent people of association with the regime). False negatives (missing guilty people) are acceptable, but false accusations are unacceptable.

**Entity to Review:**
- Extracted Text: "{request.entity_text}"
- Normalized: "{request.normalized_text}"
- Type: {request.entity_type}
- Our Confidence Score: {request.prior_confidence}/5 ({level})
- Language: {request.language}
{match_section}
**Article Context:**
"{request.article_excerpt}..."

**Your Task:**
1. Assess risk of this being a false positive (innocent person misidentified as regime-connected)
2. Consider if the name is too common, generic, or ambiguous
3. Check for mistranslations or OCR errors
4. Suggest the correct entity type
5. Recommend whether to APPROVE, FLAG (needs human review), or INVESTIGATE (might be error/duplicate)

**Format your response as:**
RECOMMENDATION: [APPROVE|FLAG|INVESTIGATE]
CONFIDENCE: [0.0-1.0] how confident are you in this decision?
EXPLANATION: [2-3 sentences explaining your decision]
CATEGORY: [PERSON|ORG|LOCATION|ASSET]
ISSUES: [list any concerns, or "None" if clean]

Remember: We would rather miss 10 guilty people than wrongly accuse 1 innocent person. When in doubt, recommend FLAG for human review."""


def _parse_issues(raw: str) -> tuple[str, ...]:
    raw = raw.strip().strip("[]").strip()
    if not raw or raw.strip('"\'. ').lower() in ("none", "n/a", "no issues"):
        return ()
    parts = (p.strip().strip('"\'') for p in re.split(r"[;,]", raw))
    return tuple(p for p in parts if p)


def parse_curator_response(text: str) -> CuratorVerdict:
    """
    Parse the labelled-line grammar.

    Raises:
        CuratorParseError: no valid RECOMMENDATION line
    """
    if not text or not text.strip():
        raise CuratorParseError("Empty curator response")

    recommendation = _RECOMMENDATION.search(text)
    if not recommendation:
        raise CuratorParseError("Curator response has no valid RECOMMENDATION line")

    confidence = 0.0
    match = _CONFIDENCE.search(text)
    if match:
        confidence = float(match.group(1))
        # Some models answer in percent
        if confidence > 1.0:
            confidence = confidence / 100.0 if confidence <= 100.0 else 1.0

    explanation = ""
    match = _EXPLANATION.search(text)
    if match:
        explanation = " ".join(match.group(1).split())

    category = None
    match = _CATEGORY.search(text)
    if match:
        category = match.group(1).upper()

    issues: tuple[str, ...] = ()
    match = _ISSUES.search(text)
    if match:
        issues = _parse_issues(match.group(1))

    return CuratorVerdict(
        recommendation=Decision(recommendation.group(1).lower()),
        confidence=max(0.0, min(confidence, 1.0)),
        explanation=explanation,
        suggested_category=category,
        issues=issues,
    )


def unparseable_verdict(text: str) -> CuratorVerdict:
    """The cautious verdict for a response we could not read."""
    return CuratorVerdict(
        recommendation=Decision.FLAG,
        confidence=0.0,
        explanation=(text or "").strip()[:EXCERPT_LIMIT],
        issues=(UNPARSEABLE_ISSUE,),
    )


def decide(verdict: CuratorVerdict, min_approve_confidence: float) -> Decision:
    """Final decision for a curator verdict; weak approvals become flags."""
    if verdict.recommendation is Decision.APPROVE and verdict.confidence < min_approve_confidence:
        return Decision.FLAG
    if verdict.recommendation is Decision.REJECT:
        # Curators recommend; only humans reject
        return Decision.FLAG
    return verdict.recommendation


class Curator(ABC):
    """Base class for curator providers."""

    provider = "base"

    def __init__(self, settings: CuratorSettings):
        self.settings = settings
        self._lock = threading.Lock()
        self._reviews = 0
        self._failures = 0
        self._unparseable = 0

    @property
    def enabled(self) -> bool:
        return True

    @property
    def model(self) -> str:
        return self.provider

    @abstractmethod
    def _complete(self, prompt: str, request: CuratorRequest) -> str:
        """Return the raw response text for a prompt."""

    def review(self, request: CuratorRequest) -> CuratorVerdict:
        """
        Ask the provider for a verdict.

        Raises:
            CuratorTimeoutError, CuratorUnavailableError: provider failed;
            the caller decides whether to retry.
        """
        prompt = build_prompt(request)
        try:
            text = self._complete(prompt, request)
        except (CuratorTimeoutError, CuratorUnavailableError):
            with self._lock:
                self._failures += 1
            raise

        try:
            verdict = parse_curator_response(text)
        except CuratorParseError as e:
            logger.warning("curator_response_unparseable", provider=self.provider, reason=e.message)
            with self._lock:
                self._reviews += 1
                self._unparseable += 1
            return unparseable_verdict(text)

        with self._lock:
            self._reviews += 1
        logger.debug(
            "curator_review_complete",
            provider=self.provider,
            entity=request.normalized_text,
            recommendation=verdict.recommendation.value,
            confidence=verdict.confidence,
        )
        return verdict

    def status(self) -> dict:
        with self._lock:
            return {
                "provider": self.provider,
                "enabled": self.enabled,
                "model": self.model,
                "reviews_processed": self._reviews,
                "failures": self._failures,
                "unparseable": self._unparseable,
            }

    def close(self) -> None:
        pass


class TogetherCurator(Curator):
    """Llama 3.1 70B via Together.AI's OpenAI-compatible API."""

    provider = "together"

    def __init__(self, settings: CuratorSettings, client: httpx.Client | None = None):
        super().__init__(settings)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
        )
        if self.enabled:
            logger.info("curator_enabled", provider=self.provider, model=settings.model)
        else:
            logger.warning(
                "curator_disabled",
                provider=self.provider,
                reason="TOGETHER_API_KEY not configured",
            )

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    @property
    def model(self) -> str:
        return self.settings.model

    def _complete(self, prompt: str, request: CuratorRequest) -> str:
        if not self.enabled:
            raise CuratorUnavailableError("Curator is disabled: no API key configured")

        try:
            resp = self._client.post(
                "/chat/completions",
                headers={"Authorization": f"Bearer {self.settings.api_key}"},
                json={
                    "model": self.settings.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": MAX_TOKENS,
                    "temperature": TEMPERATURE,
                },
            )
        except httpx.TimeoutException as e:
            raise CuratorTimeoutError(
                f"Curator did not answer within {self.settings.timeout_seconds}s",
                {"error": str(e)},
            )
        except httpx.HTTPError as e:
            raise CuratorUnavailableError(f"Curator request failed: {e}")

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message") or resp.reason_phrase
            except ValueError:
                message = resp.reason_phrase
            raise CuratorUnavailableError(
                f"Together.AI API error: {message}", {"status_code": resp.status_code}
            )

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            raise CuratorUnavailableError("Malformed response from Together.AI")
        if not content.strip():
            raise CuratorUnavailableError("Empty response from Together.AI")
        return content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class RuleBasedCurator(Curator):
    """
    Deterministic offline reviewer.

    Approves when every token of the matched name appears in the article
    excerpt; flags otherwise. Answers through the same grammar as the LLM.
    """

    provider = "rules"
    APPROVE_CONFIDENCE = 0.9
    FLAG_CONFIDENCE = 0.6

    def _complete(self, prompt: str, request: CuratorRequest) -> str:
        if request.matched is None:
            return (
                "RECOMMENDATION: FLAG\n"
                f"CONFIDENCE: {self.FLAG_CONFIDENCE}\n"
                "EXPLANATION: No watchlist entry to compare against.\n"
                f"CATEGORY: {request.entity_type}\n"
                "ISSUES: no watchlist match"
            )

        context = " ".join(re.sub(r"[^a-z0-9\s]", " ", unidecode(request.article_excerpt).lower()).split())
        context_tokens = set(context.split())
        name = request.matched_on or request.matched.normalized_name
        missing = [token for token in name.split() if token not in context_tokens]

        if not missing:
            return (
                "RECOMMENDATION: APPROVE\n"
                f"CONFIDENCE: {self.APPROVE_CONFIDENCE}\n"
                f"EXPLANATION: The article names {request.matched.full_name} explicitly.\n"
                f"CATEGORY: {request.entity_type}\n"
                "ISSUES: None"
            )
        return (
            "RECOMMENDATION: FLAG\n"
            f"CONFIDENCE: {self.FLAG_CONFIDENCE}\n"
            f"EXPLANATION: The article does not mention '{name}' in full; needs human review.\n"
            f"CATEGORY: {request.entity_type}\n"
            f"ISSUES: name tokens missing from article context: {' '.join(missing)}"
        )


class DisabledCurator(Curator):
    """Placeholder when curation is switched off."""

    provider = "off"

    @property
    def enabled(self) -> bool:
        return False

    def _complete(self, prompt: str, request: CuratorRequest) -> str:
        raise CuratorUnavailableError("Curator is disabled")


def build_curator(settings: CuratorSettings, client: httpx.Client | None = None) -> Curator:
    """Create the curator for the configured provider."""
    if settings.provider == "together":
        return TogetherCurator(settings, client=client)
    if settings.provider == "rules":
        return RuleBasedCurator(settings)
    if settings.provider == "off":
        return DisabledCurator(settings)
    raise ConfigurationError(f"Unknown curator provider: {settings.provider}")
