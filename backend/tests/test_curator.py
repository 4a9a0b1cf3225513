"""
Tests for the curator adapter: response grammar, decision policy and the
Together.AI transport.
"""
import httpx
import pytest

from curation.config import CuratorSettings
from curation.curator import (
    EXCERPT_LIMIT,
    UNPARSEABLE_ISSUE,
    CuratorRequest,
    DisabledCurator,
    RuleBasedCurator,
    TogetherCurator,
    build_curator,
    build_prompt,
    decide,
    parse_curator_response,
)
from curation.errors import CuratorParseError, CuratorTimeoutError, CuratorUnavailableError
from curation.models import (
    CuratorVerdict,
    Decision,
    EntityType,
    ExtractedEntity,
    MatchResult,
    MatchType,
    ReviewItem,
    Routing,
    WatchlistEntity,
)

MADURO = WatchlistEntity(
    id="wl-maduro",
    external_id="ofac-maduro-001",
    full_name="Nicolás Maduro Moros",
    normalized_name="nicolas maduro moros",
    aliases=("Nicolas Maduro",),
    normalized_aliases=("nicolas maduro",),
    sanctions_programs=frozenset({"VENEZUELA"}),
)

FULL_RESPONSE = """RECOMMENDATION: INVESTIGATE
CONFIDENCE: 0.7
EXPLANATION: The article mentions a Maduro but the context
suggests a different person.
CATEGORY: PERSON
ISSUES: common surname, possible homonym"""


def make_request(context="El presidente Nicolás Maduro anunció nuevas medidas.", matched=MADURO):
    return CuratorRequest(
        entity_text="Nicolás Madura",
        normalized_text="nicolas madura",
        entity_type="PERSON",
        prior_confidence=3,
        language="es",
        article_excerpt=context,
        matched=matched,
        match_score=92.9,
        match_type="fuzzy",
        matched_on="nicolas maduro",
    )


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def together(handler, api_key="test-key"):
    settings = CuratorSettings(provider="together", api_key=api_key, base_url="https://llm.test/v1")
    client = httpx.Client(base_url=settings.base_url, transport=httpx.MockTransport(handler))
    return TogetherCurator(settings, client=client)


class TestParseResponse:
    """Labelled-line grammar."""

    def test_full_response(self):
        verdict = parse_curator_response(FULL_RESPONSE)
        assert verdict.recommendation is Decision.INVESTIGATE
        assert verdict.confidence == 0.7
        assert verdict.explanation == (
            "The article mentions a Maduro but the context suggests a different person."
        )
        assert verdict.suggested_category == "PERSON"
        assert verdict.issues == ("common surname", "possible homonym")

    def test_no_issues(self):
        verdict = parse_curator_response("RECOMMENDATION: APPROVE\nCONFIDENCE: 0.95\nISSUES: None")
        assert verdict.issues == ()

    def test_markdown_labels(self):
        verdict = parse_curator_response("**RECOMMENDATION:** FLAG\n**CONFIDENCE:** 0.4")
        assert verdict.recommendation is Decision.FLAG
        assert verdict.confidence == 0.4

    def test_bracketed_values(self):
        verdict = parse_curator_response("RECOMMENDATION: [APPROVE]\nCONFIDENCE: [0.9]")
        assert verdict.recommendation is Decision.APPROVE
        assert verdict.confidence == 0.9

    def test_lowercase_recommendation(self):
        assert parse_curator_response("recommendation: approve").recommendation is Decision.APPROVE

    def test_percent_confidence(self):
        assert parse_curator_response("RECOMMENDATION: APPROVE\nCONFIDENCE: 85%").confidence == 0.85

    def test_missing_confidence(self):
        assert parse_curator_response("RECOMMENDATION: APPROVE").confidence == 0.0

    def test_missing_recommendation(self):
        with pytest.raises(CuratorParseError):
            parse_curator_response("CONFIDENCE: 0.9\nEXPLANATION: looks fine")

    def test_unknown_recommendation(self):
        with pytest.raises(CuratorParseError):
            parse_curator_response("RECOMMENDATION: MAYBE")

    def test_empty(self):
        with pytest.raises(CuratorParseError):
            parse_curator_response("   ")


class TestDecide:
    """Weak approvals are downgraded; curators never reject."""

    def test_confident_approval(self):
        verdict = CuratorVerdict(Decision.APPROVE, 0.9, "")
        assert decide(verdict, 0.85) is Decision.APPROVE

    def test_weak_approval(self):
        verdict = CuratorVerdict(Decision.APPROVE, 0.84, "")
        assert decide(verdict, 0.85) is Decision.FLAG

    def test_threshold_inclusive(self):
        verdict = CuratorVerdict(Decision.APPROVE, 0.85, "")
        assert decide(verdict, 0.85) is Decision.APPROVE

    def test_investigate_kept(self):
        verdict = CuratorVerdict(Decision.INVESTIGATE, 0.2, "")
        assert decide(verdict, 0.85) is Decision.INVESTIGATE

    def test_reject_becomes_flag(self):
        verdict = CuratorVerdict(Decision.REJECT, 0.99, "")
        assert decide(verdict, 0.85) is Decision.FLAG


class TestPrompt:
    """Prompt contents."""

    def test_includes_match(self):
        prompt = build_prompt(make_request())
        assert "Tier 1 Match Found" in prompt
        assert "Nicolás Maduro Moros" in prompt
        assert "RECOMMENDATION: [APPROVE|FLAG|INVESTIGATE]" in prompt
        assert "3/5 (CREDIBLE" in prompt

    def test_without_match(self):
        assert "Tier 1 Match Found" not in build_prompt(make_request(matched=None))

    def test_excerpt_limit(self):
        entity = ExtractedEntity(
            raw_text="Nicolás Madura",
            entity_type=EntityType.PERSON,
            article_context="x" * 2000,
            normalized_text="nicolas madura",
        )
        match = MatchResult(entity, MADURO, 92.9, MatchType.FUZZY, "nicolas maduro", 1)
        item = ReviewItem(id="item-1", entity=entity, match=match, routing=Routing.LLM_REVIEW)

        request = CuratorRequest.from_item(item)
        assert len(request.article_excerpt) == EXCERPT_LIMIT
        assert request.matched is MADURO
        assert request.to_payload()["type"] == "PERSON"


class TestTogetherCurator:
    """OpenAI-compatible chat completions over httpx."""

    def test_review(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = request.read()
            return completion(FULL_RESPONSE)

        curator = together(handler)
        verdict = curator.review(make_request())
        assert verdict.recommendation is Decision.INVESTIGATE
        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert b'"max_tokens":500' in seen["body"].replace(b" ", b"")
        assert b'"temperature":0.3' in seen["body"].replace(b" ", b"")
        assert curator.status()["reviews_processed"] == 1

    def test_unparseable_response_flags(self):
        curator = together(lambda request: completion("I think this is probably him."))
        verdict = curator.review(make_request())
        assert verdict.recommendation is Decision.FLAG
        assert verdict.issues == (UNPARSEABLE_ISSUE,)
        assert curator.status()["unparseable"] == 1

    def test_http_error(self):
        curator = together(lambda request: httpx.Response(500, json={"error": {"message": "overloaded"}}))
        with pytest.raises(CuratorUnavailableError) as exc_info:
            curator.review(make_request())
        assert "overloaded" in exc_info.value.message
        assert curator.status()["failures"] == 1

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(CuratorTimeoutError):
            together(handler).review(make_request())

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CuratorUnavailableError):
            together(handler).review(make_request())

    def test_empty_content(self):
        with pytest.raises(CuratorUnavailableError):
            together(lambda request: completion("  ")).review(make_request())

    def test_disabled_without_key(self):
        curator = together(lambda request: pytest.fail("no request expected"), api_key="")
        assert not curator.enabled
        with pytest.raises(CuratorUnavailableError):
            curator.review(make_request())


class TestOtherProviders:
    """Rule-based and disabled curators."""

    def test_rules_approve(self):
        verdict = RuleBasedCurator(CuratorSettings(provider="rules")).review(make_request())
        assert verdict.recommendation is Decision.APPROVE
        assert verdict.confidence == 0.9

    def test_rules_flag(self):
        curator = RuleBasedCurator(CuratorSettings(provider="rules"))
        verdict = curator.review(make_request(context="Protesta en Caracas."))
        assert verdict.recommendation is Decision.FLAG
        assert verdict.issues == ("name tokens missing from article context: nicolas maduro",)

    def test_disabled(self):
        curator = DisabledCurator(CuratorSettings(provider="off"))
        assert not curator.enabled
        with pytest.raises(CuratorUnavailableError):
            curator.review(make_request())

    @pytest.mark.parametrize("provider,cls", [
        ("together", TogetherCurator),
        ("rules", RuleBasedCurator),
        ("off", DisabledCurator),
    ])
    def test_build(self, provider, cls):
        curator = build_curator(CuratorSettings(provider=provider))
        try:
            assert isinstance(curator, cls)
        finally:
            curator.close()
