"""
Centralized thresholds and settings for the curation pipeline.

Defaults reconstruct the documented tiers: >=95 auto-approve, 85-95 LLM
review, below 85 human review, below the floor no match at all. Every value
can be overridden through the environment.
"""
import os
from dataclasses import dataclass, field

from .errors import ConfigurationError

# Match score thresholds (0-100 scale)
ROUTING_THRESHOLDS = {
    'auto_approve': 95.0,
    'llm_review': 85.0,
    'floor': 60.0,
}

# Match score -> 1-5 confidence level (OFFICIAL, VERIFIED, CREDIBLE, UNVERIFIED, RUMOR)
CONFIDENCE_LEVEL_THRESHOLDS = [
    (95.0, 5),
    (85.0, 4),
    (75.0, 3),
    (65.0, 2),
]

CONFIDENCE_LEVEL_LABELS = {
    1: 'RUMOR (unverified claim)',
    2: 'UNVERIFIED (weak evidence)',
    3: 'CREDIBLE (moderate evidence)',
    4: 'VERIFIED (strong evidence)',
    5: 'OFFICIAL (government/court document)',
}

DEFAULT_CURATOR_BASE_URL = "https://api.together.xyz/v1"
DEFAULT_CURATOR_MODEL = "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo"
_PLACEHOLDER_KEYS = {"", "your-together-api-key-here"}


def get_confidence_level(score: float) -> int:
    """Return the 1-5 confidence level for a 0-100 match score."""
    for threshold, level in CONFIDENCE_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return 1


@dataclass(frozen=True)
class RoutingThresholds:
    """Score thresholds used by the classifier and the matcher floor."""
    auto_approve: float = ROUTING_THRESHOLDS['auto_approve']
    llm_review: float = ROUTING_THRESHOLDS['llm_review']
    floor: float = ROUTING_THRESHOLDS['floor']

    def __post_init__(self):
        if not (0 <= self.floor <= self.llm_review <= self.auto_approve <= 100):
            raise ConfigurationError(
                "Thresholds must satisfy 0 <= floor <= llm_review <= auto_approve <= 100",
                {"floor": self.floor, "llm_review": self.llm_review,
                 "auto_approve": self.auto_approve},
            )


@dataclass(frozen=True)
class CuratorSettings:
    """Settings for the LLM curator adapter."""
    provider: str = "together"
    api_key: str = ""
    base_url: str = DEFAULT_CURATOR_BASE_URL
    model: str = DEFAULT_CURATOR_MODEL
    timeout_seconds: float = 20.0
    max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    min_approve_confidence: float = 0.85
    workers: int = 4

    def __post_init__(self):
        if self.provider not in ("together", "rules", "off"):
            raise ConfigurationError(f"Unknown curator provider: {self.provider}")
        if self.max_attempts < 1:
            raise ConfigurationError("Curator max_attempts must be at least 1")
        if not 0.0 <= self.min_approve_confidence <= 1.0:
            raise ConfigurationError("min_approve_confidence must be within 0.0-1.0")

    @property
    def enabled(self) -> bool:
        if self.provider == "off":
            return False
        if self.provider == "rules":
            return True
        return self.api_key not in _PLACEHOLDER_KEYS


@dataclass(frozen=True)
class CurationSettings:
    thresholds: RoutingThresholds = field(default_factory=RoutingThresholds)
    curator: CuratorSettings = field(default_factory=CuratorSettings)

    @classmethod
    def from_env(cls, env: dict | None = None) -> "CurationSettings":
        """Build settings from MEMORIA_* environment variables."""
        env = os.environ if env is None else env
        try:
            thresholds = RoutingThresholds(
                auto_approve=float(env.get("MEMORIA_AUTO_APPROVE_THRESHOLD", ROUTING_THRESHOLDS['auto_approve'])),
                llm_review=float(env.get("MEMORIA_LLM_REVIEW_THRESHOLD", ROUTING_THRESHOLDS['llm_review'])),
                floor=float(env.get("MEMORIA_MATCH_FLOOR", ROUTING_THRESHOLDS['floor'])),
            )
            curator = CuratorSettings(
                provider=env.get("MEMORIA_CURATOR", "together").strip().lower(),
                api_key=env.get("TOGETHER_API_KEY", "").strip(),
                base_url=env.get("MEMORIA_CURATOR_BASE_URL", DEFAULT_CURATOR_BASE_URL),
                model=env.get("MEMORIA_CURATOR_MODEL", DEFAULT_CURATOR_MODEL),
                timeout_seconds=float(env.get("MEMORIA_CURATOR_TIMEOUT", "20")),
                max_attempts=int(env.get("MEMORIA_CURATOR_MAX_ATTEMPTS", "3")),
                retry_backoff_seconds=float(env.get("MEMORIA_CURATOR_BACKOFF", "1.0")),
                min_approve_confidence=float(env.get("MEMORIA_CURATOR_MIN_APPROVE_CONFIDENCE", "0.85")),
                workers=int(env.get("MEMORIA_CURATOR_WORKERS", "4")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}")
        return cls(thresholds=thresholds, curator=curator)
