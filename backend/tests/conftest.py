"""
Pytest fixtures for curation and API tests.

Every test gets its own sqlite file under tmp_path. Pipelines run curator
reviews inline and record backoff sleeps instead of sleeping.
"""
import pytest
from fastapi.testclient import TestClient

from api.cache import app_cache
from api.dependencies import get_pipeline
from api.main import app
from curation.config import CurationSettings, CuratorSettings
from curation.curator import Curator, RuleBasedCurator
from curation.db import Database
from curation.migrations import apply_migrations
from curation.pipeline import CurationPipeline
from curation.seed_data import seed_records

# Not on any sanctions list; used for fuzzy human-review matches
CARRENO_RECORD = {
    "externalId": "test-carreno-001",
    "fullName": "Pedro Carreño",
    "entityType": "PERSON",
    "aliases": [],
    "sanctionsPrograms": ["VENEZUELA"],
    "source": "TEST",
    "tier": 2,
    "confidenceLevel": 4,
}

APPROVE_RESPONSE = """RECOMMENDATION: APPROVE
CONFIDENCE: 0.92
EXPLANATION: The article explicitly names the official.
CATEGORY: PERSON
ISSUES: None"""


class ScriptedCurator(Curator):
    """Curator double that replays scripted responses.

    Each response is a string, an exception to raise, or a callable taking
    the request. The last response repeats once the script runs out.
    """

    provider = "scripted"

    def __init__(self, *responses, settings=None):
        super().__init__(settings or CuratorSettings(provider="rules"))
        self.responses = list(responses) or [APPROVE_RESPONSE]
        self.requests = []

    def _complete(self, prompt, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def db(tmp_path):
    """Migrated database in a temp directory."""
    database = Database(tmp_path / "memoria.db", timeout=5)
    apply_migrations(database)
    return database


@pytest.fixture
def settings():
    return CurationSettings(
        curator=CuratorSettings(provider="rules", max_attempts=3, retry_backoff_seconds=0.5),
    )


@pytest.fixture
def sleeps():
    """Backoff delays requested by the pipeline."""
    return []


@pytest.fixture
def make_pipeline(db, settings, sleeps):
    """Factory for inline pipelines over the test database."""
    created = []

    def _make(curator=None, seed=True):
        pipeline = CurationPipeline(
            db,
            settings,
            curator=curator or RuleBasedCurator(settings.curator),
            background=False,
            sleep=sleeps.append,
        )
        if seed:
            pipeline.import_watchlist([*seed_records(), CARRENO_RECORD])
        created.append(pipeline)
        return pipeline

    yield _make
    for pipeline in created:
        pipeline.shutdown()


@pytest.fixture
def pipeline(make_pipeline):
    """Pipeline with the seed list plus one TEST entity, rule-based curator."""
    return make_pipeline()


@pytest.fixture
def client(pipeline):
    """Test client wired to the per-test pipeline."""
    app_cache.clear()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
    app_cache.clear()


@pytest.fixture
def base_url():
    """Base URL for API v1 endpoints."""
    return "/api/v1"
