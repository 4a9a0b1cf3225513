"""
Tests for the HTTP API: root, health, Tier-1, ingestion and review queue.
"""
import pytest

from api.dependencies import get_pipeline
from api.main import app
from curation.db import Database
from curation.migrations import apply_migrations
from curation.pipeline import CurationPipeline
from curation.seed_data import seed_records

MADURO_ARTICLE = "El presidente Nicolás Maduro anunció nuevas medidas económicas en Caracas."
CARRILLO_ARTICLE = "El diputado Pedro Carrillo presentó una denuncia ante la fiscalía."


def entity_payload(name, entity_type="PERSON", context=CARRILLO_ARTICLE, **extra):
    return {"rawText": name, "type": entity_type, "articleContext": context, **extra}


@pytest.fixture
def human_item(client, base_url):
    """A pending human-review item created through the API."""
    response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Pedro Carrillo"))
    assert response.status_code == 201
    return response.json()["review_item"]


class TestRoot:
    """Tests for root, health and metrics endpoints."""

    def test_root_lists_endpoints(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "1.0.0"
        endpoints = data["endpoints"]
        assert endpoints["tier1_match"] == "/api/v1/tier1/match"
        assert endpoints["ingest_entity"] == "/api/v1/ingestion/entities"
        assert endpoints["review_queue"] == "/api/v1/review-queue"

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"]["status"] == "connected"
        assert data["watchlist"] == {"entities": 11, "version": 1}
        assert data["curator"] == {"provider": "rules", "enabled": True}

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_metrics(self, client, base_url):
        client.get(f"{base_url}/tier1/stats")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.json()["cache"]["tier1_stats"]["size"] == 1


class TestTier1:
    """Watchlist import, listing and matching."""

    def test_import_records(self, client, base_url):
        response = client.post(f"{base_url}/tier1/import", json={"records": [
            {
                "externalId": "test-varela-001",
                "fullName": "Iris Varela",
                "entityType": "PERSON",
                "source": "TEST",
            },
            {"externalId": "broken", "source": "TEST"},
        ]})
        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 1
        assert data["skipped"] == 1
        assert data["errors"][0]["index"] == 1
        assert data["errors"][0]["external_id"] == "broken"
        assert data["watchlist_version"] == 2

    def test_import_ofac_seed_is_idempotent(self, client, base_url):
        response = client.post(f"{base_url}/tier1/import/ofac")
        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 0
        assert data["skipped"] == 10
        assert data["watchlist_version"] == 1

    def test_list_officials(self, client, base_url):
        response = client.get(f"{base_url}/tier1/officials")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 11
        assert data["data"][0]["full_name"] == "Alex Nain Saab Morán"

    def test_list_officials_by_type(self, client, base_url):
        response = client.get(f"{base_url}/tier1/officials", params={"entity_type": "ORGANIZATION"})
        assert response.json()["total"] == 2

    def test_list_officials_invalid_type(self, client, base_url):
        response = client.get(f"{base_url}/tier1/officials", params={"entity_type": "VESSEL"})
        assert response.status_code == 422

    def test_get_official(self, client, base_url):
        official = client.get(f"{base_url}/tier1/officials").json()["data"][0]
        response = client.get(f"{base_url}/tier1/officials/{official['id']}")
        assert response.status_code == 200
        assert response.json() == official

    def test_get_official_not_found(self, client, base_url):
        response = client.get(f"{base_url}/tier1/officials/missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_stats(self, client, base_url):
        response = client.get(f"{base_url}/tier1/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 11
        assert data["by_source"] == {"OFAC": 10, "TEST": 1}
        assert data["by_tier"] == {"1": 10, "2": 1}
        assert data["by_entity_type"] == {"PERSON": 9, "ORGANIZATION": 2}

    def test_stats_follow_imports(self, client, base_url):
        assert client.get(f"{base_url}/tier1/stats").json()["total"] == 11
        client.post(f"{base_url}/tier1/import", json={"records": [
            {"externalId": "test-varela-001", "fullName": "Iris Varela", "source": "TEST"},
        ]})
        assert client.get(f"{base_url}/tier1/stats").json()["total"] == 12

    def test_stats_per_database(self, client, base_url, tmp_path, settings):
        assert client.get(f"{base_url}/tier1/stats").json()["total"] == 11

        other_db = Database(tmp_path / "other.db", timeout=5)
        apply_migrations(other_db)
        other = CurationPipeline(other_db, settings, background=False)
        other.import_watchlist(seed_records())
        assert other.watchlist.version == 1
        app.dependency_overrides[get_pipeline] = lambda: other
        try:
            assert client.get(f"{base_url}/tier1/stats").json()["total"] == 10
        finally:
            other.shutdown()

    def test_match_alias(self, client, base_url):
        response = client.post(f"{base_url}/tier1/match", json={"name": "Nicolás Maduro", "type": "PERSON"})
        assert response.status_code == 200
        data = response.json()
        assert data["normalized_name"] == "nicolas maduro"
        assert data["match_type"] == "alias"
        assert data["score"] == 95.0
        assert data["routing"] == "auto-approve"
        assert data["confidence_level"] == 5
        assert data["watchlist_entity"]["external_id"] == "ofac-maduro-001"
        assert data["breakdown"] is None

    def test_match_explain(self, client, base_url):
        response = client.post(
            f"{base_url}/tier1/match", json={"name": "Nicolás Madura", "type": "PERSON", "explain": True}
        )
        data = response.json()
        assert data["match_type"] == "fuzzy"
        assert data["routing"] == "llm-review"
        assert set(data["breakdown"]["nicolas maduro"]) == {
            "weighted_ratio", "token_sort", "token_set", "levenshtein",
        }

    def test_match_no_side_effects(self, client, base_url):
        client.post(f"{base_url}/tier1/match", json={"name": "Pedro Carrillo"})
        assert client.get(f"{base_url}/review-queue/stats").json()["total"] == 0

    def test_match_no_candidate(self, client, base_url):
        data = client.post(f"{base_url}/tier1/match", json={"name": "Juan Pérez"}).json()
        assert data["match_type"] == "none"
        assert data["routing"] == "passthrough"
        assert data["watchlist_entity"] is None

    def test_match_honorific_only(self, client, base_url):
        response = client.post(f"{base_url}/tier1/match", json={"name": "Sr."})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_INPUT"


class TestIngestion:
    """Single and batch entity ingestion."""

    def test_auto_approve(self, client, base_url):
        response = client.post(
            f"{base_url}/ingestion/entities", json=entity_payload("Nicolás Maduro", context=MADURO_ARTICLE)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["routing"] == "auto-approve"
        assert data["status"] == "approved"
        assert data["review_item"] is None
        assert data["audit_event_id"] is not None

    def test_passthrough(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Caracas", "LOCATION"))
        assert response.status_code == 200
        assert response.json()["routing"] == "passthrough"
        assert response.json()["status"] is None

    def test_human_review_created(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Pedro Carrillo"))
        assert response.status_code == 201
        data = response.json()
        assert data["routing"] == "human-review"
        assert data["status"] == "pending"
        assert data["review_item"]["match"]["watchlist_entity"]["full_name"] == "Pedro Carreño"
        assert data["review_item"]["version"] == 1

    def test_llm_review_curated(self, client, base_url):
        response = client.post(
            f"{base_url}/ingestion/entities", json=entity_payload("Nicolás Madura", context=MADURO_ARTICLE)
        )
        assert response.status_code == 201
        data = response.json()
        assert data["routing"] == "llm-review"
        assert data["status"] == "approved"
        assert data["review_item"]["resolved_by"] == "llm-curator:rules"

    def test_duplicate(self, client, base_url, human_item):
        response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Pedro Carrillo"))
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "DUPLICATE_REVIEW"
        assert error["details"]["existing_id"] == human_item["id"]

    def test_same_name_other_article(self, client, base_url, human_item):
        response = client.post(
            f"{base_url}/ingestion/entities",
            json=entity_payload("Pedro Carrillo", context="Otra nota sobre Pedro Carrillo."),
        )
        assert response.status_code == 201

    def test_invalid_type(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Caracas", "PLACE"))
        assert response.status_code == 422

    def test_invalid_source_confidence(self, client, base_url):
        response = client.post(
            f"{base_url}/ingestion/entities", json=entity_payload("Pedro Carrillo", sourceConfidence=9)
        )
        assert response.status_code == 422

    def test_honorific_only_name(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities", json=entity_payload("Sr."))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_INPUT"

    def test_batch(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities/batch", json={"entities": [
            entity_payload("Nicolás Maduro", context=MADURO_ARTICLE),
            entity_payload("Sr."),
            entity_payload("Pedro Carrillo"),
        ]})
        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["summary"]["auto-approve"] == 1
        assert data["summary"]["human-review"] == 1
        assert data["errors"][0]["index"] == 1
        assert data["errors"][0]["code"] == "INVALID_INPUT"

    def test_empty_batch(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/entities/batch", json={"entities": []})
        assert response.status_code == 422

    def test_curator_status(self, client, base_url):
        response = client.get(f"{base_url}/ingestion/curator/status")
        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "rules"
        assert data["enabled"] is True
        assert data["pending_llm_review"] == 0
        assert data["max_attempts"] == 3

    def test_curator_retry_nothing_pending(self, client, base_url):
        response = client.post(f"{base_url}/ingestion/curator/retry")
        assert response.status_code == 200
        assert response.json() == {"scheduled": 0, "routed_to_human": 0, "in_flight": 0}


class TestReviewQueue:
    """Listing, resolution and audit of review items."""

    def test_list_pending(self, client, base_url, human_item):
        response = client.get(f"{base_url}/review-queue")
        assert response.status_code == 200
        data = response.json()
        assert [item["id"] for item in data["data"]] == [human_item["id"]]
        assert data["pagination"]["total"] == 1

    def test_pagination_is_fifo(self, client, base_url):
        ids = []
        for context in ("Primera nota.", "Segunda nota.", "Tercera nota."):
            response = client.post(
                f"{base_url}/ingestion/entities", json=entity_payload("Pedro Carrillo", context=context)
            )
            ids.append(response.json()["review_item"]["id"])

        page = client.get(f"{base_url}/review-queue", params={"page": 2, "per_page": 2}).json()
        assert [item["id"] for item in page["data"]] == [ids[2]]
        assert page["pagination"] == {"page": 2, "per_page": 2, "total": 3, "total_pages": 2}

    def test_filters(self, client, base_url, human_item):
        params = {"routing": "human-review", "entity_type": "PERSON"}
        assert client.get(f"{base_url}/review-queue", params=params).json()["pagination"]["total"] == 1
        assert client.get(f"{base_url}/review-queue", params={"min_score": 90}).json()["data"] == []

    def test_per_page_limit(self, client, base_url):
        response = client.get(f"{base_url}/review-queue", params={"per_page": 500})
        assert response.status_code == 422

    def test_get_item(self, client, base_url, human_item):
        response = client.get(f"{base_url}/review-queue/{human_item['id']}")
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_get_missing_item(self, client, base_url):
        response = client.get(f"{base_url}/review-queue/missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_resolve(self, client, base_url, human_item):
        url = f"{base_url}/review-queue/{human_item['id']}/resolve"
        response = client.post(url, json={"decision": "approve", "reviewer": "analyst", "notes": "Confirmed"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["resolved_by"] == "analyst"
        assert data["notes"] == "Confirmed"
        assert data["version"] == 2

        assert client.get(f"{base_url}/review-queue").json()["data"] == []

    def test_resolve_twice(self, client, base_url, human_item):
        url = f"{base_url}/review-queue/{human_item['id']}/resolve"
        client.post(url, json={"decision": "reject", "reviewer": "analyst"})
        response = client.post(url, json={"decision": "approve", "reviewer": "someone-else"})
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ALREADY_RESOLVED"
        assert error["details"]["status"] == "rejected"
        assert error["details"]["resolved_by"] == "analyst"

    def test_resolve_stale_version(self, client, base_url, human_item):
        url = f"{base_url}/review-queue/{human_item['id']}/resolve"
        response = client.post(url, json={"decision": "flag", "reviewer": "analyst", "expected_version": 5})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "STALE_VERSION"

    def test_resolve_invalid_decision(self, client, base_url, human_item):
        url = f"{base_url}/review-queue/{human_item['id']}/resolve"
        response = client.post(url, json={"decision": "maybe", "reviewer": "analyst"})
        assert response.status_code == 422

    def test_audit_trail(self, client, base_url, human_item):
        client.post(
            f"{base_url}/review-queue/{human_item['id']}/resolve",
            json={"decision": "investigate", "reviewer": "analyst"},
        )
        response = client.get(f"{base_url}/review-queue/{human_item['id']}/audit")
        assert response.status_code == 200
        events = response.json()["events"]
        assert [e["event"] for e in events] == ["enqueued", "resolved"]
        assert events[1]["to_status"] == "investigating"
        assert events[1]["actor"] == "analyst"

    def test_stats(self, client, base_url, human_item):
        client.post(
            f"{base_url}/ingestion/entities", json=entity_payload("Nicolás Maduro", context=MADURO_ARTICLE)
        )
        data = client.get(f"{base_url}/review-queue/stats").json()
        assert data["total"] == 1
        assert data["by_status"]["pending"] == 1
        assert data["pending_by_routing"] == {"llm-review": 0, "human-review": 1}
        assert data["auto_approved"] == 1
