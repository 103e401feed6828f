"""
Tests for the HTTP API.
"""

import asyncio
import random
from datetime import date

import pytest
from fastapi.testclient import TestClient

import main
from conftest import FakeProbe
from scoring.aggregator import ScoringScheme
from scoring.analyzer import TrafficAnalyzer
from scoring.estimator import TrafficEstimator
from scoring.models import ArchiveHistory, DNSStatus, SiteFeatures, SocialMentions
from store import StoreError

ARCHIVE = ArchiveHistory(snapshot_count=20, recent_count=4, frequency=0.3, last_seen=date(2024, 5, 1))
SOCIAL = SocialMentions(counts={"twitter": 2, "facebook": 0, "linkedin": 1})
FEATURES = SiteFeatures(has_ssl=True, has_www=False, has_robots_txt=True, has_sitemap=False)


def api_probes(fail=()):
    specs = {
        "archive": (ARCHIVE, ArchiveHistory()),
        "dns": (DNSStatus(has_nameservers=True, has_website=True), DNSStatus()),
        "indexing": (12, 0),
        "social": (SOCIAL, SocialMentions(counts={"twitter": 0, "facebook": 0, "linkedin": 0})),
        "features": (FEATURES, SiteFeatures()),
    }
    return {role: FakeProbe(role, value, fallback, fail=role in fail) for role, (value, fallback) in specs.items()}


@pytest.fixture
def probes():
    return api_probes()


@pytest.fixture
def client(monkeypatch, temp_store, probes):
    analyzer = TrafficAnalyzer(
        scheme=ScoringScheme.COMPREHENSIVE,
        probes=probes,
        estimator=TrafficEstimator(random.Random(3)),
        batch_pause=0,
        today=lambda: date(2024, 6, 1),
    )
    monkeypatch.setattr(main, "store", temp_store)
    monkeypatch.setattr(main, "analyzer", analyzer)
    main.rate_limiter.reset()
    return TestClient(main.app)


class TestHealth:
    """Test service endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_stats(self, client):
        data = client.get("/api/stats").json()

        assert set(data["caches"]) == {"analysis", "whois", "dns"}
        assert data["scoring_scheme"] == "comprehensive"


class TestDomains:
    """Test the tracked-domain endpoints."""

    def test_add_then_get(self, client):
        response = client.post("/api/domains", json={"domain": "HTTPS://Example.com/about"})

        assert response.status_code == 201
        assert response.json()["domain"] == "example.com"
        assert response.json()["status"] == "pending"

        row = client.get("/api/domains/example.com").json()
        assert row["traffic_score"] is None

    def test_add_existing_domain(self, client):
        client.post("/api/domains", json={"domain": "example.com"})

        response = client.post("/api/domains", json={"domain": "example.com"})

        assert response.status_code == 200
        assert response.json()["domain"] == "example.com"

    def test_add_invalid_domain(self, client):
        response = client.post("/api/domains", json={"domain": "localhost"})

        assert response.status_code == 400

    def test_get_missing_domain(self, client):
        assert client.get("/api/domains/missing.com").status_code == 404

    def test_list_available_domains(self, client, temp_store):
        temp_store.add_domain("waiting.com")

        client.post("/api/analyze/json", json={"domain": "scored.com"})
        assert client.get("/api/domains").json() == []

        client.post("/api/domains", json={"domain": "scored.com"})
        client.post("/api/domains/scored.com/analyze")

        rows = client.get("/api/domains", params={"search": "com"}).json()
        assert [r["domain"] for r in rows] == ["scored.com", "waiting.com"]

    def test_list_rejects_unknown_sort(self, client):
        response = client.get("/api/domains", params={"sort_by": "domain"})

        assert response.status_code == 400

    def test_list_store_unavailable(self, client, monkeypatch):
        def broken(**kwargs):
            raise StoreError("connection refused")

        monkeypatch.setattr(main.store, "list_domains", broken)

        assert client.get("/api/domains").status_code == 503

    def test_analyze_tracked_domain(self, client):
        client.post("/api/domains", json={"domain": "example.com"})

        response = client.post("/api/domains/example.com/analyze")

        assert response.status_code == 200
        row = response.json()
        assert row["status"] == "registered"
        assert row["archive_snapshots"] == 20
        assert row["social_mentions"] == 3
        assert row["web_presence"] == 15
        assert row["has_ssl"] is True
        assert 0 <= row["traffic_score"] <= 100
        assert row["last_checked"] is not None

    def test_analyze_untracked_domain(self, client, probes):
        response = client.post("/api/domains/untracked.com/analyze")

        assert response.status_code == 404
        assert probes["archive"].calls == []


class TestAnalyze:
    """Test the stateless analysis endpoints."""

    def test_analyze_json(self, client, temp_store):
        response = client.post("/api/analyze/json", json={"domain": "fresh-name.com"})

        assert response.status_code == 200
        data = response.json()
        assert data["domain"] == "fresh-name.com"
        assert data["status"] == "registered"
        assert data["indexed_pages"] == 12
        assert data["redirect_url"] is None
        assert not temp_store.exists("fresh-name.com")

    def test_analyze_json_invalid(self, client):
        assert client.post("/api/analyze/json", json={"domain": "127.0.0.1"}).status_code == 400

    def test_analyze_json_requires_domain(self, client):
        assert client.post("/api/analyze/json", json={}).status_code == 422

    def test_quick_check(self, client):
        response = client.get("/api/quick-check", params={"domain": "myshop2024.com"})

        assert response.status_code == 200
        assert response.json()["traffic_score"] == 75
        assert response.json()["status"] == "registered"


class TestProxy:
    """Test single-probe passthrough."""

    def test_archive(self, client):
        response = client.post("/api/proxy/archive", json={"domain": "example.com"})

        assert response.status_code == 200
        assert response.json()["snapshot_count"] == 20
        assert response.json()["last_seen"] == "2024-05-01"

    def test_indexing(self, client):
        response = client.post("/api/proxy/indexing", json={"domain": "example.com"})

        assert response.json() == {"indexed_pages": 12}

    def test_social(self, client):
        response = client.post("/api/proxy/social", json={"domain": "example.com"})

        assert response.json() == {"twitter": 2, "facebook": 0, "linkedin": 1, "total": 3}

    @pytest.mark.parametrize("probes", [api_probes(fail=("features",))])
    def test_failed_probe_answers_502_with_fallback(self, client):
        response = client.post("/api/proxy/features", json={"domain": "example.com"})

        assert response.status_code == 502
        data = response.json()
        assert "features unavailable" in data["error"]
        assert data["has_ssl"] is False

    def test_unknown_source(self, client):
        assert client.post("/api/proxy/whois", json={"domain": "example.com"}).status_code == 422


def _runs_on_event_loop():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class TestStoreCallsOffEventLoop:
    """Blocking store calls run in the worker thread pool."""

    def test_listing(self, client, monkeypatch):
        seen = []

        def recording_list(**kwargs):
            seen.append(_runs_on_event_loop())
            return []

        monkeypatch.setattr(main.store, "list_domains", recording_list)

        assert client.get("/api/domains").status_code == 200
        assert seen == [False]

    def test_rescoring(self, client, monkeypatch, temp_store):
        temp_store.add_domain("example.com")
        seen = []
        exists = temp_store.exists
        update = temp_store.update_analysis

        def recording_exists(domain):
            seen.append(("exists", _runs_on_event_loop()))
            return exists(domain)

        def recording_update(analysis):
            seen.append(("update", _runs_on_event_loop()))
            return update(analysis)

        monkeypatch.setattr(temp_store, "exists", recording_exists)
        monkeypatch.setattr(temp_store, "update_analysis", recording_update)

        assert client.post("/api/domains/example.com/analyze").status_code == 200
        assert seen == [("exists", False), ("update", False)]
