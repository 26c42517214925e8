"""HTTP-level tests for the assessment and reports routers."""
import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app, in_flight
from app.schemas.quiz import QuizAnswers
from app.schemas.report import NarrativeAnalysis, NarrativeInsights
from app.services.cache_service import ContentCache
from app.services.generation_lock import GenerationLock
from app.services.report_tracker import ReportViewTracker
from app.utils.storage import InMemoryStore, get_store


def _narrative():
    narrative = MagicMock()
    narrative.generate_preview_insights = AsyncMock(return_value=NarrativeInsights(
        preview_insights="Preview", key_insights=["a"] * 4, success_predictors=["b"] * 4,
    ))
    narrative.generate_characteristics = AsyncMock(return_value=["c"] * 6)
    narrative.generate_fit_descriptions = AsyncMock(
        side_effect=lambda answers, top: {m.model_id: "fit" for m in top}
    )
    narrative.generate_avoid_descriptions = AsyncMock(
        side_effect=lambda answers, bottom: {m.model_id: "avoid" for m in bottom}
    )
    narrative.generate_detailed_analysis = AsyncMock(return_value=NarrativeAnalysis(
        full_analysis="Analysis",
        key_insights=["k"] * 4,
        personalized_recommendations=["r"] * 3,
        risk_factors=["x"] * 3,
        success_predictors=["s"] * 3,
    ))
    return narrative


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with patch("app.api.reports._get_narrative_service", return_value=_narrative()):
        yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_readiness_in_memory(self, client, store):
        with patch("app.main.get_store", return_value=store):
            body = client.get("/health/ready").json()
        assert body["store"] == "memory"
        assert body["status"] == "healthy"
        assert body["cache_entries"] == 0
        assert body["reports_viewed"] == 0

    def test_readiness_counts_viewed_reports(self, client, store, sample_answers):
        asyncio.run(ReportViewTracker(store).mark_viewed("41", sample_answers))
        with patch("app.main.get_store", return_value=store):
            body = client.get("/health/ready").json()
        assert body["reports_viewed"] == 1

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"x-request-id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"

    def test_generate_refused_while_shutting_down(self, client, sample_answers_data):
        in_flight.shutting_down = True
        try:
            response = client.post("/api/v1/reports/generate", json={"answers": sample_answers_data})
        finally:
            in_flight.shutting_down = False
        assert response.status_code == 503


class TestAssessment:
    """POST /api/v1/assessment/*"""

    def test_traits(self, client, sample_answers_data):
        response = client.post("/api/v1/assessment/traits", json=sample_answers_data)
        assert response.status_code == 200
        body = response.json()
        assert set(body["scores"]) >= {"risk_tolerance", "tech_comfort", "discipline"}
        assert len(body["descriptions"]) == len(body["scores"])
        assert all(d["level"] in {"low", "medium", "high"} for d in body["descriptions"])

    def test_traits_empty_quiz(self, client):
        response = client.post("/api/v1/assessment/traits", json={})
        assert response.status_code == 200
        assert response.json()["scores"]["structure_preference"] == 3.0

    def test_models(self, client, sample_answers_data):
        response = client.post("/api/v1/assessment/models?top=2&bottom=1", json=sample_answers_data)
        assert response.status_code == 200
        body = response.json()
        assert len(body["ranked"]) == 19
        assert [m["model_id"] for m in body["top"]] == ["ai-marketing-agency", "affiliate-marketing"]
        assert [m["model_id"] for m in body["bottom"]] == ["handmade-goods"]

    def test_models_rejects_negative_count(self, client):
        assert client.post("/api/v1/assessment/models?top=-1", json={}).status_code == 422


class TestGenerate:
    """POST /api/v1/reports/generate"""

    def test_generate_and_view_ledger(self, client, sample_answers_data):
        response = client.post(
            "/api/v1/reports/generate",
            json={"answers": sample_answers_data, "quiz_attempt_id": "99"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["insights"]["preview_insights"] == "Preview"
        assert body["top_model"]["model_id"] == "ai-marketing-agency"
        assert [s["name"] for s in body["stages"]][0] == "profile-analysis"

        access = client.get("/api/v1/reports/99/access").json()
        assert access == {"quiz_attempt_id": "99", "viewed": True, "unlocked": None}

    def test_generate_conflict_when_locked(self, client, store, sample_answers_data):
        held = json.dumps({"active": True, "since": time.time(), "owner": "other"})
        answers = QuizAnswers.model_validate(sample_answers_data)
        key = GenerationLock.key_for(ContentCache(store).make_key(answers))
        asyncio.run(store.set(key, held))

        response = client.post("/api/v1/reports/generate", json={"answers": sample_answers_data})
        assert response.status_code == 409


class TestCacheEndpoints:
    """Operator cache actions."""

    def test_status_after_generation(self, client, sample_answers_data):
        assert client.get("/api/v1/reports/cache/status").json()["count"] == 0
        client.post("/api/v1/reports/generate", json={"answers": sample_answers_data})
        status = client.get("/api/v1/reports/cache/status").json()
        assert status["count"] == 1
        assert status["total_size_bytes"] > 0

    def test_reset_invalidates(self, client, sample_answers_data):
        client.post("/api/v1/reports/generate", json={"answers": sample_answers_data})
        response = client.post("/api/v1/reports/cache/reset")
        assert response.json() == {"status": "invalidated", "removed": 0}

        again = client.post("/api/v1/reports/generate", json={"answers": sample_answers_data}).json()
        assert again["from_cache"] is False

    def test_clear_is_debounced(self, client, sample_answers_data):
        client.post("/api/v1/reports/generate", json={"answers": sample_answers_data})
        first = client.delete("/api/v1/reports/cache")
        assert first.status_code == 200
        assert first.json() == {"status": "cleared", "removed": 1}
        assert client.delete("/api/v1/reports/cache").status_code == 429


class TestAccess:
    """View and unlock ledgers."""

    def test_unknown_attempt(self, client):
        body = client.get("/api/v1/reports/nope/access?user_id=u1").json()
        assert body == {"quiz_attempt_id": "nope", "viewed": False, "unlocked": False}

    def test_unlock(self, client):
        response = client.post("/api/v1/reports/7/unlock", json={"user_id": "u1"})
        assert response.status_code == 200
        assert response.json()["unlocked"] is True
        assert client.get("/api/v1/reports/7/access?user_id=u1").json()["unlocked"] is True
        assert client.get("/api/v1/reports/7/access?user_id=u2").json()["unlocked"] is False

    def test_clear_views(self, client, sample_answers_data):
        client.post(
            "/api/v1/reports/generate",
            json={"answers": sample_answers_data, "quiz_attempt_id": "12"},
        )
        response = client.delete("/api/v1/reports/views")
        assert response.json() == {"status": "cleared", "removed": 1}
        assert client.get("/api/v1/reports/12/access").json()["viewed"] is False

    def test_unlock_requires_user(self, client):
        assert client.post("/api/v1/reports/7/unlock", json={"user_id": ""}).status_code == 422
