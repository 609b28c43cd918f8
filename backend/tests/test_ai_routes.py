"""
Integration tests for the HTTP surface.

The app runs with its real middleware and exception handlers; the store,
orchestrator, chat and recommendation services are swapped through
``app.dependency_overrides``.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FIXED_NOW, InMemoryStore, StubProvider
from kupado.core.circuit_breaker import CircuitBreaker
from kupado.core.database import get_store
from kupado.core.errors import ProviderOverloadedError
from kupado.main import app
from kupado.services.ai.chat import ChatService, get_chat_service
from kupado.services.ai.orchestration import get_ai_orchestration_service
from kupado.services.recommendation.similar_ads import SimilarAdsService, get_similar_ads_service
from kupado.services.recommendation.user_recommendations import (
    UserRecommendationService,
    get_user_recommendation_service,
)

COMPARISON_OUTPUT = {
    "summary": "Samsung wins on price.",
    "comparison": {"specifications": "s", "priceValue": "p", "condition": "c"},
    "recommendation": {"bestChoice": 1, "reasoning": "Cheaper"},
    "suitability": [],
}


@pytest.fixture
def client():
    with patch("kupado.main.initialize_store", AsyncMock(return_value=False)):
        with TestClient(app) as test_client:
            yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def routed(client, make_service, store):
    service = make_service()
    app.dependency_overrides[get_ai_orchestration_service] = lambda: service
    app.dependency_overrides[get_store] = lambda: store
    return service


class TestGenerationRoutes:
    def test_generate_description(self, client, routed, gemini):
        gemini.payload = {"description": "Zachovalý mestský bicykel."}

        response = client.post(
            "/api/ai/generate-description",
            json={"productInfo": {"title": "Bicykel", "price": 120}, "userId": "user-1"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "result": {"description": "Zachovalý mestský bicykel."},
            "generationTime": 250,
            "cached": False,
        }
        assert "Bicykel" in gemini.calls[0]["prompt"]

    def test_missing_user_is_400_envelope(self, client, routed, gemini):
        response = client.post("/api/ai/generate-description", json={"productInfo": {"title": "Bicykel"}})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "userId is required"
        assert body["status_code"] == 400
        assert body["trace_id"] == response.headers["X-Trace-ID"]
        assert gemini.call_count == 0

    def test_non_object_body_is_400(self, client, routed):
        response = client.post("/api/ai/generate-title", json=["not", "an", "object"])

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_overload_is_503_with_retry_message(self, client, routed, gemini):
        gemini.error = ProviderOverloadedError(provider="gemini")

        response = client.post(
            "/api/ai/generate-title",
            json={"productInfo": {"title": "Lampa"}, "userId": "user-1"},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "AI is currently overloaded. Please try again in a moment."

    def test_compare_products_second_call_is_cached(self, client, routed, gemini, store):
        gemini.payload = COMPARISON_OUTPUT
        body = {"products": [{"id": "a1", "title": "iPhone"}, {"id": "a2", "title": "Samsung"}], "userId": "u1"}

        first = client.post("/api/ai/compare-products", json=body)
        client.portal.call(routed.background.drain)
        second = client.post("/api/ai/compare-products", json=body)

        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["result"] == COMPARISON_OUTPUT
        assert gemini.call_count == 1

    def test_detect_fraud_uses_ad_owner_as_user(self, client, routed, gemini, store):
        gemini.payload = {
            "riskScore": 10,
            "riskLevel": "low",
            "detectedPatterns": [],
            "suspiciousIndicators": [],
            "reasoning": "Looks fine",
            "recommendations": [],
        }
        seen = []
        original = routed.invoke

        async def spy(feature, request):
            seen.append(request)
            return await original(feature, request)

        routed.invoke = spy

        response = client.post(
            "/api/ai/detect-fraud",
            json={"adData": {"title": "Bicykel", "user_id": "owner-7"}, "adId": "ad-1"},
        )

        assert response.status_code == 200
        assert seen[0].user_id == "owner-7"
        assert seen[0].ad_id == "ad-1"
        assert store.rows("ai_fraud_detection")[0]["review_status"] == "approved"

    def test_detect_fraud_numeric_owner_id(self, client, routed, gemini, store):
        gemini.payload = {
            "riskScore": 10,
            "riskLevel": "low",
            "detectedPatterns": [],
            "suspiciousIndicators": [],
            "reasoning": "Looks fine",
            "recommendations": [],
        }

        response = client.post(
            "/api/ai/detect-fraud",
            json={"adData": {"title": "Bike", "user_id": 42}, "adId": "ad-1"},
        )
        client.portal.call(routed.background.drain)

        assert response.status_code == 200
        assert store.rows("ai_usage_logs")[0]["user_id"] == "42"

    def test_recommend_price_persists_top_level_category(self, client, routed, claude, store):
        claude.payload = {
            "recommendedPrice": 450,
            "priceRange": {"min": 400, "max": 500},
            "marketAnalysis": "Stable demand",
            "reasoning": "Similar phones sell for 420-480 EUR",
            "competitiveness": "medium",
        }

        response = client.post(
            "/api/ai/recommend-price",
            json={"productInfo": {"title": "iPhone 13", "category": "other"}, "category": "phones", "userId": "u"},
        )

        assert response.status_code == 200
        assert store.rows("price_analysis")[0]["category"] == "phones"

    def test_recommend_price_falls_back_to_product_category(self, client, routed, claude, store):
        claude.payload = {
            "recommendedPrice": 450,
            "priceRange": {"min": 400, "max": 500},
            "marketAnalysis": "Stable demand",
            "reasoning": "r",
            "competitiveness": "low",
        }

        client.post(
            "/api/ai/recommend-price",
            json={"productInfo": {"title": "iPhone 13", "category": "mobily"}, "userId": "u"},
        )

        assert store.rows("price_analysis")[0]["category"] == "mobily"

    def test_suggest_alternatives_passes_category(self, client, routed, gemini):
        gemini.payload = {
            "alternatives": [
                {"brand": "Kobo", "model": "Clara", "differences": "d", "why": "w", "priceRange": "100-150 EUR"}
            ]
        }

        response = client.post(
            "/api/ai/suggest-alternatives",
            json={"product": {"title": "Kindle Paperwhite"}, "category": "elektronika"},
        )

        assert response.status_code == 200
        assert response.json()["result"]["alternatives"][0]["priceRange"] == "100-150 EUR"
        assert "elektronika" in gemini.calls[0]["prompt"]

    def test_semantic_search_returns_matching_ads(self, client, routed, claude, store):
        claude.payload = {
            "processedQuery": "iphone",
            "extractedFilters": {"priceMax": 500},
            "suggestedTerms": ["apple"],
            "semanticExpansion": [],
            "intent": "buy",
        }
        store.rows("ads").extend(
            [
                {"id": "1", "title": "iPhone 12", "description": "", "price": 400, "status": "active"},
                {"id": "2", "title": "iPhone 15 Pro", "description": "", "price": 1100, "status": "active"},
                {"id": "3", "title": "Old iPhone", "description": "", "price": 100, "status": "sold"},
                {"id": "4", "title": "Bicykel", "description": "", "price": 100, "status": "active"},
            ]
        )

        response = client.post("/api/ai/semantic-search", json={"query": "lacný iphone do 500 eur"})

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["processedQuery"] == "iphone"
        assert [ad["id"] for ad in body["ads"]] == ["1"]
        assert body["cached"] is False

        recorded = store.rows("ai_search_queries")
        assert len(recorded) == 1
        assert recorded[0]["original_query"] == "lacný iphone do 500 eur"
        assert recorded[0]["processed_query"] == "iphone"
        assert recorded[0]["suggested_terms"] == ["apple"]
        assert recorded[0]["results_count"] == 1
        assert recorded[0]["user_id"] is None

    def test_semantic_search_filters_by_location_and_caps_at_50(self, client, routed, claude, store):
        claude.payload = {
            "processedQuery": "bicykel",
            "extractedFilters": {"location": "Bratislava"},
            "suggestedTerms": [],
            "semanticExpansion": [],
            "intent": "buy",
        }
        store.rows("ads").extend(
            {"id": f"ba-{i}", "title": "Bicykel", "description": "", "location": "Bratislava - Petržalka",
             "price": 100, "status": "active"}
            for i in range(60)
        )
        store.rows("ads").append(
            {"id": "ke", "title": "Bicykel", "description": "", "location": "Košice", "price": 100, "status": "active"}
        )

        response = client.post("/api/ai/semantic-search", json={"query": "bicykel bratislava", "userId": "u1"})

        ads = response.json()["ads"]
        assert len(ads) == 50
        assert all(ad["location"].startswith("Bratislava") for ad in ads)
        assert store.rows("ai_search_queries")[0]["results_count"] == 50
        assert store.rows("ai_search_queries")[0]["user_id"] == "u1"

    def test_store_unavailable_is_503(self, client):
        response = client.post(
            "/api/ai/generate-description",
            json={"productInfo": {"title": "Bicykel"}, "userId": "user-1"},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "Database connection not available"


class TestChatRoute:
    @pytest.fixture
    def chat_service(self, client, store, claude):
        service = ChatService(store, claude, clock=lambda: FIXED_NOW)
        app.dependency_overrides[get_chat_service] = lambda: service
        return service

    def test_chat_reply_and_follow_up(self, client, chat_service, claude, store):
        claude.payload = {"text": "Ahoj, s čím pomôžem?"}

        first = client.post("/api/ai/chat", json={"message": "Ahoj", "userId": "user-1"})
        conversation_id = first.json()["conversationId"]
        second = client.post(
            "/api/ai/chat",
            json={"message": "Ďakujem", "userId": "user-1", "conversationId": conversation_id},
        )
        client.portal.call(chat_service.background.drain)

        assert first.status_code == 200
        assert first.json() == {
            "response": "Ahoj, s čím pomôžem?",
            "conversationId": conversation_id,
            "timestamp": FIXED_NOW.isoformat(),
            "searchResults": None,
        }
        assert second.json()["conversationId"] == conversation_id
        assert len(store.rows("ai_chat_conversations")[0]["conversation_data"]) == 4
        assert [row["feature_type"] for row in store.rows("ai_usage_logs")] == ["chat_assistant"] * 2

    def test_chat_missing_user_is_400(self, client, chat_service, claude):
        response = client.post("/api/ai/chat", json={"message": "Ahoj"})

        assert response.status_code == 400
        assert response.json()["error"] == "message and userId are required"
        assert claude.call_count == 0

    def test_chat_overload_is_503(self, client, chat_service, claude):
        claude.error = ProviderOverloadedError(provider="claude")

        response = client.post("/api/ai/chat", json={"message": "Ahoj", "userId": "user-1"})

        assert response.status_code == 503


class TestRecommendationRoutes:
    @pytest.fixture
    def ads_store(self):
        return InMemoryStore(
            {
                "ads": [
                    {"id": "src", "price": 100, "category_id": "c1", "status": "active"},
                    {"id": "near", "price": 110, "category_id": "c1", "status": "active"},
                ]
            }
        )

    def test_similar_ads(self, client, ads_store):
        app.dependency_overrides[get_similar_ads_service] = lambda: SimilarAdsService(
            ads_store, clock=lambda: FIXED_NOW
        )

        first = client.get("/api/ai/similar-ads", params={"adId": "src", "limit": 3})
        second = client.get("/api/ai/similar-ads", params={"adId": "src", "limit": 3})

        assert first.status_code == 200
        assert [ad["id"] for ad in first.json()["similarAds"]] == ["near"]
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True

    def test_similar_ads_unknown_ad_is_404(self, client, ads_store):
        app.dependency_overrides[get_similar_ads_service] = lambda: SimilarAdsService(ads_store)

        response = client.get("/api/ai/similar-ads", params={"adId": "nope"})

        assert response.status_code == 404
        assert response.json()["error"] == "Ad not found"

    def test_similar_ads_without_id_is_400(self, client, ads_store):
        app.dependency_overrides[get_similar_ads_service] = lambda: SimilarAdsService(ads_store)

        assert client.get("/api/ai/similar-ads").status_code == 400

    def test_recommendations_get_and_interaction(self, client):
        store = InMemoryStore()
        store.rpc_handlers["generate_user_recommendations"] = lambda params: [
            {"ad_id": "a1", "recommendation_type": "category", "score": 0.7, "reasoning": "r"}
        ]
        service = UserRecommendationService(store, clock=lambda: FIXED_NOW)
        app.dependency_overrides[get_user_recommendation_service] = lambda: service

        listed = client.get("/api/ai/recommendations", params={"userId": "u1"})
        recommendation_id = listed.json()["recommendations"][0]["id"]
        marked = client.post(
            "/api/ai/recommendations",
            json={"recommendationId": recommendation_id, "interacted": True},
        )

        assert listed.status_code == 200
        assert listed.json()["cached"] is False
        assert marked.json() == {"success": True}
        assert store.rows("ai_recommendations")[0]["user_interacted"] is True


class TestOperationalRoutes:
    def test_health(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_dependencies(self, client, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

        response = client.get("/health/dependencies")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["dependencies"]["stripe"] is False
        assert set(body["dependencies"]) == {"database", "gemini", "claude", "stripe"}

    def test_health_dependencies_reports_open_breaker(self, client, monkeypatch):
        for name in ("GOOGLE_GEMINI_API_KEY", "ANTHROPIC_API_KEY", "STRIPE_SECRET_KEY"):
            monkeypatch.setenv(name, "configured")
        breaker = CircuitBreaker("llm_gemini", min_requests_for_threshold=1)
        breaker.record_failure()
        providers = {"gemini": SimpleNamespace(circuit_breaker=breaker)}

        with patch("kupado.routes.health.is_store_ready", return_value=True), patch(
            "kupado.routes.health.get_providers", return_value=providers
        ):
            response = client.get("/health/dependencies")

        body = response.json()
        assert body["status"] == "degraded"
        assert body["circuit_breakers"]["gemini"]["state"] == "open"

    def test_trace_id_is_echoed(self, client):
        response = client.get("/health/", headers={"X-Trace-ID": "trace-123"})

        assert response.headers["X-Trace-ID"] == "trace-123"
        assert "X-Request-ID" in response.headers

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "ai_generation_requests_total" in response.text
