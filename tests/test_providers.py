"""Provider adapters against mocked platform APIs."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from core.exceptions import ProviderError
from core.models import SourceType
from workers.sync.models import FetchWindow, ProviderProfile
from workers.sync.provider_factory import ProviderFactory
from workers.sync.providers import (
    FacebookReviewsAdapter,
    GoogleReviewsAdapter,
    TrustpilotReviewsAdapter,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
WINDOW = FetchWindow(start=NOW - timedelta(days=7), end=NOW)
PROFILE = ProviderProfile(source_id=1, external_profile_id="profile-1", profile_url="https://example.com")


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestProviderFactory:
    @pytest.mark.parametrize(
        "source_type, adapter_cls",
        [
            (SourceType.GOOGLE, GoogleReviewsAdapter),
            (SourceType.FACEBOOK, FacebookReviewsAdapter),
            (SourceType.TRUSTPILOT, TrustpilotReviewsAdapter),
        ],
    )
    async def test_routes_by_source_type(self, source_type, adapter_cls):
        async with httpx.AsyncClient() as client:
            adapter = ProviderFactory.create(source_type, client)
        assert isinstance(adapter, adapter_cls)
        assert adapter.client is client


class TestGoogleAdapter:
    async def test_maps_reviews_and_applies_window(self):
        payload = {
            "reviews": [
                {
                    "name": "places/profile-1/reviews/abc",
                    "rating": 4,
                    "text": {"text": "Good pierogi"},
                    "authorAttribution": {"displayName": "Ola"},
                    "publishTime": "2026-03-08T09:30:00.123456Z",
                },
                {
                    "name": "places/profile-1/reviews/old",
                    "rating": 2,
                    "text": {"text": "Too old"},
                    "publishTime": "2025-12-01T09:30:00Z",
                },
            ]
        }
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=payload)

        async with client_for(handler) as client:
            reviews = await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)

        assert requests[0].url.path == "/v1/places/profile-1"
        assert requests[0].headers["X-Goog-FieldMask"] == "id,reviews"
        assert len(reviews) == 1
        review = reviews[0]
        assert review.external_id == "places/profile-1/reviews/abc"
        assert review.rating == 4
        assert review.text == "Good pierogi"
        assert review.author == "Ola"
        assert review.published_at == datetime(2026, 3, 8, 9, 30, 0, 123456, tzinfo=timezone.utc)

    async def test_place_without_reviews(self):
        async with client_for(lambda r: httpx.Response(200, json={"id": "profile-1"})) as client:
            assert await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW) == []

    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr("workers.sync.providers.google.settings.google_places_api_key", "")
        async with client_for(lambda r: httpx.Response(200, json={})) as client:
            with pytest.raises(ProviderError, match="missing credential"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {}, WINDOW)

    async def test_http_error_message_is_sanitized(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "API key k-123 invalid"}})

        async with client_for(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k-123"}, WINDOW)

        assert str(exc_info.value) == "Google error: HTTP 401"

    async def test_timeout_becomes_provider_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with client_for(handler) as client:
            with pytest.raises(ProviderError, match="request timed out"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)

    async def test_invalid_json(self):
        async with client_for(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(ProviderError, match="invalid JSON"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)

    async def test_malformed_record(self):
        payload = {"reviews": [{"name": "x", "publishTime": "2026-03-08T09:30:00Z"}]}
        async with client_for(lambda r: httpx.Response(200, json=payload)) as client:
            with pytest.raises(ProviderError, match="malformed"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)

    async def test_null_reviews_field_means_no_reviews(self):
        async with client_for(lambda r: httpx.Response(200, json={"id": "p", "reviews": None})) as client:
            assert await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW) == []

    async def test_non_list_reviews_field(self):
        async with client_for(lambda r: httpx.Response(200, json={"reviews": {"name": "x"}})) as client:
            with pytest.raises(ProviderError, match="unexpected 'reviews' field"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)

    async def test_non_object_review_record(self):
        async with client_for(lambda r: httpx.Response(200, json={"reviews": ["oops"]})) as client:
            with pytest.raises(ProviderError, match="malformed"):
                await GoogleReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "k"}, WINDOW)


class TestFacebookAdapter:
    async def test_follows_paging_and_maps_recommendations(self):
        page_one = {
            "data": [
                {
                    "created_time": "2026-03-09T08:00:00+0000",
                    "recommendation_type": "positive",
                    "review_text": "Recommended!",
                    "reviewer": {"name": "Piotr"},
                    "open_graph_story": {"id": "story-1"},
                },
                {
                    "created_time": "2026-03-09T09:00:00+0000",
                    "recommendation_type": "negative",
                    "review_text": "Nope",
                    "open_graph_story": {"id": "story-2"},
                },
            ],
            "paging": {"next": "https://graph.facebook.com/v19.0/profile-1/ratings?after=abc"},
        }
        page_two = {
            "data": [
                {
                    "created_time": "2026-03-08T09:00:00+0000",
                    "rating": 3,
                    "open_graph_story": {"id": "story-3"},
                },
                {"created_time": "2026-03-08T09:00:00+0000", "recommendation_type": "positive"},
            ],
        }
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=page_two if "after" in request.url.params else page_one)

        async with client_for(handler) as client:
            reviews = await FacebookReviewsAdapter(client).fetch_reviews(
                PROFILE, {"page_access_token": "tok"}, WINDOW
            )

        assert len(requests) == 2
        assert requests[0].headers["Authorization"] == "Bearer tok"
        assert "tok" not in str(requests[0].url)
        assert [(r.external_id, r.rating) for r in reviews] == [("story-1", 5), ("story-2", 1), ("story-3", 3)]
        assert reviews[0].author == "Piotr"

    async def test_token_is_required(self):
        async with client_for(lambda r: httpx.Response(200, json={})) as client:
            with pytest.raises(ProviderError):
                await FacebookReviewsAdapter(client).fetch_reviews(PROFILE, {}, WINDOW)

    async def test_non_object_rating_record(self):
        async with client_for(lambda r: httpx.Response(200, json={"data": [42]})) as client:
            with pytest.raises(ProviderError, match="malformed rating record"):
                await FacebookReviewsAdapter(client).fetch_reviews(PROFILE, {"page_access_token": "tok"}, WINDOW)


class TestTrustpilotAdapter:
    async def test_stops_paging_past_the_window(self):
        def review(i, created):
            return {
                "id": f"tp-{i}",
                "stars": 5 - i % 5,
                "title": "Title",
                "text": "Body",
                "consumer": {"displayName": f"C{i}"},
                "createdAt": created,
            }

        full_page = {"reviews": [review(i, "2026-03-09T10:00:00Z") for i in range(99)] + [review(99, "2026-02-01T10:00:00Z")]}
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=full_page)

        async with client_for(handler) as client:
            reviews = await TrustpilotReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "tp"}, WINDOW)

        assert len(requests) == 1
        assert requests[0].headers["apikey"] == "tp"
        assert requests[0].url.params["orderBy"] == "createdat.desc"
        assert len(reviews) == 99
        assert reviews[0].text == "Title\nBody"
        assert reviews[0].rating == 5

    async def test_short_page_ends_paging(self):
        page = {
            "reviews": [
                {"id": "tp-1", "stars": 2, "text": "Meh", "createdAt": "2026-03-09T10:00:00Z"},
            ]
        }
        async with client_for(lambda r: httpx.Response(200, json=page)) as client:
            reviews = await TrustpilotReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "tp"}, WINDOW)

        assert [(r.external_id, r.text, r.author) for r in reviews] == [("tp-1", "Meh", None)]

    async def test_non_list_reviews_field(self):
        async with client_for(lambda r: httpx.Response(200, json={"reviews": "none"})) as client:
            with pytest.raises(ProviderError, match="unexpected 'reviews' field"):
                await TrustpilotReviewsAdapter(client).fetch_reviews(PROFILE, {"api_key": "tp"}, WINDOW)
