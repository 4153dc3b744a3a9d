"""Tests for the paginated remote listing"""

import pytest

from genvault.api.listing import ListingFetcher, RemoteItem, extract_page
from genvault.api.rate_limiter import RandomThrottle
from genvault.core.capabilities import Credentials
from genvault.exceptions import ListingUnavailableError, RemoteRequestError
from genvault.models.config import SourceMode

from .conftest import BASE_URI, FakeSession

CREDENTIALS = Credentials("token-1", "owner-1")


async def _no_sleep(_delay):
    return None


@pytest.fixture
def throttle():
    return RandomThrottle((0.2, 0.5), sleep=_no_sleep)


def _fetcher(session, throttle, page_size=2):
    return ListingFetcher(session, BASE_URI, page_size, throttle)


def _records(*ids):
    return [{"id": item_id, "title": f"Song {item_id}"} for item_id in ids]


class TestRemoteItem:
    """Test normalization of raw listing records"""

    def test_from_api_reads_all_fields(self):
        item = RemoteItem.from_api(
            {
                "id": "a1",
                "title": "Song",
                "author_id": "u1",
                "sound": "lofi",
                "lyrics": "words",
                "model_display_name": "v4",
                "seed": 1234,
                "play_count": 3,
                "favorite_count": 1,
                "created_at": "2024-05-01T10:00:00Z",
                "conditions": [{"prompt": "warm pads"}, {"prompt": "ignored"}],
            }
        )

        assert item.id == "a1"
        assert item.prompt == "warm pads"
        assert item.model_display_name == "v4"
        assert item.seed == 1234

    def test_absent_and_null_fields_are_legitimate(self):
        item = RemoteItem.from_api({"id": "a1", "title": None, "conditions": []})

        assert item.title is None
        assert item.prompt is None
        assert item.seed is None

    def test_mistyped_fields_are_coerced(self):
        item = RemoteItem.from_api(
            {
                "id": 42,
                "title": 1999,
                "created_at": 1700000000,
                "play_count": 3.5,
                "favorite_count": "x",
                "seed": True,
                "lyrics": {"text": "nested"},
                "conditions": [{"prompt": 7}],
            }
        )

        assert item.id == "42"
        assert item.title == "1999"
        assert item.created_at == "1700000000"
        assert item.play_count == 3
        assert item.favorite_count is None
        assert item.seed is None
        assert item.lyrics is None
        assert item.prompt == "7"

    def test_record_without_id_is_dropped(self):
        assert RemoteItem.from_api({"title": "orphan"}) is None

    def test_extract_page_accepts_envelopes(self):
        assert extract_page(_records("a")) == _records("a")
        assert extract_page({"generations": _records("b")}) == _records("b")
        assert extract_page({"items": _records("c")}) == _records("c")
        assert extract_page({"unexpected": 1}) == []
        assert extract_page(None) == []


class TestFetchAll:
    """Test pagination, dedup and error handling"""

    @pytest.mark.asyncio
    async def test_favorites_pages_by_index_and_dedups(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        session.json_responses = {
            fetcher.favorites_url(0, 2): _records("a1", "b2"),
            fetcher.favorites_url(1, 2): _records("b2", "c3"),
            fetcher.favorites_url(2, 2): _records("d4"),
        }

        items = await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

        assert [item.id for item in items] == ["a1", "b2", "c3", "d4"]
        assert len(session.json_calls) == 3

    @pytest.mark.asyncio
    async def test_published_pages_by_offset(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        session.json_responses = {
            fetcher.published_url("owner-1", 0, 2): {"generations": _records("a1", "b2")},
            fetcher.published_url("owner-1", 2, 2): {"generations": []},
        }

        items = await fetcher.fetch_all(SourceMode.PUBLISHED, CREDENTIALS)

        assert [item.id for item in items] == ["a1", "b2"]
        assert session.json_calls[1][1] == (
            f"{BASE_URI}/__api/v2/users/owner-1/generations?offset=2&limit=2&public=true"
        )

    @pytest.mark.asyncio
    async def test_same_id_on_two_pages_yields_one_entry(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle, page_size=1)
        session.json_responses = {
            fetcher.favorites_url(0, 1): [{"id": "a1", "title": "Song"}],
            fetcher.favorites_url(1, 1): [{"id": "a1", "title": "Song"}],
            fetcher.favorites_url(2, 1): [],
        }

        items = await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

        assert [item.id for item in items] == ["a1"]

    @pytest.mark.asyncio
    async def test_first_page_error_is_fatal(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        session.json_responses = {
            fetcher.favorites_url(0, 2): RemoteRequestError("HTTP 502", status=502)
        }

        with pytest.raises(ListingUnavailableError):
            await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

    @pytest.mark.asyncio
    async def test_later_page_error_returns_partial_result(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        session.json_responses = {
            fetcher.favorites_url(0, 2): _records("a1", "b2"),
            fetcher.favorites_url(1, 2): RemoteRequestError("HTTP 500", status=500),
        }

        items = await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

        assert [item.id for item in items] == ["a1", "b2"]

    @pytest.mark.asyncio
    async def test_rate_limit_on_later_page_slows_throttle(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        session.json_responses = {
            fetcher.favorites_url(0, 2): _records("a1", "b2"),
            fetcher.favorites_url(1, 2): RemoteRequestError("HTTP 429", status=429),
        }

        await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

        assert throttle.backoff == 2.0

    @pytest.mark.asyncio
    async def test_waits_between_pages(self):
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        session = FakeSession()
        fetcher = _fetcher(session, RandomThrottle((0.2, 0.5), sleep=record_sleep))
        session.json_responses = {
            fetcher.favorites_url(0, 2): _records("a1", "b2"),
            fetcher.favorites_url(1, 2): _records("c3"),
        }

        await fetcher.fetch_all(SourceMode.FAVORITES, CREDENTIALS)

        assert len(delays) == 1
        assert 0.2 <= delays[0] <= 0.5


class TestLabelsAndAccess:
    """Test creator label resolution and the access probe"""

    @pytest.mark.asyncio
    async def test_resolve_labels_in_batches(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        ids = [f"u{n}" for n in range(60)]
        session.json_responses[fetcher.usernames_url] = {
            "data": [
                {"user_id": "u1", "username": "alice"},
                {"user_id": "u2", "username": None, "fallback_name": "Bob"},
                {"user_id": "u3"},
            ]
        }

        labels = await fetcher.resolve_labels(ids + ["u1"])

        assert labels == {"u1": "alice", "u2": "Bob"}
        batches = [payload["user_ids"] for _, _, payload in session.json_calls]
        assert [len(batch) for batch in batches] == [50, 10]

    @pytest.mark.asyncio
    async def test_failed_label_lookup_is_not_fatal(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)

        assert await fetcher.resolve_labels(["u1"]) == {}

    @pytest.mark.asyncio
    async def test_verify_access(self, throttle):
        session = FakeSession()
        fetcher = _fetcher(session, throttle)
        assert await fetcher.verify_access(CREDENTIALS) is False

        session.json_responses[fetcher.favorites_url(0, 1)] = []
        assert await fetcher.verify_access(CREDENTIALS) is True
