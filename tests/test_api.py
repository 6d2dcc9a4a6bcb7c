import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from main import app
from shortlink_app.api.v1.links import stream_link_updates
from shortlink_app.database.connection import Base
from shortlink_app.dependencies import get_link_service, get_store
from shortlink_app.services.click_recorder import ClickRecorder, ClickResult, ClickStatus
from shortlink_app.services.link_service import LinkService


from fastapi.testclient import TestClient


def create_link(client: TestClient, long_url="https://www.google.com/", owner_id="user1") -> dict:
    response = client.post("/api/v1/links/", json={"long_url": long_url, "owner_id": owner_id})
    assert response.status_code == 201
    return response.json()


class TestLinksAPI:
    """Test link endpoints"""

    def test_create_short_link(self, client: TestClient):
        """Test creating a short link"""
        data = create_link(client, long_url="example.com")

        assert len(data["short_code"]) == 7
        assert data["short_url"].endswith("/" + data["short_code"])
        assert data["long_url"] == "https://example.com"
        assert data["owner_id"] == "user1"
        assert data["click_count"] == 0

    def test_get_link_info(self, client: TestClient):
        """Test getting link information"""
        short_code = create_link(client)["short_code"]

        response = client.get(f"/api/v1/links/{short_code}")
        assert response.status_code == 200

        data = response.json()
        assert data["short_code"] == short_code
        assert data["long_url"] == "https://www.google.com/"

    def test_get_nonexistent_link(self, client: TestClient):
        """Test getting info for non-existent link"""
        response = client.get("/api/v1/links/nonexistent")
        assert response.status_code == 404

    def test_invalid_url(self, client: TestClient):
        """Test creating a link with an invalid URL"""
        response = client.post("/api/v1/links/", json={"long_url": "not a url", "owner_id": "user1"})
        assert response.status_code == 400
        assert client.get("/api/v1/links/").json() == []

    def test_missing_owner_is_a_validation_error(self, client: TestClient):
        response = client.post("/api/v1/links/", json={"long_url": "example.com"})
        assert response.status_code == 422

    def test_overlong_owner_is_a_validation_error(self, client: TestClient):
        create_link(client, owner_id="o" * 39)

        response = client.post("/api/v1/links/", json={"long_url": "example.com", "owner_id": "o" * 40})
        assert response.status_code == 422

    def test_list_links_and_owner_links(self, client: TestClient):
        """Test full listing and the ownership index"""
        alice_codes = {create_link(client, owner_id="alice")["short_code"] for _ in range(2)}
        create_link(client, owner_id="bob")

        assert len(client.get("/api/v1/links/").json()) == 3

        response = client.get("/api/v1/owners/alice/links")
        assert response.status_code == 200
        assert {link["short_code"] for link in response.json()} == alice_codes
        assert client.get("/api/v1/owners/nobody/links").json() == []


class TestRedirectAndClicks:
    """Test redirects and click recording"""

    def test_redirect_records_click(self, client: TestClient):
        """Test URL redirection"""
        short_code = create_link(client, long_url="https://www.github.com/")["short_code"]

        response = client.get(
            f"/{short_code}",
            headers={"user-agent": "pytest-agent", "referer": "https://twitter.com", "cf-ipcountry": "NL"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert response.headers["location"] == "https://www.github.com/"

        assert client.get(f"/api/v1/links/{short_code}").json()["click_count"] == 1
        events = client.get(f"/api/v1/links/{short_code}/clicks").json()
        assert len(events) == 1
        assert events[0]["sequence"] == 1
        assert events[0]["user_agent"] == "pytest-agent"
        assert events[0]["referer"] == "https://twitter.com"
        assert events[0]["country"] == "NL"

    def test_redirect_nonexistent_link(self, client: TestClient):
        """Test redirecting non-existent link"""
        response = client.get("/nonexistent", follow_redirects=False)
        assert response.status_code == 404

    def test_record_click_endpoint(self, client: TestClient):
        short_code = create_link(client)["short_code"]

        sequences = [client.post(f"/api/v1/links/{short_code}/clicks").json()["sequence"] for _ in range(3)]

        assert sequences == [1, 2, 3]
        assert client.get(f"/api/v1/links/{short_code}").json()["last_click_event_id"] == f"{short_code}:3"

    def test_record_click_on_missing_link(self, client: TestClient):
        response = client.post("/api/v1/links/nonexistent/clicks")
        assert response.status_code == 404

    def test_clicks_of_missing_link(self, client: TestClient):
        assert client.get("/api/v1/links/nonexistent/clicks").status_code == 404

    def test_events_of_missing_link(self, client: TestClient):
        assert client.get("/api/v1/links/nonexistent/events").status_code == 404


class TestMeta:
    def test_root_and_health(self, client: TestClient):
        assert client.get("/").json()["docs"] == "/docs"
        assert client.get("/health").json()["status"] == "healthy"


def conflicting_service(store, max_attempts=2) -> LinkService:
    """LinkService whose every click commit loses the race"""
    recorder = ClickRecorder(store, max_attempts=max_attempts, base_delay=0, max_delay=0)

    async def always_conflicts(short_code, metadata, attempt):
        return ClickResult(ClickStatus.CONFLICT, short_code, attempts=attempt)

    recorder._try_record = always_conflicts
    return LinkService(store=store, click_recorder=recorder)


class TestClickConflicts:
    """Test clicks that still conflict after every retry"""

    def test_record_click_endpoint_returns_409(self, client: TestClient, store):
        short_code = create_link(client)["short_code"]
        app.dependency_overrides[get_link_service] = lambda: conflicting_service(store)

        response = client.post(f"/api/v1/links/{short_code}/clicks")

        assert response.status_code == 409
        assert short_code in response.json()["detail"]

    def test_redirect_proceeds_without_a_recorded_click(self, client: TestClient, store, caplog):
        short_code = create_link(client, long_url="https://www.github.com/")["short_code"]
        app.dependency_overrides[get_link_service] = lambda: conflicting_service(store)

        with caplog.at_level("INFO", logger="shortlink_app"):
            response = client.get(f"/{short_code}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://www.github.com/"
        assert "gave up after 2 attempts" in caplog.text

        app.dependency_overrides.pop(get_link_service)
        assert client.get(f"/api/v1/links/{short_code}").json()["click_count"] == 0
        assert client.get(f"/api/v1/links/{short_code}/clicks").json() == []


class _ConnectedRequest:
    async def is_disconnected(self) -> bool:
        return False


class TestLinkUpdateEvents:
    def test_click_is_streamed_as_server_sent_event(self, service):
        async def scenario():
            link = await service.create_short_link("https://example.com", "user1")
            response = await stream_link_updates(link.short_code, _ConnectedRequest(), service)
            assert response.media_type == "text/event-stream"

            frames = response.body_iterator
            await service.record_click(link.short_code)
            try:
                return link.short_code, await asyncio.wait_for(frames.__anext__(), timeout=5)
            finally:
                await frames.aclose()

        short_code, frame = asyncio.run(scenario())

        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame[len("data: "):])
        assert payload["short_code"] == short_code
        assert payload["click_count"] == 1
        assert payload["last_click_event_id"] == f"{short_code}:1"


@pytest.fixture
def broken_sql_client(sql_store):
    """Client whose SQL store loses its tables after startup"""
    app.dependency_overrides[get_store] = lambda: sql_store

    with TestClient(app) as test_client:
        Base.metadata.drop_all(bind=sql_store.engine)
        yield test_client

    app.dependency_overrides.clear()


class TestStoreUnavailable:
    def test_store_failure_maps_to_503(self, broken_sql_client: TestClient):
        assert broken_sql_client.get("/api/v1/links/abc1234").status_code == 503
        assert broken_sql_client.get("/abc1234", follow_redirects=False).status_code == 503

        response = broken_sql_client.post(
            "/api/v1/links/", json={"long_url": "example.com", "owner_id": "user1"}
        )
        assert response.status_code == 503
