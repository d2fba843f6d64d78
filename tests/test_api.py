"""
API Route Tests

The SnapTrade client is replaced through FastAPI dependency overrides.
TestClient is used without its context manager so the startup
credential check never reaches the network.
"""

import logging

from fastapi.testclient import TestClient

from conftest import make_settings
from snapadmin import __version__
from snapadmin.api import get_provider, get_secret_store
from snapadmin.config import get_settings
from snapadmin.main import create_app
from snapadmin.providers import BaseBrokerageProvider, UpstreamServiceError
from snapadmin.secret_store import MemorySecretStore


def upstream_401() -> UpstreamServiceError:
    return UpstreamServiceError(
        message="HTTP error: 401",
        provider="snaptrade",
        status_code=401,
        error_type="HTTP_401",
        details={"body": {"detail": "Unable to verify signature sent"}, "request_id": "req-9"},
    )


class FakeProvider(BaseBrokerageProvider):
    """Scripted provider; set ``fail`` to the method name that should raise."""

    PROVIDER_NAME = "fake"

    def __init__(self):
        self.users = ["alice"]
        self.fail: dict[str, Exception] = {}
        self.calls: list[tuple] = []

    def _maybe_fail(self, name):
        if name in self.fail:
            raise self.fail[name]

    async def check_status(self):
        self.calls.append(("check_status",))
        self._maybe_fail("check_status")
        return {"version": 151, "online": True}

    async def list_users(self):
        self.calls.append(("list_users",))
        self._maybe_fail("list_users")
        return list(self.users)

    async def register_user(self, user_id):
        self.calls.append(("register_user", user_id))
        self._maybe_fail("register_user")
        self.users.append(user_id)
        return {"userId": user_id, "userSecret": f"secret-{user_id}"}

    async def delete_user(self, user_id):
        self.calls.append(("delete_user", user_id))
        self._maybe_fail("delete_user")
        return {"status": "deleted", "userId": user_id}

    async def login_user(self, user_id, user_secret, custom_redirect=None):
        self.calls.append(("login_user", user_id, user_secret, custom_redirect))
        self._maybe_fail("login_user")
        return {"redirectURI": f"https://connect.snaptrade.test/{user_id}"}

    async def list_accounts(self, user_id, user_secret):
        self.calls.append(("list_accounts", user_id, user_secret))
        self._maybe_fail("list_accounts")
        return [{"id": "acc-1", "name": "Brokerage"}]

    async def get_account_positions(self, user_id, user_secret, account_id):
        self.calls.append(("get_account_positions", user_id, user_secret, account_id))
        self._maybe_fail("get_account_positions")
        return [{"symbol": {"symbol": {"symbol": "AAPL"}}, "units": 10}]

    async def list_brokerages(self):
        self.calls.append(("list_brokerages",))
        self._maybe_fail("list_brokerages")
        return [{"name": "Alpaca"}]


class ApiTestCase:
    def setup_method(self):
        self.provider = FakeProvider()
        self.store = MemorySecretStore()
        self.settings = make_settings()
        self.app = create_app()
        self.app.dependency_overrides[get_provider] = lambda: self.provider
        self.app.dependency_overrides[get_secret_store] = lambda: self.store
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(self.app)


class TestStatusRoutes(ApiTestCase):
    """Tests for status, config-check and health."""

    def test_status_success(self):
        response = self.client.get("/api/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["data"] == {"version": 151, "online": True}

    def test_status_failure_is_500(self):
        self.provider.fail["check_status"] = upstream_401()

        response = self.client.get("/api/status")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == {"detail": "Unable to verify signature sent"}

    def test_status_failure_logs_body_as_json(self, caplog):
        caplog.set_level(logging.ERROR, logger="snapadmin.api")
        self.provider.fail["check_status"] = upstream_401()

        self.client.get("/api/status")

        assert 'body={"detail": "Unable to verify signature sent"}' in caplog.text

    def test_config_check_never_returns_credentials(self):
        response = self.client.get("/api/config-check")

        assert response.status_code == 200
        body = response.json()
        assert body["snaptradeClientIdPresent"] is True
        assert body["snaptradeConsumerKeyFingerprint"].startswith("sha256:")
        assert "test-consumer-key" not in response.text
        assert "test-client" not in response.text

    def test_config_check_missing_credentials(self):
        self.settings = make_settings(snaptrade_client_id="", snaptrade_consumer_key="")

        body = self.client.get("/api/config-check").json()

        assert body["snaptradeClientIdPresent"] is False
        assert body["snaptradeConsumerKeyFingerprint"] is None

    def test_health(self):
        response = self.client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "version": __version__,
            "secret_store": "memory",
            "database": None,
        }

    def test_root_lists_endpoints(self):
        body = self.client.get("/").json()

        assert body["api"]["holdings"] == "POST /api/users/holdings"


class TestUserRoutes(ApiTestCase):
    """Tests for listing, registering and deleting users."""

    def setup_method(self):
        super().setup_method()
        self.store._secrets["alice"] = "secret-alice"

    def test_list_users_enriched_with_secrets(self):
        self.provider.users = ["alice", "bob"]

        response = self.client.get("/api/users")

        assert response.status_code == 200
        assert response.json() == [
            {"userId": "alice", "userSecret": "secret-alice"},
            {"userId": "bob", "userSecret": None},
        ]

    def test_register_requires_user_id(self):
        response = self.client.post("/api/users", json={})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "SNAPADMIN_MISSING_FIELD"
        assert error["message"] == "userId is required"

    def test_register_existing_user_conflicts(self):
        response = self.client.post("/api/users", json={"userId": "alice"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SNAPADMIN_USER_EXISTS"
        assert ("register_user", "alice") not in self.provider.calls

    def test_register_stores_secret(self):
        response = self.client.post("/api/users", json={"userId": "carol"})

        assert response.status_code == 200
        assert response.json() == {"userId": "carol", "userSecret": "secret-carol"}
        assert self.store._secrets["carol"] == "secret-carol"

    def test_register_proceeds_when_listing_fails(self):
        self.provider.fail["list_users"] = upstream_401()

        response = self.client.post("/api/users", json={"userId": "dave"})

        assert response.status_code == 200
        assert ("register_user", "dave") in self.provider.calls

    def test_register_upstream_failure(self):
        self.provider.fail["register_user"] = upstream_401()

        response = self.client.post("/api/users", json={"userId": "erin"})

        assert response.status_code == 401
        assert "erin" not in self.store._secrets

    def test_delete_removes_stored_secret(self):
        response = self.client.delete("/api/users/alice")

        assert response.status_code == 200
        assert response.json()["status"] == "deleted"
        assert "alice" not in self.store._secrets

    def test_delete_failure_keeps_secret(self):
        self.provider.fail["delete_user"] = upstream_401()

        response = self.client.delete("/api/users/alice")

        assert response.status_code == 401
        assert self.store._secrets["alice"] == "secret-alice"


class TestConnectionRoutes(ApiTestCase):
    """Tests for connection portal, accounts and holdings."""

    def test_login_requires_credentials(self):
        response = self.client.post("/api/users/login", json={"userId": "alice"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "userId and userSecret are required"

    def test_login_uses_frontend_redirect(self):
        response = self.client.post("/api/users/login", json={"userId": "alice", "userSecret": "s1"})

        assert response.status_code == 200
        assert response.json()["redirectURI"] == "https://connect.snaptrade.test/alice"
        assert self.provider.calls[-1] == (
            "login_user", "alice", "s1", "http://localhost:3000/snapTradeRedirect",
        )

    def test_login_without_frontend_url(self):
        self.settings = make_settings(front_end_url="")

        self.client.post("/api/users/login", json={"userId": "alice", "userSecret": "s1"})

        assert self.provider.calls[-1][-1] is None

    def test_login_from_url(self):
        response = self.client.get("/api/users/alice/s1/login")

        assert response.status_code == 200
        assert self.provider.calls[-1][:3] == ("login_user", "alice", "s1")

    def test_accounts(self):
        response = self.client.post("/api/users/accounts", json={"userId": "alice", "userSecret": "s1"})

        assert response.status_code == 200
        assert response.json() == [{"id": "acc-1", "name": "Brokerage"}]

    def test_accounts_upstream_error_passthrough(self):
        self.provider.fail["list_accounts"] = upstream_401()

        response = self.client.post("/api/users/accounts", json={"userId": "alice", "userSecret": "s1"})

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "SNAPADMIN_UPSTREAM_ERROR"
        assert error["details"]["upstream_status"] == 401
        assert error["details"]["upstream_request_id"] == "req-9"
        assert error["details"]["upstream_body"] == {"detail": "Unable to verify signature sent"}

    def test_upstream_error_without_status_is_500(self):
        self.provider.fail["list_brokerages"] = UpstreamServiceError(
            "connection refused", provider="fake", error_type="NETWORK",
        )

        response = self.client.get("/api/brokerages")

        assert response.status_code == 500
        assert response.json()["error"]["details"]["error_type"] == "NETWORK"

    def test_holdings_requires_account_id(self):
        response = self.client.post("/api/users/holdings", json={"userId": "alice", "userSecret": "s1"})

        assert response.status_code == 400
        assert response.json()["error"]["details"]["fields"] == ["accountId", "userId", "userSecret"]
        assert not any(call[0] == "get_account_positions" for call in self.provider.calls)

    def test_holdings(self):
        response = self.client.post(
            "/api/users/holdings",
            json={"accountId": "acc-1", "userId": "alice", "userSecret": "s1"},
        )

        assert response.status_code == 200
        assert response.json()[0]["units"] == 10
        assert self.provider.calls[-1] == ("get_account_positions", "alice", "s1", "acc-1")
