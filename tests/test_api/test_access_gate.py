from __future__ import annotations

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from src.api.main import app
from src.api.middleware.access_gate import SESSION_COOKIE
from src.security.tokens import TokenConfig, TokenType, get_token_config, issue, issue_auth_token


def _auth_token(config: TokenConfig | None = None) -> str:
    return issue_auth_token(
        entity_id="3f1c6f7e-0000-4000-8000-000000000001",
        email="ada@example.org",
        school_id="3f1c6f7e-0000-4000-8000-000000000002",
        role="Admin",
        center_number="CN-1001",
        config=config or get_token_config(),
    )


class TestApiPaths:
    def test_missing_token_returns_401_json(self) -> None:
        client = TestClient(app)
        response = client.get("/api/admin/session")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Authentication required"}

    def test_valid_bearer_reaches_handler(self) -> None:
        client = TestClient(app)
        response = client.get("/api/admin/session", headers={"Authorization": f"Bearer {_auth_token()}"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["principal"]["role"] == "Admin"
        assert body["principal"]["centerNumber"] == "CN-1001"

    def test_session_cookie_is_accepted(self) -> None:
        client = TestClient(app)
        client.cookies.set(SESSION_COOKIE, _auth_token())
        response = client.get("/api/admin/session")
        assert response.status_code == 200

    def test_refresh_token_is_not_a_session(self) -> None:
        token = issue(TokenType.REFRESH, {"entityId": "a1"}, config=get_token_config())
        client = TestClient(app)
        response = client.get("/api/admin/session", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired session"

    def test_expired_token_is_denied(self) -> None:
        issued = datetime.now(UTC) - timedelta(hours=9)
        token = issue(
            TokenType.AUTH,
            {"entityId": "a1", "email": "e", "role": "Admin"},
            config=get_token_config(),
            now=issued,
        )
        client = TestClient(app)
        response = client.get("/api/admin/session", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_token_signed_elsewhere_is_denied(self) -> None:
        foreign = TokenConfig(secret="a-completely-different-signing-secret-value")
        client = TestClient(app)
        response = client.get(
            "/api/admin/session", headers={"Authorization": f"Bearer {_auth_token(foreign)}"}
        )
        assert response.status_code == 401


class TestPagePaths:
    def test_private_page_redirects_to_login(self) -> None:
        client = TestClient(app, follow_redirects=False)
        response = client.get("/admin/dashboard")
        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert location.path == "/login"
        assert parse_qs(location.query) == {"redirect": ["/admin/dashboard"]}

    def test_unknown_page_fails_closed(self) -> None:
        client = TestClient(app, follow_redirects=False)
        response = client.get("/reports")
        assert response.status_code == 307

    def test_private_page_with_session_passes_gate(self) -> None:
        client = TestClient(app, follow_redirects=False)
        client.cookies.set(SESSION_COOKIE, _auth_token())
        response = client.get("/admin/dashboard")
        # No page handler is mounted here; reaching routing yields 404.
        assert response.status_code == 404

    def test_public_page_passes_without_token(self) -> None:
        client = TestClient(app, follow_redirects=False)
        response = client.get("/center/registration")
        assert response.status_code == 404


class TestExcludedPaths:
    def test_auth_api_is_not_gated(self) -> None:
        client = TestClient(app)
        response = client.post("/api/auth/revoke-token", json={})
        assert response.status_code == 400

    def test_health_is_not_gated(self) -> None:
        client = TestClient(app)
        assert client.get("/health").status_code == 200
