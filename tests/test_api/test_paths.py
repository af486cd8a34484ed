from __future__ import annotations

import pytest

from src.api.middleware.paths import (
    PathKind,
    classify_path,
    is_api_path,
    is_excluded,
    match_path,
    requires_auth,
)


class TestMatchPath:
    def test_exact_match(self) -> None:
        assert match_path("/login", ["/login"])

    def test_wildcard_matches_base_and_children(self) -> None:
        assert match_path("/admin", ["/admin/*"])
        assert match_path("/admin/schools/42", ["/admin/*"])

    def test_wildcard_does_not_match_sibling_prefix(self) -> None:
        assert not match_path("/administrator", ["/admin/*"])

    def test_no_patterns(self) -> None:
        assert not match_path("/anything", [])


class TestClassifyPath:
    @pytest.mark.parametrize(
        ("path", "kind"),
        [
            ("/", PathKind.PUBLIC),
            ("/center/registration", PathKind.PUBLIC),
            ("/login", PathKind.PUBLIC),
            ("/admin", PathKind.PRIVATE),
            ("/admin/dashboard", PathKind.PRIVATE),
            ("/settings/security", PathKind.PRIVATE),
            ("/forgot-password", PathKind.AUTH),
            ("/verify-email", PathKind.AUTH),
            ("/reports", PathKind.UNKNOWN),
            ("/api/admin/session", PathKind.UNKNOWN),
        ],
    )
    def test_classification(self, path: str, kind: PathKind) -> None:
        assert classify_path(path) is kind

    def test_private_and_unknown_require_auth(self) -> None:
        assert requires_auth(PathKind.PRIVATE)
        assert requires_auth(PathKind.UNKNOWN)
        assert not requires_auth(PathKind.PUBLIC)
        assert not requires_auth(PathKind.AUTH)


@pytest.mark.parametrize(
    "path",
    ["/api/auth/refresh", "/static/app.css", "/_next/image", "/favicon.ico", "/health", "/health/db", "/docs"],
)
def test_excluded_paths(path: str) -> None:
    assert is_excluded(path)


@pytest.mark.parametrize("path", ["/api/authx", "/healthy", "/admin"])
def test_not_excluded(path: str) -> None:
    assert not is_excluded(path)


def test_is_api_path() -> None:
    assert is_api_path("/api/admin/session")
    assert not is_api_path("/apiary")
