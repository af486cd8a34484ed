"""Static route tables consulted by the access gate.

Patterns are exact paths or ``/prefix/*`` wildcards. A wildcard matches the
bare prefix and anything below ``prefix + "/"``, so ``/admin/*`` covers
``/admin`` and ``/admin/123`` but not ``/administrator``.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

PUBLIC_PATHS: tuple[str, ...] = (
    "/",
    "/sitemap",
    "/center",
    "/center/*",
    "/login",
    "/signup",
)

PRIVATE_PATHS: tuple[str, ...] = (
    "/admin",
    "/admin/*",
    "/settings",
    "/settings/*",
    "/profile",
    "/profile/*",
)

AUTH_PATHS: tuple[str, ...] = (
    "/login",
    "/signup",
    "/forgot-password",
    "/reset-password",
    "/verify-email",
    "/resend-verification",
)

# Never gated: static assets, health checks and the public auth API itself.
EXCLUDED_PREFIXES: tuple[str, ...] = (
    "/api/auth",
    "/static",
    "/_next/static",
    "/_next/image",
    "/favicon.ico",
    "/robots.txt",
    "/health",
    "/docs",
    "/openapi.json",
)

API_PREFIX = "/api/"


class PathKind(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"
    AUTH = "auth"
    UNKNOWN = "unknown"


def match_path(path: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if pattern == path:
            return True
        if pattern.endswith("/*"):
            base = pattern[:-2]
            if path == base or path.startswith(f"{base}/"):
                return True
    return False


def classify_path(path: str) -> PathKind:
    if match_path(path, PUBLIC_PATHS):
        return PathKind.PUBLIC
    if match_path(path, PRIVATE_PATHS):
        return PathKind.PRIVATE
    if match_path(path, AUTH_PATHS):
        return PathKind.AUTH
    return PathKind.UNKNOWN


def requires_auth(kind: PathKind) -> bool:
    return kind in (PathKind.PRIVATE, PathKind.UNKNOWN)


def is_excluded(path: str) -> bool:
    return any(path == prefix or path.startswith(f"{prefix}/") for prefix in EXCLUDED_PREFIXES)


def is_api_path(path: str) -> bool:
    return path.startswith(API_PREFIX)
