"""Typed failures raised by the security core.

Nothing in ``src.security`` logs or builds HTTP responses; callers catch
these and decide what the user sees.
"""

from __future__ import annotations

from enum import StrEnum


class ConfigurationError(RuntimeError):
    """Required secret material is missing. Fatal at startup."""


class TokenError(Exception):
    code = "VERIFICATION_FAILED"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"


class InvalidSignature(TokenError):
    code = "INVALID_SIGNATURE"


class MalformedToken(TokenError):
    code = "INVALID_TOKEN"


class TokenTypeMismatch(TokenError):
    code = "INVALID_TOKEN_TYPE"

    def __init__(self, expected: str, actual: object) -> None:
        super().__init__(f"expected token type {expected!r}, got {actual!r}")
        self.expected = expected
        self.actual = actual


class DataProtectionError(Exception):
    pass


class InvalidInput(DataProtectionError):
    pass


class DecryptionFailed(DataProtectionError):
    pass


class StoreUnavailable(Exception):
    """The persistent store failed; the operation had no effect and may be retried."""


class RedeemFailure(StrEnum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    ALREADY_VERIFIED = "already_verified"
