from __future__ import annotations

import base64

import pytest

from src.security.data_protection import (
    DataProtectionConfig,
    FieldKind,
    detect_login_kind,
    encrypt,
    normalize,
    protect,
    search_hash,
    unprotect,
)
from src.security.errors import ConfigurationError, DecryptionFailed, InvalidInput


class TestNormalize:
    def test_email_is_trimmed_and_lowercased(self) -> None:
        assert normalize("  Ada@Example.ORG ", FieldKind.EMAIL) == "ada@example.org"

    def test_phone_is_trimmed_only(self) -> None:
        assert normalize(" +234 800-000 ", FieldKind.PHONE) == "+234 800-000"

    def test_nin_keeps_case(self) -> None:
        assert normalize("AbC123", FieldKind.NIN) == "AbC123"

    @pytest.mark.parametrize("kind", list(FieldKind))
    def test_blank_is_invalid(self, kind: FieldKind) -> None:
        with pytest.raises(InvalidInput):
            normalize("   ", kind)


class TestSearchHash:
    def test_deterministic_and_normalized(self, protection_config: DataProtectionConfig) -> None:
        first = search_hash("Ada@Example.org", FieldKind.EMAIL, config=protection_config)
        second = search_hash("  ada@example.org", FieldKind.EMAIL, config=protection_config)
        assert first == second
        assert len(first) == 64

    def test_different_values_differ(self, protection_config: DataProtectionConfig) -> None:
        assert search_hash("a@example.org", "email", config=protection_config) != search_hash(
            "b@example.org", "email", config=protection_config
        )

    def test_depends_on_key(self, protection_config: DataProtectionConfig) -> None:
        other = DataProtectionConfig.from_secret("some-other-deployment-secret")
        assert search_hash("a@example.org", "email", config=protection_config) != search_hash(
            "a@example.org", "email", config=other
        )

    def test_phone_with_spaces_does_not_match_compact_phone(self, protection_config: DataProtectionConfig) -> None:
        assert search_hash("+234 800", "phone", config=protection_config) != search_hash(
            "+234800", "phone", config=protection_config
        )


class TestProtect:
    def test_round_trip_returns_normalized_value(self, protection_config: DataProtectionConfig) -> None:
        protected = protect(" Ada@Example.org ", FieldKind.EMAIL, config=protection_config)
        assert unprotect(protected.ciphertext, FieldKind.EMAIL, config=protection_config) == "ada@example.org"
        assert protected.search_hash == search_hash("ada@example.org", FieldKind.EMAIL, config=protection_config)

    def test_ciphertext_is_not_deterministic(self, protection_config: DataProtectionConfig) -> None:
        first = encrypt("ada@example.org", FieldKind.EMAIL, config=protection_config)
        second = encrypt("ada@example.org", FieldKind.EMAIL, config=protection_config)
        assert first != second
        assert "ada" not in first

    def test_unicode_round_trip(self, protection_config: DataProtectionConfig) -> None:
        ciphertext = encrypt("Adébáyọ̀ 12", FieldKind.NIN, config=protection_config)
        assert unprotect(ciphertext, FieldKind.NIN, config=protection_config) == "Adébáyọ̀ 12"

    def test_empty_input_rejected(self, protection_config: DataProtectionConfig) -> None:
        with pytest.raises(InvalidInput):
            protect("", FieldKind.PHONE, config=protection_config)


class TestUnprotectFailures:
    def test_wrong_key(self, protection_config: DataProtectionConfig) -> None:
        ciphertext = encrypt("ada@example.org", FieldKind.EMAIL, config=protection_config)
        other = DataProtectionConfig.from_secret("some-other-deployment-secret")
        with pytest.raises(DecryptionFailed):
            unprotect(ciphertext, FieldKind.EMAIL, config=other)

    def test_tampered_ciphertext(self, protection_config: DataProtectionConfig) -> None:
        ciphertext = encrypt("ada@example.org", FieldKind.EMAIL, config=protection_config)
        raw = bytearray(base64.urlsafe_b64decode(ciphertext + "=" * (-len(ciphertext) % 4)))
        raw[-1] ^= 0x01
        tampered = base64.urlsafe_b64encode(bytes(raw)).rstrip(b"=").decode("ascii")
        with pytest.raises(DecryptionFailed):
            unprotect(tampered, FieldKind.EMAIL, config=protection_config)

    def test_too_short(self, protection_config: DataProtectionConfig) -> None:
        with pytest.raises(DecryptionFailed):
            unprotect("c2hvcnQ", FieldKind.EMAIL, config=protection_config)

    def test_not_base64(self, protection_config: DataProtectionConfig) -> None:
        with pytest.raises(DecryptionFailed):
            unprotect("***not base64***", FieldKind.EMAIL, config=protection_config)


class TestConfig:
    def test_derived_keys_are_distinct(self, protection_config: DataProtectionConfig) -> None:
        assert protection_config.encryption_key != protection_config.hash_key
        assert len(protection_config.encryption_key) == 32

    def test_short_encryption_key_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            DataProtectionConfig(encryption_key=b"short", hash_key=b"k")


@pytest.mark.parametrize(
    ("login", "expected"),
    [("ada@example.org", FieldKind.EMAIL), ("+2348000000001", FieldKind.PHONE), ("08000000001", FieldKind.PHONE)],
)
def test_detect_login_kind(login: str, expected: FieldKind) -> None:
    assert detect_login_kind(login) is expected
