"""
Unit Tests — BYO API Key Encryption and Resolution
═══════════════════════════════════════════════════
Tests for app/llm/credentials.py

Coverage:
  ✅ encrypt → decrypt round-trip; every encryption uses a fresh iv + salt
  ✅ Token shape: salt(64B):iv(16B):ciphertext:tag(16B), all hex
  ✅ Wrong secret / tampered ciphertext / bad hex → CorruptCredential
  ✅ Wrong number of segments → "Invalid encrypted data format"
  ✅ Resolution order: project → workspace → platform
  ✅ Corrupt project key does NOT fall through to workspace
  ✅ Nothing configured → NoCredentialsAvailable
  ✅ ResolvedApiKey repr never contains the key
"""

from __future__ import annotations

import pytest

from app.core.exceptions import CorruptCredential, NoCredentialsAvailable
from app.llm.credentials import (
    IV_LENGTH,
    SALT_LENGTH,
    TAG_LENGTH,
    decrypt_secret,
    encrypt_secret,
    resolve_api_key,
)

SECRET = "unit-test-secret"


@pytest.mark.unit
class TestEncryption:

    def test_roundtrip(self):
        token = encrypt_secret("sk-live-abc123", SECRET)
        assert decrypt_secret(token, SECRET) == "sk-live-abc123"

    def test_token_layout(self):
        salt, iv, ciphertext, tag = encrypt_secret("sk-live-abc123", SECRET).split(":")

        assert len(bytes.fromhex(salt)) == SALT_LENGTH
        assert len(bytes.fromhex(iv)) == IV_LENGTH
        assert len(bytes.fromhex(tag)) == TAG_LENGTH
        assert len(bytes.fromhex(ciphertext)) == len("sk-live-abc123")

    def test_fresh_iv_per_encryption(self):
        assert encrypt_secret("same", SECRET) != encrypt_secret("same", SECRET)

    def test_wrong_secret(self):
        token = encrypt_secret("sk-live-abc123", SECRET)
        with pytest.raises(CorruptCredential, match="could not be decrypted"):
            decrypt_secret(token, "another-secret")

    def test_tampered_ciphertext(self):
        salt, iv, ciphertext, tag = encrypt_secret("sk-live-abc123", SECRET).split(":")
        flipped = f"{int(ciphertext[:2], 16) ^ 0xFF:02x}{ciphertext[2:]}"
        with pytest.raises(CorruptCredential):
            decrypt_secret(":".join((salt, iv, flipped, tag)), SECRET)

    def test_bad_hex(self):
        with pytest.raises(CorruptCredential):
            decrypt_secret("zz:zz:zz:zz", SECRET)

    @pytest.mark.parametrize("token", ["abc", "a:b", "a:b:c:d:e"])
    def test_bad_segment_count(self, token):
        with pytest.raises(CorruptCredential, match="Invalid encrypted data format"):
            decrypt_secret(token, SECRET)

    def test_empty_secret_rejected(self):
        with pytest.raises(CorruptCredential, match="ENCRYPTION_KEY"):
            encrypt_secret("sk", "")


@pytest.mark.unit
class TestResolveApiKey:

    def test_project_key_wins(self):
        resolved = resolve_api_key(
            encrypt_secret("sk-project", SECRET),
            encrypt_secret("sk-workspace", SECRET),
            platform_key="sk-platform",
            secret=SECRET,
        )
        assert resolved.api_key == "sk-project"
        assert resolved.source == "project"

    def test_workspace_key_next(self):
        resolved = resolve_api_key(
            None, encrypt_secret("sk-workspace", SECRET), platform_key="sk-platform", secret=SECRET,
        )
        assert resolved.api_key == "sk-workspace"
        assert resolved.source == "workspace"

    def test_platform_key_last(self):
        resolved = resolve_api_key("", None, platform_key="sk-platform", secret=SECRET)
        assert resolved.api_key == "sk-platform"
        assert resolved.source == "platform"

    def test_platform_key_from_settings(self):
        resolved = resolve_api_key(None, None)
        assert resolved.api_key == "sk-test-platform-key"

    def test_corrupt_project_key_does_not_fall_through(self):
        with pytest.raises(CorruptCredential):
            resolve_api_key(
                "not:valid:hex:zz",
                encrypt_secret("sk-workspace", SECRET),
                platform_key="sk-platform",
                secret=SECRET,
            )

    def test_nothing_configured(self):
        with pytest.raises(NoCredentialsAvailable):
            resolve_api_key(None, None, platform_key="")

    def test_repr_hides_key(self):
        resolved = resolve_api_key(None, None, platform_key="sk-very-secret")
        assert "sk-very-secret" not in repr(resolved)
