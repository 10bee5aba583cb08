"""
BYO (bring-your-own) LLM API keys — encryption and resolution.

Storage format (all hex, colon-separated):

    <salt:64 bytes>:<iv:16 bytes>:<ciphertext>:<tag:16 bytes>

    cipher : AES-256-GCM
    key    : scrypt(ENCRYPTION_KEY, salt=b"salt", n=2**14, r=8, p=1, 32 bytes)

The leading random salt is carried for format compatibility with keys
already stored; key derivation uses the fixed salt.

Resolution order (first non-empty wins, resolved once per run):

    project override → workspace override → platform default (settings)

A stored override that fails to decrypt is CorruptCredential: the run
fails rather than silently falling through to a lower level.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from app.core.config import settings
from app.core.exceptions import CorruptCredential, NoCredentialsAvailable

logger = logging.getLogger(__name__)

IV_LENGTH   = 16
SALT_LENGTH = 64
TAG_LENGTH  = 16
KEY_LENGTH  = 32

_KDF_SALT = b"salt"


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    if not secret:
        raise CorruptCredential("ENCRYPTION_KEY is not configured; stored API keys cannot be read")
    kdf = Scrypt(salt=_KDF_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def encrypt_secret(plaintext: str, secret: Optional[str] = None) -> str:
    key = _derive_key(secret if secret is not None else settings.encryption_key)
    iv = os.urandom(IV_LENGTH)
    salt = os.urandom(SALT_LENGTH)

    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return ":".join((salt.hex(), iv.hex(), ciphertext.hex(), tag.hex()))


def decrypt_secret(token: str, secret: Optional[str] = None) -> str:
    """Raises CorruptCredential on a malformed token or a failed auth tag."""
    key = _derive_key(secret if secret is not None else settings.encryption_key)
    parts = token.split(":")
    if len(parts) != 4:
        raise CorruptCredential("Invalid encrypted data format")

    try:
        _salt, iv, ciphertext, tag = (bytes.fromhex(p) for p in parts)
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError) as exc:
        raise CorruptCredential("Stored API key could not be decrypted", original_error=exc) from exc


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedApiKey:
    api_key: str
    source:  str   # "project" | "workspace" | "platform"

    def __repr__(self) -> str:   # never log the key itself
        return f"ResolvedApiKey(source={self.source!r})"


def resolve_api_key(
    project_encrypted: Optional[str],
    workspace_encrypted: Optional[str],
    platform_key: Optional[str] = None,
    secret: Optional[str] = None,
) -> ResolvedApiKey:
    for source, token in (("project", project_encrypted), ("workspace", workspace_encrypted)):
        if token:
            api_key = decrypt_secret(token, secret)
            logger.info("Credentials | using %s-level API key", source)
            return ResolvedApiKey(api_key=api_key, source=source)

    platform = platform_key if platform_key is not None else settings.openai_api_key
    if platform:
        logger.info("Credentials | using platform API key")
        return ResolvedApiKey(api_key=platform, source="platform")

    raise NoCredentialsAvailable("No API key configured at project, workspace, or platform level")
