from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings


class TokenCryptoError(RuntimeError):
    """Raised when authority token encryption/decryption fails."""


def _get_fernet_key() -> bytes:
    configured = (getattr(settings, "FISCAL_TOKEN_ENCRYPTION_KEY", "") or "").strip()
    if configured:
        return configured.encode("utf-8")

    # Local/dev: derived from SECRET_KEY, so rotating SECRET_KEY orphans stored tokens.
    digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_fernet() -> Fernet:
    # Built per call: settings overrides in tests must take effect immediately.
    return Fernet(_get_fernet_key())


def encrypt_token(token: str) -> str:
    if not token:
        return ""
    return _get_fernet().encrypt(token.encode("utf-8")).decode("utf-8")


def decrypt_token(encrypted_token: str) -> str:
    if not encrypted_token:
        return ""
    try:
        return _get_fernet().decrypt(encrypted_token.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise TokenCryptoError("Invalid encrypted token.") from exc
