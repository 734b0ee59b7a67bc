from __future__ import annotations

import base64
import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class SignedPayload:
    content_hash: str
    signature: str
    algorithm: str


def content_hash(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


class Signer(ABC):
    """Signs the canonical XML bytes of a fiscal document."""

    algorithm: str = ""

    @abstractmethod
    def sign(self, payload: bytes) -> SignedPayload:
        """Return the sha256 content hash and a base64 signature."""

    @abstractmethod
    def verify(self, payload: bytes, signature: str) -> bool:
        """Check a signature produced by `sign` for the same payload."""


class HmacSha256Signer(Signer):
    """Shared-secret signature: base64(HMAC-SHA256(secret, sha256_hex(payload)))."""

    algorithm = "HMAC-SHA256"

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ImproperlyConfigured("FISCAL_SIGNING_SECRET is required for the HMAC signer.")
        self._secret = secret.encode("utf-8")

    def _signature(self, digest: str) -> str:
        mac = hmac.new(self._secret, digest.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(mac).decode("ascii")

    def sign(self, payload: bytes) -> SignedPayload:
        digest = content_hash(payload)
        return SignedPayload(content_hash=digest, signature=self._signature(digest), algorithm=self.algorithm)

    def verify(self, payload: bytes, signature: str) -> bool:
        return hmac.compare_digest(self._signature(content_hash(payload)), signature or "")


class Ed25519Signer(Signer):
    algorithm = "Ed25519"

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key

    @classmethod
    def from_pem(cls, pem: str | bytes) -> "Ed25519Signer":
        if isinstance(pem, str):
            pem = pem.encode("utf-8")
        key = serialization.load_pem_private_key(pem, password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ImproperlyConfigured("FISCAL_SIGNING_PRIVATE_KEY must be an Ed25519 PEM key.")
        return cls(key)

    @classmethod
    def generate(cls) -> "Ed25519Signer":
        return cls(Ed25519PrivateKey.generate())

    def public_key_pem(self) -> str:
        return (
            self._private_key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            .decode("ascii")
        )

    def sign(self, payload: bytes) -> SignedPayload:
        signature = base64.b64encode(self._private_key.sign(payload)).decode("ascii")
        return SignedPayload(content_hash=content_hash(payload), signature=signature, algorithm=self.algorithm)

    def verify(self, payload: bytes, signature: str) -> bool:
        try:
            self._private_key.public_key().verify(base64.b64decode(signature), payload)
        except (InvalidSignature, ValueError):
            return False
        return True


def get_signer() -> Signer:
    kind = (getattr(settings, "FISCAL_SIGNER", "hmac") or "hmac").strip().lower()
    if kind == "hmac":
        return HmacSha256Signer(getattr(settings, "FISCAL_SIGNING_SECRET", ""))
    if kind == "ed25519":
        pem = (getattr(settings, "FISCAL_SIGNING_PRIVATE_KEY", "") or "").strip()
        if not pem:
            raise ImproperlyConfigured("FISCAL_SIGNING_PRIVATE_KEY is required for the Ed25519 signer.")
        return Ed25519Signer.from_pem(pem.replace("\\n", "\n"))
    raise ImproperlyConfigured(f"Unsupported FISCAL_SIGNER={kind!r}.")
