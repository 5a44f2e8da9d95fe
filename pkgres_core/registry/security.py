"""Trust store, publisher signature verification and log redaction helpers."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import urlsplit

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .errors import ExpiredSignatureKeyError, InvalidSignatureError, MissingSignatureKeyError
from .integrity import Integrity
from .types import PublicKey, Signature

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = ("password", "token", "authorization", "bearer")


def registry_key(registry: str) -> str:
    """Trust store key for a registry URL.

    Unlike auth lookups this does not tolerate trailing slash differences: the
    ``//host/path`` must match exactly.
    """
    parsed = urlsplit(registry)
    return f"//{parsed.netloc}{parsed.path}"


class TrustStore:
    """Read-only set of publisher keys, keyed by ``//host/path`` of a registry."""

    def __init__(self, keys: Mapping[str, Iterable[PublicKey]] | None = None) -> None:
        self._keys: dict[str, tuple[PublicKey, ...]] = {
            str(key): tuple(values) for key, values in (keys or {}).items()
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "TrustStore":
        keys: dict[str, list[PublicKey]] = {}
        for reg_key, entries in payload.items():
            if isinstance(entries, Mapping):
                entries = entries.get("keys")
            if not isinstance(entries, list):
                raise ValueError(f"trust store entry for {reg_key} must be a list of keys")
            keys[str(reg_key)] = [PublicKey.from_dict(item) for item in entries if isinstance(item, Mapping)]
        return cls(keys)

    @classmethod
    def from_keys_document(cls, registry: str, document: Mapping[str, Any]) -> "TrustStore":
        entries = document.get("keys")
        if not isinstance(entries, list):
            raise ValueError("registry keys document must contain a 'keys' list")
        return cls({registry_key(registry): [PublicKey.from_dict(item) for item in entries]})

    def merged(self, other: "TrustStore") -> "TrustStore":
        combined: dict[str, tuple[PublicKey, ...]] = dict(self._keys)
        for reg_key, values in other._keys.items():
            combined[reg_key] = (*combined.get(reg_key, ()), *values)
        return TrustStore(combined)

    def keys_for(self, registry: str) -> tuple[PublicKey, ...] | None:
        return self._keys.get(registry_key(registry))

    def __len__(self) -> int:
        return len(self._keys)


def signature_message(manifest_id: str, integrity: Integrity | str) -> bytes:
    return f"{manifest_id}:{integrity}".encode("utf-8")


def verify_signature_bytes(
    public_key: PublicKey,
    message: bytes,
    signature: bytes,
    *,
    package: str | None = None,
) -> bool:
    try:
        key = serialization.load_pem_public_key(public_key.pemkey.encode("ascii"))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise InvalidSignatureError(
            f"public key {public_key.keyid} could not be loaded: {exc}",
            keyid=public_key.keyid,
            package=package,
        ) from exc
    try:
        if isinstance(key, ec.EllipticCurvePublicKey):
            key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
        elif isinstance(key, rsa.RSAPublicKey):
            key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        elif isinstance(key, Ed25519PublicKey):
            key.verify(signature, message)
        else:
            raise InvalidSignatureError(
                f"public key {public_key.keyid} has an unsupported key type",
                keyid=public_key.keyid,
                package=package,
            )
    except InvalidSignature:
        return False
    return True


class SignatureVerifier:
    """Checks ``dist.signatures`` of a manifest against a trust store.

    Signatures are checked one at a time in declared order and the first
    failure aborts, so the surfaced error is reproducible.
    """

    def __init__(
        self,
        trust_store: TrustStore | None = None,
        *,
        enabled: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.trust_store = trust_store or TrustStore()
        self.enabled = enabled
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def verify(
        self,
        manifest_id: str,
        registry: str,
        integrity: Integrity,
        signatures: tuple[Signature, ...],
    ) -> tuple[Signature, ...]:
        if not signatures:
            return ()
        if not self.enabled:
            return signatures
        keys = self.trust_store.keys_for(registry)
        if keys is None:
            logger.warning(
                "signature verification skipped for %s: no keys configured for %s",
                manifest_id,
                registry_key(registry),
            )
            return ()

        message = signature_message(manifest_id, integrity)
        now = self._clock()
        for signature in signatures:
            public_key = next((key for key in keys if key.keyid == signature.keyid), None)
            if public_key is None:
                raise MissingSignatureKeyError(
                    f"{manifest_id} has a signature with keyid: {signature.keyid} "
                    "but no corresponding public key can be found.",
                    package=manifest_id,
                    keyid=signature.keyid,
                )
            if public_key.expires is not None and public_key.expires <= now:
                raise ExpiredSignatureKeyError(
                    f"{manifest_id} has a signature with keyid: {signature.keyid} "
                    f"but the corresponding public key has expired {public_key.expires.isoformat()}",
                    package=manifest_id,
                    keyid=signature.keyid,
                    expires=public_key.expires,
                )
            try:
                raw = base64.b64decode(signature.sig, validate=True)
            except (binascii.Error, ValueError):
                raw = b""
            if not raw or not verify_signature_bytes(public_key, message, raw, package=manifest_id):
                raise InvalidSignatureError(
                    "Integrity checksum signature failed: "
                    f"key {public_key.keyid} signature {signature.sig}",
                    package=manifest_id,
                    keyid=public_key.keyid,
                    sig=signature.sig,
                )
            logger.debug("signature accepted package=%s keyid=%s", manifest_id, signature.keyid)
        return signatures


def redact_token(value: str) -> str:
    if not value:
        return value
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-2:]}"


def redact_command_for_log(command: list[str]) -> list[str]:
    redacted: list[str] = []
    for item in command:
        lower = item.lower()
        if any(key in lower for key in _SENSITIVE_KEYS) and "://" not in item:
            redacted.append("***")
            continue
        if "://" in item:
            parsed = urlsplit(item)
            if parsed.password:
                safe_netloc = parsed.netloc.replace(parsed.password, "***")
                redacted.append(item.replace(parsed.netloc, safe_netloc))
                continue
            if parsed.username:
                safe_netloc = parsed.netloc.replace(parsed.username, redact_token(parsed.username), 1)
                redacted.append(item.replace(parsed.netloc, safe_netloc))
                continue
        redacted.append(item)
    return redacted
