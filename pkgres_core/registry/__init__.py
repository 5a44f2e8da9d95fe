"""Registry-facing building blocks: transport, integrity, signatures, versions."""

from .client import RegistryClient, RegistryTransport
from .errors import (
    ExpiredSignatureKeyError,
    FetchError,
    GitCommandError,
    IntegrityConflictError,
    InvalidManifestError,
    InvalidSignatureError,
    MissingSignatureKeyError,
    NoMatchingVersionError,
    NotFoundError,
    RegistryError,
    SignatureError,
    UnsupportedSpecError,
)
from .integrity import (
    Integrity,
    IntegrityEntry,
    integrity_for_dist,
    integrity_from_hex,
    parse_integrity,
    reconcile,
    reconcile_all,
)
from .security import SignatureVerifier, TrustStore, registry_key, signature_message
from .types import (
    DEFAULT_REGISTRY,
    DistInfo,
    Packument,
    PublicKey,
    RegistryClientConfig,
    RegistryResponse,
    Signature,
    TarballDescriptor,
)
from .versions import pick_manifest, satisfies

__all__ = [
    "RegistryClient",
    "RegistryTransport",
    "RegistryClientConfig",
    "RegistryResponse",
    "RegistryError",
    "FetchError",
    "NotFoundError",
    "NoMatchingVersionError",
    "IntegrityConflictError",
    "SignatureError",
    "MissingSignatureKeyError",
    "ExpiredSignatureKeyError",
    "InvalidSignatureError",
    "InvalidManifestError",
    "UnsupportedSpecError",
    "GitCommandError",
    "Integrity",
    "IntegrityEntry",
    "parse_integrity",
    "integrity_from_hex",
    "integrity_for_dist",
    "reconcile",
    "reconcile_all",
    "SignatureVerifier",
    "TrustStore",
    "registry_key",
    "signature_message",
    "DEFAULT_REGISTRY",
    "DistInfo",
    "Packument",
    "PublicKey",
    "Signature",
    "TarballDescriptor",
    "pick_manifest",
    "satisfies",
]
