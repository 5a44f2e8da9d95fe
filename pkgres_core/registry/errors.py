"""Error taxonomy for registry resolution.

Every error carries a stable ``code`` plus the identifiers a caller needs to
diagnose the failure (package spec, algorithm, key id).
"""

from __future__ import annotations

from typing import Any


class RegistryError(Exception):
    code = "EREGISTRY"

    def __init__(self, message: str, *, package: str | None = None, **context: Any) -> None:
        super().__init__(message)
        self.package = package
        self.context = dict(context)
        for key, value in context.items():
            setattr(self, key, value)


class FetchError(RegistryError):
    """Transport failure while talking to the registry."""

    code = "EFETCH"

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        package: str | None = None,
    ) -> None:
        super().__init__(message, package=package, url=url, status_code=status_code)


class NotFoundError(FetchError):
    code = "E404"


class NoMatchingVersionError(RegistryError):
    code = "ETARGET"


class IntegrityConflictError(RegistryError):
    code = "EINTEGRITY"


class SignatureError(RegistryError):
    code = "ESIGNATURE"


class MissingSignatureKeyError(SignatureError):
    code = "EMISSINGSIGNATUREKEY"


class ExpiredSignatureKeyError(SignatureError):
    code = "EEXPIREDSIGNATUREKEY"


class InvalidSignatureError(SignatureError):
    code = "EINTEGRITYSIGNATURE"


class InvalidManifestError(RegistryError):
    code = "EBADMANIFEST"


class UnsupportedSpecError(RegistryError):
    code = "EUNSUPPORTEDSPEC"


class GitCommandError(RegistryError):
    code = "EGIT"
