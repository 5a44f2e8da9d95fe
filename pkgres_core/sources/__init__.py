from .cache import PackumentCache
from .models import PackageRequest, ResolvedPackage, ResolveOptions
from .packument import CORGI_DOC, FULL_DOC, PackumentFetcher, packument_url, select_manifest
from .resolver import (
    DirectoryFetcher,
    Fetcher,
    GitFetcher,
    RegistryFetcher,
    RemoteFetcher,
    SourceResolver,
    normalize_manifest,
)
from .spec import parse_spec

__all__ = [
    "CORGI_DOC",
    "DirectoryFetcher",
    "FULL_DOC",
    "Fetcher",
    "GitFetcher",
    "PackageRequest",
    "PackumentCache",
    "PackumentFetcher",
    "RegistryFetcher",
    "RemoteFetcher",
    "ResolveOptions",
    "ResolvedPackage",
    "SourceResolver",
    "normalize_manifest",
    "packument_url",
    "parse_spec",
    "select_manifest",
]
