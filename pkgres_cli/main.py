"""Command line front end: ``pkgres resolve`` and ``pkgres manifest``."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from pkgres_core import __version__
from pkgres_core.config import RegistryConfig, load_registry_config, load_trust_store_file
from pkgres_core.registry import RegistryClient, RegistryError
from pkgres_core.registry.types import parse_timestamp
from pkgres_core.sources import PackumentCache, SourceResolver

logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("specs", nargs="+", help="Package specs, e.g. lodash@^4 or @scope/pkg@latest")
    parser.add_argument("--workspace-dir", default=".", help="Workspace root holding config/config.toml")
    parser.add_argument("--registry", help="Registry base URL (overrides config)")
    parser.add_argument("--tag", dest="default_tag", help="Default dist-tag")
    parser.add_argument("--before", help="Only consider versions published at or before this timestamp")
    parser.add_argument("--integrity", help="Expected SRI integrity for the package")
    parser.add_argument("--full-metadata", action="store_true", help="Request full packuments")
    parser.add_argument("--verify-signatures", action="store_true", help="Verify registry signatures")
    parser.add_argument("--keys-file", help="YAML/JSON trust store keyed by //host/path")
    parser.add_argument("--format", choices=["text", "json"], default="text")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pkgres", description="Resolve registry package specs")
    parser.add_argument("--version", action="version", version=f"pkgres {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_common_arguments(subparsers.add_parser("resolve", help="Print the tarball URL for each spec"))
    _add_common_arguments(subparsers.add_parser("manifest", help="Print the verified manifest for each spec"))
    return parser


def _apply_overrides(config: RegistryConfig, args: argparse.Namespace) -> RegistryConfig:
    options = config.options
    overrides: dict[str, Any] = {}
    if args.registry:
        overrides["registry"] = args.registry
    if args.default_tag:
        overrides["default_tag"] = args.default_tag
    if args.before:
        overrides["before"] = parse_timestamp(args.before)
    if args.integrity:
        overrides["integrity"] = args.integrity
    if args.full_metadata:
        overrides["full_metadata"] = True
    if args.verify_signatures:
        overrides["verify_signatures"] = True
    trust_store = config.trust_store
    if args.keys_file:
        trust_store = trust_store.merged(load_trust_store_file(Path(args.keys_file)))
    return replace(config, options=replace(options, **overrides), trust_store=trust_store)


def _manifest_payload(package: Any) -> dict[str, Any]:
    return {
        "spec": package.spec,
        "name": package.name,
        "version": package.version,
        "tarball": package.tarball,
        "integrity": str(package.integrity) or None,
        "signatures": [signature.to_dict() for signature in package.signatures],
        "manifest": dict(package.manifest),
    }


def run_command(args: argparse.Namespace) -> int:
    prefix = f"[pkgres:{args.command}]"
    workspace_root = Path(args.workspace_dir or ".").resolve()
    try:
        config = _apply_overrides(load_registry_config(workspace_root), args)
    except (ValueError, OSError) as exc:
        print(f"{prefix} invalid configuration: {exc}")
        return 1

    # one cache for the whole command so repeated names share a fetch
    resolver = SourceResolver(
        RegistryClient(config.client),
        options=config.options,
        cache=PackumentCache(),
        trust_store=config.trust_store,
        where=Path.cwd(),
    )
    results: list[dict[str, Any]] = []
    for spec in args.specs:
        try:
            if args.command == "resolve":
                results.append({"spec": spec, "resolved": resolver.resolve(spec)})
            else:
                results.append(_manifest_payload(resolver.manifest(spec)))
        except RegistryError as exc:
            logger.debug("resolution failed spec=%s", spec, exc_info=True)
            print(f"{prefix} {exc.code}: {exc}")
            return 1

    if args.format == "json":
        print(json.dumps({"ok": True, "results": results}, indent=2, default=str))
        return 0
    for item in results:
        if args.command == "resolve":
            print(f"{prefix} {item['spec']} -> {item['resolved']}")
        else:
            print(f"{prefix} {item['name']}@{item['version']} tarball={item['tarball']}")
            print(f"{prefix} integrity={item['integrity']} signatures={len(item['signatures'])}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run_command(args)
