"""Workspace configuration for registry resolution.

Settings live in ``<workspace>/config/config.toml`` under ``[registry]``::

    [registry]
    url = "https://registry.npmjs.org/"
    verify_signatures = true
    default_tag = "latest"
    keys_file = "keys.yml"

    [registry.scopes]
    "@acme" = "https://npm.acme.internal/"

    [registry.keys]
    "//registry.npmjs.org/" = [{ keyid = "SHA256:...", key = "MFkw..." }]
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from pkgres_core.registry.security import TrustStore
from pkgres_core.registry.types import DEFAULT_REGISTRY, RegistryClientConfig, parse_timestamp
from pkgres_core.sources.models import ResolveOptions

CONFIG_RELATIVE_PATH = Path("config") / "config.toml"


@dataclass(frozen=True)
class RegistryConfig:
    client: RegistryClientConfig = field(default_factory=RegistryClientConfig)
    options: ResolveOptions = field(default_factory=ResolveOptions)
    trust_store: TrustStore = field(default_factory=TrustStore)


def _to_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _string_pairs(value: Any, label: str) -> tuple[tuple[str, str], ...]:
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        raise ValueError(f"registry.{label} must be a table")
    return tuple((str(key), str(item)) for key, item in value.items())


def load_registry_section(workspace_root: Path) -> dict[str, Any]:
    config_path = workspace_root / CONFIG_RELATIVE_PATH
    if not config_path.exists():
        return {}
    try:
        payload = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"invalid config file {config_path}: {exc}") from exc
    section = payload.get("registry")
    return section if isinstance(section, dict) else {}


def load_trust_store_file(path: Path) -> TrustStore:
    """Load ``{"//host/path": [keys...]}`` from a YAML or JSON file."""
    payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"trust store file {path} must contain a mapping")
    return TrustStore.from_mapping(payload)


def build_registry_config(section: Mapping[str, Any], *, base_dir: Path | None = None) -> RegistryConfig:
    headers = _string_pairs(section.get("headers"), "headers")
    user_agent = str(section.get("user_agent") or "").strip() or None
    client = RegistryClientConfig(
        timeout_seconds=float(section.get("timeout_seconds", 30.0)),
        user_agent=user_agent,
        headers=dict(headers),
    )
    options = ResolveOptions(
        registry=str(section.get("url") or DEFAULT_REGISTRY),
        full_metadata=_to_bool(section.get("full_metadata")),
        verify_signatures=_to_bool(section.get("verify_signatures")),
        before=parse_timestamp(section.get("before")),
        default_tag=str(section.get("default_tag") or "latest"),
        scoped_registries=_string_pairs(section.get("scopes"), "scopes"),
        user_agent=user_agent,
        headers=headers,
    )

    trust_store = TrustStore()
    keys = section.get("keys")
    if keys is not None:
        if not isinstance(keys, Mapping):
            raise ValueError("registry.keys must be a table keyed by //host/path")
        trust_store = TrustStore.from_mapping(keys)
    keys_file = str(section.get("keys_file") or "").strip()
    if keys_file:
        path = Path(keys_file).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        trust_store = trust_store.merged(load_trust_store_file(path))
    return RegistryConfig(client=client, options=options, trust_store=trust_store)


def load_registry_config(workspace_root: Path) -> RegistryConfig:
    workspace_root = workspace_root.resolve()
    section = load_registry_section(workspace_root)
    return build_registry_config(section, base_dir=workspace_root / CONFIG_RELATIVE_PATH.parent)
