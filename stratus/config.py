"""TOML-based provider configuration.

Loads ~/.stratus/defaults.toml (global) and stratus.toml (project),
merges them, and resolves named providers:

    [providers.prod-do]
    type = "digitalocean"
    batch_size = 5

    [providers.lab]
    type = "ximera"
    package_id = 7

Credentials always come from the environment; the table only tunes them.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stratus.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from stratus.providers.base import Provider
    from stratus.providers.registry import ProviderConfig

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".stratus" / "defaults.toml"
PROJECT_CONFIG_NAME = "stratus.toml"


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_cfg = _read_toml((project_dir or Path.cwd()) / PROJECT_CONFIG_NAME)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("providers", {})
    return merged


def build_provider_config(name: str, raw: RawConfig) -> ProviderConfig:
    """Turn one ``[providers.<name>]`` table into a provider config object."""
    from stratus.providers.digitalocean.config import DigitalOcean
    from stratus.providers.registry import canonical_name
    from stratus.providers.ximera.config import Ximera

    raw = dict(raw)
    provider_type = raw.pop("type", None)
    if provider_type is None:
        raise ConfigurationError(f"Provider '{name}' missing 'type' field")

    match canonical_name(provider_type):
        case "digitalocean":
            cls = DigitalOcean
        case _:
            cls = Ximera
    try:
        return cls.from_env(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Provider '{name}': {e}") from e


def resolve_provider(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Provider:
    from stratus.providers.registry import create_provider

    providers = load_config(project_dir=project_dir, global_path=global_path)["providers"]
    if name not in providers:
        raise ConfigurationError(
            f"Provider '{name}' not found. Available: {', '.join(providers) or 'none'}"
        )
    return create_provider(build_provider_config(name, providers[name]))


__all__ = [
    "GLOBAL_CONFIG_PATH",
    "PROJECT_CONFIG_NAME",
    "build_provider_config",
    "load_config",
    "resolve_provider",
]
