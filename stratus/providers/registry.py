"""Provider factory.

Builds a provider from a backend name or a config object. There is no
module-level registry of live providers: every call returns a fresh
instance, so tests never share provider state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from stratus.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from .base import Provider
    from .digitalocean.config import DigitalOcean
    from .ximera.config import Ximera

log = logger.bind(component="registry")

type ProviderConfig = DigitalOcean | Ximera

_ALIASES = {
    "do": "digitalocean",
    "digitalocean": "digitalocean",
    "ximera": "ximera",
}


def provider_names() -> list[str]:
    """Accepted backend names, aliases included."""
    return sorted(_ALIASES)


def canonical_name(name: str) -> str:
    try:
        return _ALIASES[name.strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown provider {name!r}. Available providers: {', '.join(provider_names())}"
        ) from None


def create_provider(target: str | ProviderConfig) -> Provider:
    """Create a provider for a backend name or a config object.

    A name reads the backend's credentials from the environment, so a
    missing variable fails here rather than on the first API call.

    Raises:
        ConfigurationError: Unknown backend or missing credentials.
    """
    from .digitalocean.config import DigitalOcean
    from .ximera.config import Ximera

    if isinstance(target, str):
        match canonical_name(target):
            case "digitalocean":
                target = DigitalOcean.from_env()
            case _:
                target = Ximera.from_env()

    log.debug("Creating provider for config={config}", config=type(target).__name__)

    match target:
        case DigitalOcean():
            from .digitalocean.provider import DigitalOceanProvider
            return DigitalOceanProvider(target)
        case Ximera():
            from .ximera.provider import XimeraProvider
            return XimeraProvider(target)
        case _:
            raise ConfigurationError(
                f"No provider registered for {type(target).__name__}. "
                f"Available providers: DigitalOcean, Ximera"
            )


__all__ = ["ProviderConfig", "canonical_name", "create_provider", "provider_names"]
