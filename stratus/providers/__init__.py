"""Hosting backends for Stratus."""

from stratus.providers.base import Provider
from stratus.providers.digitalocean import DigitalOcean, DigitalOceanProvider
from stratus.providers.registry import create_provider, provider_names
from stratus.providers.ximera import Ximera, XimeraProvider

__all__ = [
    "DigitalOcean",
    "DigitalOceanProvider",
    "Provider",
    "Ximera",
    "XimeraProvider",
    "create_provider",
    "provider_names",
]
