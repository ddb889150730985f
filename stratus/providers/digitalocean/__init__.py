"""DigitalOcean provider for Stratus.

Example:
    from stratus.providers.digitalocean import DigitalOcean, DigitalOceanProvider

    provider = DigitalOceanProvider(DigitalOcean.from_env())
"""

from stratus.providers.digitalocean.config import DigitalOcean
from stratus.providers.digitalocean.provider import DigitalOceanProvider

__all__ = ["DigitalOcean", "DigitalOceanProvider"]
