"""DigitalOcean provider configuration.

Immutable configuration dataclass for the DigitalOcean provider.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from stratus.core.exceptions import ConfigurationError
from stratus.retry import RetryPolicy

TOKEN_ENV = "DIGITALOCEAN_TOKEN"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class DigitalOcean:
    """DigitalOcean provider configuration.

    Example:
        >>> from stratus.providers.digitalocean import DigitalOcean
        >>> config = DigitalOcean.from_env()

    Args:
        token: API token. ``from_env`` reads DIGITALOCEAN_TOKEN.
        retry_attempts: Attempts per API call on 429/5xx/transport errors.
        retry_delay: Fixed seconds between those attempts.
        batch_size: Droplets per multi-create request.
        batch_delay: Seconds between consecutive batches.
        ip_poll_interval: Seconds between public IP polls.
        ip_poll_attempts: Public IP polls before a droplet is dropped.
        delete_poll_interval: Seconds between absence polls after a delete.
        delete_poll_attempts: Absence polls before giving up.
        action_poll_interval: Seconds between volume action polls.
        action_poll_attempts: Volume action polls before giving up.
        cache_ttl: Seconds the droplet list is served from cache.
    """

    token: str
    retry_attempts: int = 3
    retry_delay: float = 2.0
    batch_size: int = 10
    batch_delay: float = 2.0
    ip_poll_interval: float = 10.0
    ip_poll_attempts: int = 10
    delete_poll_interval: float = 5.0
    delete_poll_attempts: int = 10
    action_poll_interval: float = 5.0
    action_poll_attempts: int = 10
    cache_ttl: float = 30.0

    def __post_init__(self) -> None:
        if not self.token:
            raise ConfigurationError(f"DigitalOcean API token is empty. Set {TOKEN_ENV}.")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")

    @classmethod
    def from_env(cls, **overrides: object) -> DigitalOcean:
        """Build the config from the environment; ``overrides`` win over env values."""
        token = overrides.pop("token", None) or os.environ.get(TOKEN_ENV)
        if not token:
            raise ConfigurationError(
                f"DigitalOcean API token not found. Set {TOKEN_ENV} environment variable."
            )
        return cls(token=str(token), **overrides)  # type: ignore[arg-type]

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retry_attempts, delay=self.retry_delay)


__all__ = ["DigitalOcean", "TOKEN_ENV"]
