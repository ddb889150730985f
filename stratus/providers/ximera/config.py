"""Ximera provider configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from stratus.core.exceptions import ConfigurationError
from stratus.retry import RetryPolicy

API_URL_ENV = "XIMERA_API_URL"
API_TOKEN_ENV = "XIMERA_API_TOKEN"
USER_ID_ENV = "XIMERA_USER_ID"
HYPERVISOR_GROUP_ID_ENV = "XIMERA_HYPERVISOR_GROUP_ID"
PACKAGE_ID_ENV = "XIMERA_PACKAGE_ID"
SSH_KEY_ID_ENV = "XIMERA_SSH_KEY_ID"


def _int_env(name: str) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"invalid {name}: {raw!r} is not an integer") from e


@dataclass(frozen=True, slots=True)
class Ximera:
    """Ximera (VirtFusion-based) provider configuration.

    Servers are sized by ``memory_mb``/``cpu`` on the InstanceConfig and
    bundle their storage, so volumes fold into a single disk size.

    Args:
        api_url: Base URL of the REST API, e.g. ``https://cp.example.com/api/v1``.
        api_token: Bearer token.
        user_id: Account that owns created servers (``userId``).
        hypervisor_group_id: Hypervisor group servers are placed on.
        package_id: Server package the create call starts from.
        ssh_key_id: Default SSH key (numeric id or key name) when the
            InstanceConfig does not name one.
        ready_poll_interval: Seconds between "build complete" polls.
        ready_poll_attempts: Build polls before a server is dropped.
        cache_ttl: Seconds the server list is served from cache.
    """

    api_url: str
    api_token: str
    user_id: int = 0
    hypervisor_group_id: int = 0
    package_id: int = 0
    ssh_key_id: str = ""
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_delay: float = 2.0
    ready_poll_interval: float = 5.0
    ready_poll_attempts: int = 24
    delete_poll_interval: float = 5.0
    delete_poll_attempts: int = 10
    cache_ttl: float = 300.0

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigurationError(f"{API_URL_ENV} is required")
        if not self.api_token:
            raise ConfigurationError(f"{API_TOKEN_ENV} is required")

    @classmethod
    def from_env(cls, **overrides: object) -> Ximera:
        """Read the XIMERA_* environment variables; ``overrides`` win."""
        values: dict[str, object] = {
            "api_url": os.environ.get(API_URL_ENV, ""),
            "api_token": os.environ.get(API_TOKEN_ENV, ""),
            "user_id": _int_env(USER_ID_ENV),
            "hypervisor_group_id": _int_env(HYPERVISOR_GROUP_ID_ENV),
            "package_id": _int_env(PACKAGE_ID_ENV),
            "ssh_key_id": os.environ.get(SSH_KEY_ID_ENV, ""),
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retry_attempts, delay=self.retry_delay)

    def environment(self) -> dict[str, str]:
        return {
            API_URL_ENV: self.api_url,
            API_TOKEN_ENV: self.api_token,
            USER_ID_ENV: str(self.user_id),
            HYPERVISOR_GROUP_ID_ENV: str(self.hypervisor_group_id),
            PACKAGE_ID_ENV: str(self.package_id),
        }


__all__ = ["Ximera"]
