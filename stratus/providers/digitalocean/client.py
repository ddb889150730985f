"""Async client for DigitalOcean API.

Uses pydo.aio for async operations. Returns plain dicts from the API
responses. Every call goes through the config's RetryPolicy, and SDK
errors are translated into the stratus error taxonomy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from azure.core.exceptions import HttpResponseError, ServiceRequestError, ServiceResponseError
from loguru import logger
from pydo.aio import Client as PyDOClient

from stratus.core.exceptions import ProviderError, TransientNetworkError, error_for_status
from stratus.retry import RetryPolicy

from .config import DigitalOcean

PAGE_SIZE = 200

type Droplet = dict[str, Any]


class DigitalOceanClient:
    """Async client for DigitalOcean API using pydo.aio.

    Example:
        client = DigitalOceanClient(DigitalOcean.from_env())
        droplets = await client.list_droplets()
        await client.close()

    Args:
        config: Provider configuration (token and retry policy).
        sdk: Pre-built pydo client. Tests pass an in-memory fake here.
    """

    def __init__(self, config: DigitalOcean, sdk: Any | None = None) -> None:
        self._sdk = sdk if sdk is not None else PyDOClient(token=config.token)
        self._retry: RetryPolicy = config.retry_policy
        self._log = logger.bind(component="digitalocean")

    async def close(self) -> None:
        close = getattr(self._sdk, "close", None)
        if close is not None:
            await close()

    async def _call[T](self, action: str, fn: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            try:
                return await fn()
            except HttpResponseError as e:
                body = str(e.message or e)
                raise error_for_status(e.status_code or 0, body, context=action) from e
            except (ServiceRequestError, ServiceResponseError) as e:
                raise TransientNetworkError(f"{action}: request failed: {e}", body=str(e)) from e

        self._log.debug("{action}", action=action)
        return await self._retry.call(attempt)

    # =========================================================================
    # Account / SSH keys
    # =========================================================================

    async def get_account(self) -> dict[str, Any]:
        result = await self._call("get account", lambda: self._sdk.account.get())
        return result.get("account", {})

    async def list_ssh_keys(self) -> list[dict[str, Any]]:
        """List all SSH keys registered on this account."""
        result = await self._call(
            "list ssh keys", lambda: self._sdk.ssh_keys.list(per_page=PAGE_SIZE)
        )
        return list(result.get("ssh_keys", []))

    # =========================================================================
    # Droplets
    # =========================================================================

    async def create_droplets(self, body: dict[str, Any]) -> list[Droplet]:
        """Create one droplet per entry of ``body["names"]``."""
        result = await self._call("create droplets", lambda: self._sdk.droplets.create(body=body))
        droplets = result.get("droplets")
        if droplets is None and result.get("droplet"):
            droplets = [result["droplet"]]
        if not droplets:
            raise ProviderError("create droplets: empty response")
        return list(droplets)

    async def get_droplet(self, droplet_id: int) -> Droplet:
        result = await self._call(
            f"get droplet {droplet_id}",
            lambda: self._sdk.droplets.get(droplet_id=droplet_id),
        )
        return result["droplet"]

    async def list_droplets(self) -> list[Droplet]:
        """List every droplet on the account, following pagination."""
        droplets: list[Droplet] = []
        page = 1
        while True:
            result = await self._call(
                f"list droplets page {page}",
                lambda page=page: self._sdk.droplets.list(per_page=PAGE_SIZE, page=page),
            )
            page_droplets = result.get("droplets", [])
            droplets.extend(page_droplets)
            if len(page_droplets) < PAGE_SIZE:
                return droplets
            page += 1

    async def delete_droplet(self, droplet_id: int) -> None:
        await self._call(
            f"delete droplet {droplet_id}",
            lambda: self._sdk.droplets.destroy(droplet_id=droplet_id),
        )

    # =========================================================================
    # Volumes
    # =========================================================================

    async def create_volume(
        self, name: str, size_gb: int, region: str, filesystem: str = ""
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"name": name, "size_gigabytes": size_gb, "region": region}
        if filesystem:
            body["filesystem_type"] = filesystem
        result = await self._call(
            f"create volume {name}", lambda: self._sdk.volumes.create(body=body)
        )
        volume = result.get("volume")
        if not volume:
            raise ProviderError(f"create volume {name}: empty response")
        return volume

    async def list_volumes(self, region: str) -> list[dict[str, Any]]:
        result = await self._call(
            f"list volumes in {region}", lambda: self._sdk.volumes.list(region=region)
        )
        return list(result.get("volumes", []))

    async def delete_volume(self, volume_id: str) -> None:
        await self._call(
            f"delete volume {volume_id}",
            lambda: self._sdk.volumes.delete(volume_id=volume_id),
        )

    async def volume_action(
        self, volume_id: str, action: str, droplet_id: int, region: str
    ) -> dict[str, Any]:
        """Start an attach/detach action. Returns the action record."""
        body = {"type": action, "droplet_id": droplet_id, "region": region}
        result = await self._call(
            f"{action} volume {volume_id}",
            lambda: self._sdk.volume_actions.post_by_id(volume_id=volume_id, body=body),
        )
        return result["action"]

    async def get_volume_action(self, volume_id: str, action_id: int) -> dict[str, Any]:
        result = await self._call(
            f"get volume action {action_id}",
            lambda: self._sdk.volume_actions.get(volume_id=volume_id, action_id=action_id),
        )
        return result["action"]


# =============================================================================
# Response helpers
# =============================================================================


def public_ipv4(droplet: Droplet) -> str:
    """First public IPv4 address of a droplet, or "" while unassigned."""
    for network in droplet.get("networks", {}).get("v4", []):
        if network.get("type") == "public" and network.get("ip_address"):
            return network["ip_address"]
    return ""


def region_slug(droplet: Droplet) -> str:
    region = droplet.get("region")
    if isinstance(region, dict):
        return region.get("slug", "")
    return region or ""


def size_slug(droplet: Droplet) -> str:
    return droplet.get("size_slug") or droplet.get("size", {}).get("slug", "")


__all__ = [
    "DigitalOceanClient",
    "Droplet",
    "public_ipv4",
    "region_slug",
    "size_slug",
]
