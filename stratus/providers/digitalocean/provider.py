"""DigitalOcean provider: synchronous droplet creation, asynchronous IP assignment.

Droplets are created with the multi-create endpoint in fixed-size batches.
The API answers before networking is assigned, so each droplet is polled
until it reports a public IPv4 address. Block volumes are separate
resources created and attached after the droplet is reachable.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Iterable
from typing import Any

from loguru import logger

from stratus.cache import TTLCache
from stratus.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PartialBatchFailure,
    ProviderError,
    StratusError,
    TimeoutError,
)
from stratus.lifecycle import InstanceState, InstanceTracker, Lifecycle
from stratus.types import (
    InstanceConfig,
    InstanceInfo,
    VolumeConfig,
    VolumeDetails,
    require,
    validate_common,
    validate_volume,
)
from stratus.wait import wait_for_ready, wait_until

from .client import DigitalOceanClient, Droplet, public_ipv4, region_slug, size_slug
from .config import TOKEN_ENV, DigitalOcean

_USER_DATA = """#!/bin/bash
apt-get update
apt-get install -y python3

# Mount volumes if specified
{mounts}
"""

_MOUNT_VOLUME = """
# Mount volume {name}
mkdir -p {mount_point}
device=$(readlink -f /dev/disk/by-id/*{name})
if [ -n "$device" ] && [ -b "$device" ]; then
    {format_cmd}
    echo "$device {mount_point} {fstype} defaults,nofail 0 2" >> /etc/fstab
    mount {mount_point} || true
fi
"""


def user_data(volumes: Iterable[VolumeConfig]) -> str:
    """Cloud-init script that installs python3 and mounts every volume with a mount point."""
    mounts = "".join(
        _MOUNT_VOLUME.format(
            name=v.name,
            mount_point=v.mount_point,
            fstype=v.filesystem or "ext4",
            format_cmd=f'mkfs.{v.filesystem} "$device" || true' if v.filesystem else ":",
        )
        for v in volumes
        if v.mount_point
    )
    return _USER_DATA.format(mounts=mounts)


# =============================================================================
# Provider
# =============================================================================


class DigitalOceanProvider:
    """Provider for DigitalOcean Droplets.

    Example:
        provider = DigitalOceanProvider(DigitalOcean.from_env())
        instances = await provider.create_instance(
            "web",
            InstanceConfig(region="nyc1", size="s-1vcpu-1gb",
                           image="ubuntu-22-04-x64", ssh_key="deploy"),
        )
        await provider.delete_instance("web-0", "nyc1")

    Environment Variables:
        DIGITALOCEAN_TOKEN: API token (read by ``DigitalOcean.from_env``)
    """

    def __init__(self, config: DigitalOcean, client: DigitalOceanClient | None = None) -> None:
        self.config = config
        self._client = client or DigitalOceanClient(config)
        self._droplets = TTLCache[list[Droplet]](config.cache_ttl, name="digitalocean-droplets")
        self.tracker = InstanceTracker(self.name)
        self._log = logger.bind(component="digitalocean")

    @classmethod
    def from_env(cls) -> DigitalOceanProvider:
        return cls(DigitalOcean.from_env())

    @property
    def name(self) -> str:
        return "digitalocean"

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def _validate(self, name: str, config: InstanceConfig) -> None:
        require(config, "region", "size", "image", "ssh_key")
        validate_common(name, config)
        for volume in config.volumes:
            validate_volume(volume, config.region)

    async def create_instance(self, name: str, config: InstanceConfig) -> list[InstanceInfo]:
        self._validate(name, config)
        ssh_key_id = await self.resolve_ssh_key(config.ssh_key)

        names = config.instance_names(name)
        tags = list(dict.fromkeys([name, *config.tags]))
        size = self.config.batch_size

        ready: list[InstanceInfo] = []
        failures: dict[str, BaseException] = {}

        for batch_number, start in enumerate(range(0, len(names), size)):
            if batch_number:
                await asyncio.sleep(self.config.batch_delay)
            batch = names[start : start + size]
            self._log.info(
                "Creating batch {batch} of droplets ({count} instances)",
                batch=batch_number + 1, count=len(batch),
            )
            lifecycles = {
                droplet_name: self.tracker.begin(
                    droplet_name, InstanceState.CREATING, region=config.region
                )
                for droplet_name in batch
            }

            body = {
                "names": batch,
                "region": config.region,
                "size": config.size,
                "image": config.image,
                "ssh_keys": [ssh_key_id],
                "tags": tags,
                "user_data": user_data(config.volumes),
            }
            try:
                droplets = await self._client.create_droplets(body)
            except BaseException:
                for lifecycle in lifecycles.values():
                    lifecycle.advance(InstanceState.FAILED)
                raise
            finally:
                await self._droplets.invalidate()

            outcomes = await asyncio.gather(
                *(self._await_ready(d, config, lifecycles[d["name"]]) for d in droplets),
                return_exceptions=True,
            )
            for droplet, outcome in zip(droplets, outcomes, strict=True):
                droplet_name = droplet["name"]
                if not isinstance(outcome, InstanceInfo):
                    lifecycles[droplet_name].advance(InstanceState.FAILED)
                match outcome:
                    case InstanceInfo():
                        ready.append(outcome)
                    case AuthenticationError():
                        raise outcome
                    case TimeoutError() | ProviderError():
                        failures[droplet_name] = outcome
                        self._log.warning(
                            "Dropping droplet {name} from batch: {error}",
                            name=droplet_name, error=outcome,
                        )
                    case BaseException():
                        raise outcome

        if failures and not ready:
            raise PartialBatchFailure(ready, failures)
        if failures:
            self._log.warning(
                "{ready}/{total} droplets ready, dropped: {dropped}",
                ready=len(ready), total=len(names), dropped=sorted(failures),
            )
        return ready

    async def _await_ready(
        self, droplet: Droplet, config: InstanceConfig, lifecycle: Lifecycle
    ) -> InstanceInfo:
        droplet_id = droplet["id"]
        droplet_name = droplet["name"]
        lifecycle.advance(InstanceState.AWAITING_NETWORK)

        active = await wait_for_ready(
            lambda: self._client.get_droplet(droplet_id),
            lambda d: bool(public_ipv4(d)),
            interval=self.config.ip_poll_interval,
            max_attempts=self.config.ip_poll_attempts,
            ignore=(NotFoundError,),
            describe=lambda d: d.get("status"),
            description=f"public IP of droplet {droplet_name}",
        )

        details: list[VolumeDetails] = []
        for volume in config.volumes:
            details.append(await self._create_volume(droplet_id, droplet_name, volume, config.region))

        lifecycle.advance(InstanceState.READY)
        info = InstanceInfo(
            id=str(droplet_id),
            name=droplet_name,
            public_ip=public_ipv4(active),
            provider=self.name,
            region=region_slug(active) or config.region,
            size=size_slug(active) or config.size,
            volumes=tuple(d.id for d in details),
            volume_details=tuple(details),
        )
        self._log.info("Droplet {name} ready at {ip}", name=info.name, ip=info.public_ip)
        return info

    # -------------------------------------------------------------------------
    # Volumes
    # -------------------------------------------------------------------------

    async def _create_volume(
        self, droplet_id: int, droplet_name: str, volume: VolumeConfig, region: str
    ) -> VolumeDetails:
        volume_name = f"{droplet_name}-{secrets.token_hex(3)}"
        created = await self._client.create_volume(
            volume_name, volume.size_gb, region, volume.filesystem
        )
        volume_id = created["id"]
        try:
            await self._run_volume_action(volume_id, "attach", droplet_id, region)
        except Exception:
            await self._discard_volume(volume_id)
            raise
        self._log.info(
            "Attached volume {volume} to {droplet}", volume=volume_name, droplet=droplet_name
        )
        return VolumeDetails(
            id=volume_id,
            name=volume_name,
            region=region,
            size_gb=volume.size_gb,
            mount_point=volume.mount_point,
        )

    async def _run_volume_action(
        self, volume_id: str, action: str, droplet_id: int, region: str
    ) -> None:
        started = await self._client.volume_action(volume_id, action, droplet_id, region)
        if started.get("status") == "completed":
            return
        await wait_for_ready(
            lambda: self._client.get_volume_action(volume_id, started["id"]),
            lambda a: a.get("status") == "completed",
            interval=self.config.action_poll_interval,
            max_attempts=self.config.action_poll_attempts,
            terminal_check=lambda a: a.get("status") == "errored",
            describe=lambda a: a.get("status"),
            description=f"{action} of volume {volume_id}",
        )

    async def _discard_volume(self, volume_id: str) -> None:
        try:
            await self._client.delete_volume(volume_id)
        except StratusError as e:
            self._log.warning("Failed to delete volume {id}: {error}", id=volume_id, error=e)

    async def _release_volumes(self, droplet: Droplet, region: str) -> None:
        for volume_id in droplet.get("volume_ids") or ():
            try:
                await self._run_volume_action(volume_id, "detach", droplet["id"], region)
            except StratusError as e:
                self._log.warning("Failed to detach volume {id}: {error}", id=volume_id, error=e)
                continue
            await self._discard_volume(volume_id)

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def list_droplets(self) -> list[Droplet]:
        """All droplets on the account, served from the TTL cache."""
        return await self._droplets.get_or_fetch(self._client.list_droplets)

    @staticmethod
    def _matches(droplet: Droplet, name: str, region: str) -> bool:
        return droplet.get("name") == name and region_slug(droplet) == region

    async def find_droplet(self, name: str, region: str) -> Droplet | None:
        """Look up a droplet by ``(name, region)``, refetching once on a cache miss."""
        for attempt in range(2):
            if attempt:
                await self._droplets.invalidate()
            for droplet in await self.list_droplets():
                if self._matches(droplet, name, region):
                    return droplet
        return None

    async def delete_instance(self, name: str, region: str) -> None:
        lifecycle = self.tracker.begin(name, InstanceState.DELETE_REQUESTED, region=region)
        try:
            droplet = await self.find_droplet(name, region)
            if droplet is None:
                raise NotFoundError(f"droplet {name} not found in region {region}", status=404)

            await self._release_volumes(droplet, region)
            self._log.info("Deleting droplet {name} ({id})", name=name, id=droplet["id"])
            await self._client.delete_droplet(droplet["id"])
            await self._droplets.invalidate()
            lifecycle.advance(InstanceState.AWAITING_ABSENCE)

            async def absent() -> bool:
                droplets = await self._client.list_droplets()
                return not any(self._matches(d, name, region) for d in droplets)

            await wait_until(
                absent,
                interval=self.config.delete_poll_interval,
                max_attempts=self.config.delete_poll_attempts,
                description=f"deletion of droplet {name}",
                state=lambda: f"droplet {name} still exists",
            )
        except StratusError:
            lifecycle.advance(InstanceState.FAILED)
            raise

        await self._droplets.invalidate()
        lifecycle.advance(InstanceState.GONE)
        self._log.info("Droplet {name} deleted", name=name)

    # -------------------------------------------------------------------------
    # Misc
    # -------------------------------------------------------------------------

    async def resolve_ssh_key(self, reference: str) -> int:
        """Resolve an SSH key by name, numeric id or fingerprint."""
        keys = await self._client.list_ssh_keys()
        for key in keys:
            if (
                str(key.get("name", "")).lower() == reference.lower()
                or str(key.get("id")) == reference
                or key.get("fingerprint") == reference
            ):
                return int(key["id"])
        available = ", ".join(sorted(str(k.get("name")) for k in keys)) or "none"
        raise NotFoundError(f"SSH key {reference!r} not found (available: {available})")

    async def validate_credentials(self) -> None:
        account = await self._client.get_account()
        self._log.debug("Authenticated as {email}", email=account.get("email", "?"))

    def get_environment_vars(self) -> dict[str, str]:
        return {TOKEN_ENV: self.config.token}

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> DigitalOceanProvider:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()


__all__ = ["DigitalOceanProvider", "user_data"]
