"""Ximera provider: create, then build, then poll for a completed state.

The create call only reserves a server; the build call installs the OS
and attaches the SSH key. A server is Ready once its state reads
``complete`` and its first interface carries an IPv4 address. Ximera has
no volume resources: requested volumes fold into the server's disk size.
"""

from __future__ import annotations

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
    ValidationError,
)
from stratus.lifecycle import InstanceState, InstanceTracker, Lifecycle
from stratus.types import InstanceConfig, InstanceInfo, require, validate_common, validate_volume
from stratus.wait import wait_for_ready, wait_until

from .client import Server, XimeraClient, server_ip
from .config import Ximera

READY_STATE = "complete"


class XimeraProvider:
    """Provider for Ximera servers.

    Example:
        provider = XimeraProvider(Ximera.from_env())
        instances = await provider.create_instance(
            "db",
            InstanceConfig(image="12", memory_mb=4096, cpu=2, ssh_key="deploy",
                           volumes=(VolumeConfig("data", 50, "/mnt/data"),)),
        )

    Environment Variables:
        XIMERA_API_URL, XIMERA_API_TOKEN: required
        XIMERA_USER_ID, XIMERA_HYPERVISOR_GROUP_ID, XIMERA_PACKAGE_ID: optional ints
        XIMERA_SSH_KEY_ID: default SSH key
    """

    def __init__(self, config: Ximera, client: XimeraClient | None = None) -> None:
        self.config = config
        self._client = client or XimeraClient(config)
        self._servers = TTLCache[list[Server]](config.cache_ttl, name="ximera-servers")
        self.tracker = InstanceTracker(self.name)
        self._log = logger.bind(component="ximera")

    @classmethod
    def from_env(cls) -> XimeraProvider:
        return cls(Ximera.from_env())

    @property
    def name(self) -> str:
        return "ximera"

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def _validate(self, name: str, config: InstanceConfig) -> int:
        require(config, "image", "memory_mb", "cpu")
        validate_common(name, config)
        if not config.volumes:
            raise ValidationError("at least one volume is required")
        mount_points: set[str] = set()
        for volume in config.volumes:
            validate_volume(volume, config.region)
            if volume.mount_point in mount_points:
                raise ValidationError(f"duplicate mount point: {volume.mount_point}")
            if volume.mount_point:
                mount_points.add(volume.mount_point)
        if not (config.ssh_key or self.config.ssh_key_id):
            raise ValidationError("ssh_key is required")
        try:
            return int(config.image)
        except ValueError:
            raise ValidationError(
                f"image must be a numeric operating system id, got {config.image!r}"
            ) from None

    async def create_instance(self, name: str, config: InstanceConfig) -> list[InstanceInfo]:
        os_id = self._validate(name, config)
        if config.size:
            self._log.warning(
                "size {size!r} is not supported by Ximera and will be ignored; "
                "use memory_mb and cpu instead",
                size=config.size,
            )
        ssh_key_id = await self.resolve_ssh_key(config.ssh_key or self.config.ssh_key_id)

        names = config.instance_names(name)
        ready: list[InstanceInfo] = []
        failures: dict[str, BaseException] = {}

        for server_name in names:
            # Servers carry no region, so they are tracked by name alone.
            lifecycle = self.tracker.begin(server_name, InstanceState.CREATING)
            try:
                ready.append(await self._create_one(lifecycle, os_id, ssh_key_id, config))
            except AuthenticationError:
                lifecycle.advance(InstanceState.FAILED)
                raise
            except (TimeoutError, ProviderError) as e:
                lifecycle.advance(InstanceState.FAILED)
                failures[server_name] = e
                self._log.warning(
                    "Dropping server {name} from batch: {error}", name=server_name, error=e
                )
            except BaseException:
                lifecycle.advance(InstanceState.FAILED)
                raise

        if failures and not ready:
            raise PartialBatchFailure(ready, failures)
        if failures:
            self._log.warning(
                "{ready}/{total} servers ready, dropped: {dropped}",
                ready=len(ready), total=len(names), dropped=sorted(failures),
            )
        return ready

    async def _create_one(
        self, lifecycle: Lifecycle, os_id: int, ssh_key_id: int, config: InstanceConfig
    ) -> InstanceInfo:
        server_name = lifecycle.name
        try:
            created = await self._client.create_server(
                server_name,
                storage=config.total_disk_gb,
                memory=config.memory_mb,
                cpu=config.cpu,
            )
        finally:
            await self._servers.invalidate()
        server_id = created["id"]
        self._log.info("Created server {name} ({id}), building", name=server_name, id=server_id)

        await self._client.build_server(
            server_id, os_id=os_id, name=server_name, ssh_keys=[ssh_key_id]
        )
        lifecycle.advance(InstanceState.AWAITING_NETWORK)

        server = await wait_for_ready(
            lambda: self._client.get_server(server_id),
            lambda s: s.get("state") == READY_STATE and bool(server_ip(s)),
            interval=self.config.ready_poll_interval,
            max_attempts=self.config.ready_poll_attempts,
            ignore=(NotFoundError,),
            describe=lambda s: s.get("state"),
            description=f"build of server {server_name}",
        )

        lifecycle.advance(InstanceState.READY)
        info = self._info(server, region=config.region, size=config.size)
        self._log.info("Server {name} ready at {ip}", name=info.name, ip=info.public_ip)
        return info

    def _info(self, server: Server, *, region: str = "", size: str = "") -> InstanceInfo:
        return InstanceInfo(
            id=str(server["id"]),
            name=server.get("name", ""),
            public_ip=server_ip(server),
            provider=self.name,
            region=region,
            size=size,
        )

    async def resolve_ssh_key(self, reference: str) -> int:
        """Numeric references are key ids; anything else is a key name of the account user."""
        if reference.isdigit():
            return int(reference)
        keys = await self._client.list_ssh_keys(self.config.user_id)
        for key in keys:
            if str(key.get("name", "")).lower() == reference.lower():
                return int(key["id"])
        available = ", ".join(sorted(str(k.get("name")) for k in keys)) or "none"
        raise NotFoundError(f"SSH key {reference!r} not found (available: {available})")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def list_servers(self) -> list[Server]:
        """All servers, served from the TTL cache."""
        return await self._servers.get_or_fetch(self._client.list_servers)

    async def find_server(self, name: str) -> Server | None:
        """Look up a server summary by name, refetching once on a cache miss."""
        for attempt in range(2):
            if attempt:
                await self._servers.invalidate()
            for server in await self.list_servers():
                if server.get("name") == name:
                    return server
        return None

    async def get_instance(self, name: str) -> InstanceInfo:
        """Current facts for the server called ``name``.

        Raises:
            NotFoundError: No server has that name.
        """
        summary = await self.find_server(name)
        if summary is None:
            raise NotFoundError(f"server {name} not found", status=404)
        return self._info(await self._client.get_server(summary["id"]))

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_instance(self, name: str, region: str) -> None:
        # Servers carry no region; the name alone identifies them.
        lifecycle = self.tracker.begin(name, InstanceState.DELETE_REQUESTED)
        try:
            server = await self.find_server(name)
            if server is None:
                raise NotFoundError(f"server {name} not found", status=404)

            self._log.info("Deleting server {name} ({id})", name=name, id=server["id"])
            await self._client.delete_server(server["id"])
            await self._servers.invalidate()
            lifecycle.advance(InstanceState.AWAITING_ABSENCE)

            async def absent() -> bool:
                servers = await self._client.list_servers()
                return not any(s.get("name") == name for s in servers)

            await wait_until(
                absent,
                interval=self.config.delete_poll_interval,
                max_attempts=self.config.delete_poll_attempts,
                description=f"deletion of server {name}",
                state=lambda: f"server {name} still exists",
            )
        except StratusError:
            lifecycle.advance(InstanceState.FAILED)
            raise

        await self._servers.invalidate()
        lifecycle.advance(InstanceState.GONE)
        self._log.info("Server {name} deleted", name=name)

    # -------------------------------------------------------------------------
    # Misc
    # -------------------------------------------------------------------------

    async def validate_credentials(self) -> None:
        await self._client.connect()

    def get_environment_vars(self) -> dict[str, str]:
        return self.config.environment()

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> XimeraProvider:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()


__all__ = ["READY_STATE", "XimeraProvider"]
