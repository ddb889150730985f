"""Async client for the Ximera REST API.

Thin wrapper over HttpClient: every call is one logical request executed
under the config's RetryPolicy. Responses wrap their payload in ``data``;
list endpoints are paginated with ``current_page``/``last_page``.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from stratus.core.exceptions import ProviderError
from stratus.infra.http import BearerAuth, HttpClient

from .config import Ximera

PAGE_SIZE = 200

type Server = dict[str, Any]


class XimeraClient:
    def __init__(self, config: Ximera, http: HttpClient | None = None) -> None:
        self.config = config
        self._http = http or HttpClient(
            config.api_url,
            BearerAuth(config.api_token),
            timeout=config.timeout,
            retry=config.retry_policy,
        )
        self._log = logger.bind(component="ximera")

    async def close(self) -> None:
        await self._http.close()

    async def connect(self) -> Any:
        """``GET /connect``: read-only credential check."""
        return await self._http.get("/connect")

    # =========================================================================
    # Servers
    # =========================================================================

    async def list_servers(self) -> list[Server]:
        """Every server visible to the token, following pagination."""
        servers: list[Server] = []
        page = 1
        while True:
            result = await self._http.get("/servers", params={"page": page, "results": PAGE_SIZE})
            result = result or {}
            servers.extend(result.get("data") or [])
            last_page = int(result.get("last_page") or 1)
            current = int(result.get("current_page") or page)
            if current >= last_page:
                self._log.debug("Listed {count} servers", count=len(servers))
                return servers
            page = current + 1

    async def get_server(self, server_id: int) -> Server:
        return _data(await self._http.get(f"/servers/{server_id}"), f"server {server_id}")

    async def create_server(self, name: str, *, storage: int, memory: int, cpu: int) -> Server:
        body = {
            "packageId": self.config.package_id,
            "userId": self.config.user_id,
            "hypervisorId": self.config.hypervisor_group_id,
            "ipv4": 1,
            "name": name,
            "storage": storage,
            # 0 = unlimited traffic
            "traffic": 0,
            "memory": memory,
            "cpuCores": cpu,
        }
        return _data(await self._http.post("/servers", json=body), f"create server {name}")

    async def build_server(
        self, server_id: int, *, os_id: int, name: str, ssh_keys: list[int]
    ) -> Server:
        body = {
            "operatingSystemId": os_id,
            "name": name,
            "hostname": name,
            "sshKeys": ssh_keys,
        }
        return _data(
            await self._http.post(f"/servers/{server_id}/build", json=body),
            f"build server {server_id}",
        )

    async def delete_server(self, server_id: int) -> None:
        await self._http.delete(f"/servers/{server_id}")

    # =========================================================================
    # SSH keys
    # =========================================================================

    async def list_ssh_keys(self, user_id: int) -> list[dict[str, Any]]:
        result = await self._http.get(f"/ssh_keys/user/{user_id}")
        return list((result or {}).get("data") or [])


def _data(result: Any, what: str) -> Server:
    if not isinstance(result, dict) or not isinstance(result.get("data"), dict):
        raise ProviderError(f"{what}: unexpected response {result!r}")
    return result["data"]


def server_ip(server: Server) -> str:
    """First IPv4 address of the first network interface, or ""."""
    interfaces = (server.get("network") or {}).get("interfaces") or []
    if not interfaces:
        return ""
    addresses = interfaces[0].get("ipv4") or []
    if not addresses:
        return ""
    return addresses[0].get("address") or ""


__all__ = ["Server", "XimeraClient", "server_ip"]
