"""Hand-off from instance creation to downstream provisioning.

``InstanceService`` runs provider operations and publishes an event once
each completes. ``ProvisioningSubscriber`` consumes those events: it
rebuilds the job's inventory from the repository (so it always sees what
was persisted, not what was in flight), writes it out and invokes the
provisioning runner. A provisioning failure is logged by the bus and never
reaches the code that created the instances.

The repository, inventory writer and runner are collaborators supplied by
the application; only their interfaces live here.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol, runtime_checkable

from loguru import logger

from stratus.bus import EventBus
from stratus.core.exceptions import ProvisioningError
from stratus.events import Event, EventType
from stratus.providers.base import Provider
from stratus.types import InstanceConfig, InstanceInfo

# =============================================================================
# Collaborators
# =============================================================================


@runtime_checkable
class InstanceRepository(Protocol):
    async def get_by_job_id(self, owner_id: int, job_id: str) -> Sequence[InstanceInfo]: ...


@runtime_checkable
class InventoryWriter(Protocol):
    async def write(self, job_id: str, inventory: Mapping[str, str]) -> str:
        """Persist ``name -> public IP`` and return where it was written."""
        ...


@runtime_checkable
class ProvisioningRunner(Protocol):
    async def run(
        self, job_id: str, inventory_path: str, instances: Sequence[InstanceInfo]
    ) -> None: ...


# =============================================================================
# Subscriber
# =============================================================================


class ProvisioningSubscriber:
    """Runs provisioning for Created events and rebuilds inventories on request."""

    def __init__(
        self,
        repository: InstanceRepository,
        writer: InventoryWriter,
        runner: ProvisioningRunner,
    ) -> None:
        self._repository = repository
        self._writer = writer
        self._runner = runner
        self._log = logger.bind(component="provisioning")

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventType.CREATED, self.on_created)
        bus.subscribe(EventType.INVENTORY_REQUESTED, self.on_inventory_requested)

    async def on_created(self, event: Event) -> None:
        if not event.needs_provisioning:
            self._log.info("Skipping provisioning for job {job} as requested", job=event.job_id)
            return
        instances = await self._load(event)
        path = await self._writer.write(event.job_id, _inventory(instances))
        self._log.info(
            "Provisioning {count} instance(s) for job {job}", count=len(instances), job=event.job_id
        )
        await self._runner.run(event.job_id, path, instances)

    async def on_inventory_requested(self, event: Event) -> None:
        instances = await self._load(event)
        path = await self._writer.write(event.job_id, _inventory(instances))
        self._log.info("Wrote inventory for job {job} to {path}", job=event.job_id, path=path)

    async def _load(self, event: Event) -> list[InstanceInfo]:
        instances = list(await self._repository.get_by_job_id(event.owner_id, event.job_id))
        if not instances:
            raise ProvisioningError(f"no instances found for job {event.job_id}")
        return instances


def _inventory(instances: Iterable[InstanceInfo]) -> dict[str, str]:
    return {i.name: i.public_ip for i in instances}


# =============================================================================
# Lifecycle service
# =============================================================================


class InstanceService:
    """Provider operations that announce their completion on the event bus.

    An event is published only after the provider call has returned, so a
    Created event always carries Ready instances and a Deleted event follows
    confirmed absence.
    """

    def __init__(self, provider: Provider, bus: EventBus) -> None:
        self.provider = provider
        self._bus = bus
        self._log = logger.bind(component="instances", provider=provider.name)

    async def create(
        self,
        job_id: str,
        name: str,
        config: InstanceConfig,
        *,
        job_name: str = "",
    ) -> list[InstanceInfo]:
        instances = list(await self.provider.create_instance(name, config))
        self._log.info("Job {job}: {count} instance(s) ready", job=job_id, count=len(instances))
        await self._bus.publish(
            Event.created(
                job_id, instances, [config], job_name=job_name, owner_id=config.owner_id
            )
        )
        return instances

    async def delete(
        self,
        job_id: str,
        instances: Sequence[InstanceInfo],
        *,
        job_name: str = "",
        owner_id: int = 0,
    ) -> None:
        """Delete every instance concurrently.

        Every delete runs to completion before this returns. The instances
        that are gone are announced in one event even when others failed;
        the failures are raised afterwards, a single one as is and several
        as an exception group.
        """
        results = await asyncio.gather(
            *(self.provider.delete_instance(i.name, i.region) for i in instances),
            return_exceptions=True,
        )
        gone = [i for i, r in zip(instances, results) if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]

        if gone or not failures:
            self._log.info("Job {job}: {count} instance(s) deleted", job=job_id, count=len(gone))
            await self._bus.publish(
                Event.deleted(job_id, gone, job_name=job_name, owner_id=owner_id)
            )
        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise BaseExceptionGroup(
                f"{len(failures)} of {len(instances)} deletes failed for job {job_id}", failures
            )

    async def request_inventory(self, job_id: str, *, job_name: str = "", owner_id: int = 0) -> None:
        await self._bus.publish(
            Event.inventory_requested(job_id, job_name=job_name, owner_id=owner_id)
        )


__all__ = [
    "InstanceRepository",
    "InstanceService",
    "InventoryWriter",
    "ProvisioningRunner",
    "ProvisioningSubscriber",
]
