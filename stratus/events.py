"""Events published when instance lifecycles complete.

Events are frozen dataclasses whose collections are tuples of frozen
dataclasses, so a handler cannot change what another handler sees.

    match event:
        case Event(type=EventType.CREATED, instances=instances):
            inventory = {i.name: i.public_ip for i in instances}
        case Event(type=EventType.DELETED, job_name=job):
            print(f"{job} torn down")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from stratus.types import InstanceConfig, InstanceInfo


class EventType(StrEnum):
    CREATED = "instances_created"
    DELETED = "instances_deleted"
    INVENTORY_REQUESTED = "inventory_requested"


@dataclass(frozen=True, slots=True)
class Event:
    """A completed lifecycle step for one job."""

    type: EventType
    job_id: str
    job_name: str = ""
    owner_id: int = 0
    instances: tuple[InstanceInfo, ...] = ()
    requests: tuple[InstanceConfig, ...] = ()

    @classmethod
    def created(
        cls,
        job_id: str,
        instances: Iterable[InstanceInfo],
        requests: Iterable[InstanceConfig] = (),
        *,
        job_name: str = "",
        owner_id: int = 0,
    ) -> Event:
        return cls(
            type=EventType.CREATED,
            job_id=job_id,
            job_name=job_name,
            owner_id=owner_id,
            instances=tuple(instances),
            requests=tuple(requests),
        )

    @classmethod
    def deleted(
        cls,
        job_id: str,
        instances: Iterable[InstanceInfo] = (),
        *,
        job_name: str = "",
        owner_id: int = 0,
    ) -> Event:
        return cls(
            type=EventType.DELETED,
            job_id=job_id,
            job_name=job_name,
            owner_id=owner_id,
            instances=tuple(instances),
        )

    @classmethod
    def inventory_requested(cls, job_id: str, *, job_name: str = "", owner_id: int = 0) -> Event:
        return cls(
            type=EventType.INVENTORY_REQUESTED,
            job_id=job_id,
            job_name=job_name,
            owner_id=owner_id,
        )

    @property
    def needs_provisioning(self) -> bool:
        """True when any originating request asked to be provisioned."""
        return any(r.provision for r in self.requests)

    @property
    def inventory(self) -> dict[str, str]:
        """Instance name mapped to public IP."""
        return {i.name: i.public_ip for i in self.instances}


__all__ = ["Event", "EventType"]
