"""Instance request and result types.

InstanceConfig is the caller's desired state; InstanceInfo is the
provider-confirmed fact, built only after an instance is Ready. Both are
frozen and use tuples for collections so values handed across the event
bus cannot be mutated by a subscriber.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from stratus.core.exceptions import ValidationError

MAX_HOSTNAME_LENGTH = 63
_HOSTNAME_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


# =============================================================================
# Volumes
# =============================================================================


@dataclass(frozen=True, slots=True)
class VolumeConfig:
    """Attached-storage intent.

    Args:
        name: Volume name (used by the mount script to find the device).
        size_gb: Size in gigabytes.
        mount_point: Where the volume is mounted on the instance.
        region: Volume region. Empty means "same as the instance".
        filesystem: Filesystem to format with (e.g. "ext4"). Optional.
    """

    name: str
    size_gb: int
    mount_point: str = ""
    region: str = ""
    filesystem: str = ""


@dataclass(frozen=True, slots=True)
class VolumeDetails:
    """Attached-storage fact, reported after the volume is attached."""

    id: str
    name: str
    region: str
    size_gb: int
    mount_point: str


# =============================================================================
# Instances
# =============================================================================


@dataclass(frozen=True, slots=True)
class InstanceConfig:
    """Desired state for creating one or more instances.

    ``size`` names a provider size slug. Backends that size by resources
    instead (Ximera) read ``memory_mb`` and ``cpu`` and ignore ``size``.
    """

    region: str = ""
    size: str = ""
    image: str = ""
    ssh_key: str = ""
    number_of_instances: int = 1
    tags: tuple[str, ...] = ()
    volumes: tuple[VolumeConfig, ...] = ()
    memory_mb: int = 0
    cpu: int = 0
    custom_name: str = ""
    owner_id: int = 0
    provision: bool = True

    def instance_names(self, name: str) -> list[str]:
        """Names for every requested instance: ``<prefix>-<index>``."""
        prefix = self.custom_name or name
        return [f"{prefix}-{i}" for i in range(self.number_of_instances)]

    @property
    def total_disk_gb(self) -> int:
        """Volumes folded into a single disk size, for backends without volume resources."""
        return sum(v.size_gb for v in self.volumes)


@dataclass(frozen=True, slots=True)
class InstanceInfo:
    """Provider-assigned identity and network facts of a Ready instance."""

    id: str
    name: str
    public_ip: str
    provider: str
    region: str = ""
    size: str = ""
    volumes: tuple[str, ...] = ()
    volume_details: tuple[VolumeDetails, ...] = field(default=())


# =============================================================================
# Validation
# =============================================================================


def validate_hostname(hostname: str) -> None:
    """Reject names that are not valid RFC 1123 host labels."""
    if not hostname:
        raise ValidationError("hostname cannot be empty")
    if len(hostname) > MAX_HOSTNAME_LENGTH:
        raise ValidationError(
            f"hostname length must be less than or equal to {MAX_HOSTNAME_LENGTH} characters"
        )
    if not _HOSTNAME_RE.match(hostname.lower()):
        raise ValidationError(
            f"invalid hostname {hostname!r}: must contain only lowercase letters, "
            "numbers, and hyphens, and cannot start or end with a hyphen"
        )


def validate_volume(volume: VolumeConfig, instance_region: str) -> None:
    """Volume region must be empty or equal to the owning instance's region."""
    if volume.size_gb <= 0:
        raise ValidationError(f"volume {volume.name!r}: size_gb must be greater than 0")
    if volume.region and volume.region != instance_region:
        raise ValidationError(
            f"volume region {volume.region} does not match instance region {instance_region}"
        )


def require(config: InstanceConfig, *fields: str) -> None:
    """Fail fast when any of the named InstanceConfig fields is empty."""
    for name in fields:
        if not getattr(config, name):
            raise ValidationError(f"{name} is required")


def validate_common(name: str, config: InstanceConfig) -> None:
    """Checks every backend shares: instance count and resulting hostnames."""
    if config.number_of_instances < 1:
        raise ValidationError("number_of_instances must be greater than 0")
    for hostname in config.instance_names(name):
        validate_hostname(hostname)


__all__ = [
    "InstanceConfig",
    "InstanceInfo",
    "VolumeConfig",
    "VolumeDetails",
    "require",
    "validate_common",
    "validate_hostname",
    "validate_volume",
]
