"""Stratus - provision and tear down compute instances across hosting backends.

Example:

    from stratus import EventBus, InstanceConfig, InstanceService, create_provider

    provider = create_provider("digitalocean")
    async with EventBus() as bus:
        service = InstanceService(provider, bus)
        instances = await service.create(
            "job-1",
            "web",
            InstanceConfig(region="nyc1", size="s-1vcpu-1gb",
                           image="ubuntu-22-04-x64", ssh_key="deploy"),
        )
"""

from loguru import logger

# Library behavior: silent until stratus.logging.setup_logging is called.
logger.disable("stratus")

from stratus.bus import EventBus
from stratus.cache import TTLCache
from stratus.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    PartialBatchFailure,
    ProviderError,
    ProvisioningError,
    RateLimitError,
    StratusError,
    TimeoutError,
    TransientNetworkError,
    ValidationError,
)
from stratus.events import Event, EventType
from stratus.lifecycle import InstanceState, InstanceTracker
from stratus.logging import LogConfig, setup_logging, teardown_logging
from stratus.providers import (
    DigitalOcean,
    DigitalOceanProvider,
    Provider,
    Ximera,
    XimeraProvider,
    create_provider,
)
from stratus.provisioning import InstanceService, ProvisioningSubscriber
from stratus.retry import RetryPolicy
from stratus.types import InstanceConfig, InstanceInfo, VolumeConfig, VolumeDetails
from stratus.wait import wait_for_ready, wait_until

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DigitalOcean",
    "DigitalOceanProvider",
    "Event",
    "EventBus",
    "EventType",
    "InstanceConfig",
    "InstanceInfo",
    "InstanceService",
    "InstanceState",
    "InstanceTracker",
    "InvalidTransitionError",
    "LogConfig",
    "NotFoundError",
    "PartialBatchFailure",
    "Provider",
    "ProviderError",
    "ProvisioningError",
    "ProvisioningSubscriber",
    "RateLimitError",
    "RetryPolicy",
    "StratusError",
    "TTLCache",
    "TimeoutError",
    "TransientNetworkError",
    "ValidationError",
    "VolumeConfig",
    "VolumeDetails",
    "Ximera",
    "XimeraProvider",
    "create_provider",
    "setup_logging",
    "teardown_logging",
    "wait_for_ready",
    "wait_until",
]
