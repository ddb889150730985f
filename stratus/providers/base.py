from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from stratus.types import InstanceConfig, InstanceInfo


@runtime_checkable
class Provider(Protocol):
    """Uniform lifecycle contract over one hosting backend.

    Implementations hold their immutable config plus a per-provider list
    cache. Retry, polling and caching helpers are composed in rather than
    inherited, so two backends with different creation styles (synchronous
    create then poll for an IP, or create then build then poll for a state)
    expose the same four calls.
    """

    @property
    def name(self) -> str:
        """Provider name ("digitalocean", "ximera")."""
        ...

    async def create_instance(self, name: str, config: InstanceConfig) -> Sequence[InstanceInfo]:
        """Create ``config.number_of_instances`` instances and wait until each is Ready.

        Parameters
        ----------
        name
            Name prefix. Instance ``i`` is called ``<name>-<i>`` unless
            ``config.custom_name`` overrides the prefix.
        config
            Desired state. Validated before any network call.

        Returns
        -------
        Sequence[InstanceInfo]
            One entry per instance that reached Ready. Instances that never
            did are dropped with a logged warning; when none did,
            PartialBatchFailure is raised.
        """
        ...

    async def delete_instance(self, name: str, region: str) -> None:
        """Delete the instance matching ``(name, region)`` and wait until it is gone.

        Raises
        ------
        NotFoundError
            No instance matches.
        TimeoutError
            The instance was still listed after the absence poll budget.
        """
        ...

    async def validate_credentials(self) -> None:
        """Cheap read-only call that raises AuthenticationError on bad credentials."""
        ...

    def get_environment_vars(self) -> dict[str, str]:
        """Environment variables this provider was configured from."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


__all__ = ["Provider"]
