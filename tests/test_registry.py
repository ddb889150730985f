from __future__ import annotations

import pytest

from stratus.core.exceptions import ConfigurationError
from stratus.providers import Provider
from stratus.providers.digitalocean import DigitalOcean, DigitalOceanProvider
from stratus.providers.registry import canonical_name, create_provider, provider_names
from stratus.providers.ximera import Ximera, XimeraProvider

pytestmark = [pytest.mark.unit]


@pytest.fixture(autouse=True)
def credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIGITALOCEAN_TOKEN", "do-token")
    monkeypatch.setenv("XIMERA_API_URL", "https://cp.example.com/api/v1")
    monkeypatch.setenv("XIMERA_API_TOKEN", "x-token")


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["do", "digitalocean", "DigitalOcean"])
async def test_digitalocean_aliases(name: str):
    provider = create_provider(name)
    assert isinstance(provider, DigitalOceanProvider)
    assert isinstance(provider, Provider)
    assert provider.name == "digitalocean"
    await provider.close()


@pytest.mark.asyncio
async def test_ximera_by_name():
    provider = create_provider("ximera")
    assert isinstance(provider, XimeraProvider)
    assert provider.get_environment_vars()["XIMERA_API_URL"] == "https://cp.example.com/api/v1"
    await provider.close()


@pytest.mark.asyncio
async def test_config_objects_are_accepted():
    do = create_provider(DigitalOcean(token="explicit"))
    xi = create_provider(Ximera(api_url="http://x", api_token="t"))
    assert do.get_environment_vars() == {"DIGITALOCEAN_TOKEN": "explicit"}
    assert isinstance(xi, XimeraProvider)
    await do.close()
    await xi.close()


def test_unknown_name_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Available providers"):
        create_provider("aws")


def test_missing_credentials_fail_at_construction(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DIGITALOCEAN_TOKEN")
    with pytest.raises(ConfigurationError):
        create_provider("do")


def test_unsupported_config_object():
    with pytest.raises(ConfigurationError, match="No provider registered"):
        create_provider(object())  # type: ignore[arg-type]


def test_names():
    assert provider_names() == ["digitalocean", "do", "ximera"]
    assert canonical_name(" DO ") == "digitalocean"


@pytest.mark.asyncio
async def test_each_call_returns_a_fresh_provider():
    first = create_provider("do")
    second = create_provider("do")
    assert first is not second
    await first.close()
    await second.close()
