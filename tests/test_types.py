from __future__ import annotations

import dataclasses

import pytest

from stratus.core.exceptions import ValidationError
from stratus.types import (
    InstanceConfig,
    VolumeConfig,
    require,
    validate_common,
    validate_hostname,
    validate_volume,
)

pytestmark = [pytest.mark.unit]


class TestInstanceNames:
    def test_names_are_prefix_and_index(self):
        config = InstanceConfig(number_of_instances=3)
        assert config.instance_names("web") == ["web-0", "web-1", "web-2"]

    def test_custom_name_overrides_prefix(self):
        config = InstanceConfig(number_of_instances=2, custom_name="validator")
        assert config.instance_names("web") == ["validator-0", "validator-1"]

    def test_total_disk_sums_volumes(self):
        config = InstanceConfig(volumes=(VolumeConfig("a", 20), VolumeConfig("b", 30)))
        assert config.total_disk_gb == 50

    def test_config_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            InstanceConfig().region = "nyc1"  # type: ignore[misc]


class TestHostnameValidation:
    @pytest.mark.parametrize("name", ["web-0", "a", "node1", "x" * 63])
    def test_valid(self, name: str):
        validate_hostname(name)

    @pytest.mark.parametrize(
        "name", ["", "-web", "web-", "web_0", "web.0", "x" * 64, "web 0"]
    )
    def test_invalid(self, name: str):
        with pytest.raises(ValidationError):
            validate_hostname(name)

    def test_validate_common_checks_every_generated_name(self):
        config = InstanceConfig(number_of_instances=2, custom_name="bad_name")
        with pytest.raises(ValidationError, match="bad_name-0"):
            validate_common("web", config)

    def test_validate_common_requires_positive_count(self):
        with pytest.raises(ValidationError, match="number_of_instances"):
            validate_common("web", InstanceConfig(number_of_instances=0))


class TestVolumeValidation:
    def test_same_or_empty_region_is_accepted(self):
        validate_volume(VolumeConfig("data", 10, region="nyc1"), "nyc1")
        validate_volume(VolumeConfig("data", 10), "nyc1")

    def test_region_mismatch_is_rejected(self):
        with pytest.raises(ValidationError, match="does not match"):
            validate_volume(VolumeConfig("data", 10, region="sfo3"), "nyc1")

    def test_size_must_be_positive(self):
        with pytest.raises(ValidationError, match="size_gb"):
            validate_volume(VolumeConfig("data", 0), "nyc1")


def test_require_names_missing_field():
    with pytest.raises(ValidationError, match="image is required"):
        require(InstanceConfig(region="nyc1", size="s"), "region", "size", "image")
