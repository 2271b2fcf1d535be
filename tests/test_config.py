from pathlib import Path

import pytest

from imcdatasets.config import (
    DEFAULT_BASE_URL,
    DEFAULT_CACHE_ROOT,
    DEFAULT_TIMEOUT_S,
    ENV_BASE_URL,
    ENV_CACHE_DIR,
    ENV_TIMEOUT,
    ENV_VERIFY_CHECKSUM,
    HubConfig,
)
from imcdatasets.errors import ConfigurationError


def test_defaults_from_empty_environment():
    config = HubConfig.from_env({})
    assert config.cache_root == DEFAULT_CACHE_ROOT
    assert config.base_url == DEFAULT_BASE_URL
    assert config.timeout == DEFAULT_TIMEOUT_S
    assert config.verify_checksum is True


def test_environment_overrides(tmp_path):
    config = HubConfig.from_env(
        {
            ENV_CACHE_DIR: str(tmp_path),
            ENV_BASE_URL: "https://mirror.example.org/hub/",
            ENV_TIMEOUT: "30",
            ENV_VERIFY_CHECKSUM: "no",
        }
    )
    assert config.cache_root == tmp_path
    assert config.base_url == "https://mirror.example.org/hub"
    assert config.timeout == 30.0
    assert config.verify_checksum is False


@pytest.mark.parametrize("raw", ["none", "off", "0", " None "])
def test_timeout_can_be_disabled(raw):
    assert HubConfig.from_env({ENV_TIMEOUT: raw}).timeout is None


@pytest.mark.parametrize(
    "env",
    [
        {ENV_TIMEOUT: "soon"},
        {ENV_TIMEOUT: "-5"},
        {ENV_VERIFY_CHECKSUM: "maybe"},
    ],
)
def test_invalid_environment_values(env):
    with pytest.raises(ConfigurationError):
        HubConfig.from_env(env)


def test_with_overrides_normalizes():
    config = HubConfig().with_overrides(cache_root="~/imc", base_url="http://x/")
    assert config.cache_root == Path("~/imc").expanduser()
    assert config.base_url == "http://x"


def test_empty_base_url_rejected():
    with pytest.raises(ConfigurationError):
        HubConfig(base_url="  ")
