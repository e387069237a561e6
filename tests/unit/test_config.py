"""Unit tests for environment-based controller configuration."""

import pytest

from taint_preserver.config import ControllerConfig
from taint_preserver.exceptions import ConfigurationError


def test_defaults_from_empty_environment():
    config = ControllerConfig.from_env({})

    assert config.namespace == "default"
    assert config.extra_protected_prefixes == ()
    assert config.reporting_instance == "unknown"
    assert config.metrics_port == 8080
    assert config.resync_seconds == 300
    assert config.workers == 4


def test_values_from_environment():
    config = ControllerConfig.from_env(
        {
            "CONFIGMAP_NAMESPACE": "taint-preserver",
            "EXTRA_PROTECTED_TAINT_PREFIXES": " karpenter.sh/ ,,example.com/system-",
            "HOSTNAME": "taint-preserver-7d9f",
            "METRICS_PORT": "0",
            "RESYNC_SECONDS": "60",
            "WORKERS": "8",
        }
    )

    assert config.namespace == "taint-preserver"
    assert config.extra_protected_prefixes == ("karpenter.sh/", "example.com/system-")
    assert config.reporting_instance == "taint-preserver-7d9f"
    assert config.metrics_port == 0
    assert config.resync_seconds == 60
    assert config.workers == 8


def test_empty_hostname_falls_back_to_placeholder():
    assert ControllerConfig.from_env({"HOSTNAME": ""}).reporting_instance == "unknown"


@pytest.mark.parametrize(
    "env",
    [
        {"METRICS_PORT": "not-a-port"},
        {"METRICS_PORT": "70000"},
        {"RESYNC_SECONDS": "0"},
        {"WORKERS": "-1"},
        {"CONFIGMAP_NAMESPACE": "   "},
    ],
)
def test_invalid_values_raise_configuration_error(env):
    with pytest.raises(ConfigurationError) as exc_info:
        ControllerConfig.from_env(env)

    assert exc_info.value.details


def test_config_is_immutable():
    config = ControllerConfig()

    with pytest.raises(Exception):
        config.namespace = "other"
