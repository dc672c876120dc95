import pytest

from shipctl.errors import ConfigurationError
from shipctl.modules.config import ProviderConfig


def test_defaults():
    config = ProviderConfig()
    assert not config.need_set_hosts()
    assert config.image("kube-apiserver", "1.28.6") == "registry.k8s.io/kube-apiserver:v1.28.6"
    assert config.image("kube-apiserver", "v1.28.6") == "registry.k8s.io/kube-apiserver:v1.28.6"


def test_load_and_save_round_trip(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("registry:\n  domain: hub.example.com\n  ip: 10.0.0.200\nnode_ready:\n  timeout: 60\n")
    config = ProviderConfig.load(path)
    assert config.need_set_hosts()
    assert config.node_ready.timeout == 60
    config.save(tmp_path / "saved.yaml")
    assert ProviderConfig.load(tmp_path / "saved.yaml") == config


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        ProviderConfig.load(tmp_path / "absent.yaml")


def test_invalid_values(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("node_ready:\n  poll_interval: 0\n")
    with pytest.raises(ConfigurationError, match="Invalid provider configuration"):
        ProviderConfig.load(path)


def test_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="mapping"):
        ProviderConfig.load(path)
