from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import yaml
from kubernetes.client.rest import ApiException

from shipctl.errors import ConfigurationError, NotReadyError
from shipctl.models import HAConfig, ThirdPartyHA
from shipctl.modules.kube import (
    ADMIN_KUBECONFIG,
    EXTERNAL_ADMIN_KUBECONFIG,
    ClusterManager,
    count_nodes,
    node_is_ready,
)
from shipctl.modules.kubeconfig import ensure_external_kubeconfig, ensure_kubeconfigs
from shipctl.tests.conftest import ready_node


@pytest.fixture
def configured_record(issued_record):
    ensure_kubeconfigs(issued_record)
    return issued_record


def test_no_kubeconfig_is_not_ready(issued_record):
    with pytest.raises(NotReadyError):
        ClusterManager(client_factory=MagicMock(), probe=MagicMock()).get(issued_record)


def test_malformed_kubeconfig_is_configuration_error(issued_record):
    issued_record.credential.kubeconfigs[ADMIN_KUBECONFIG] = "{broken"
    with pytest.raises(ConfigurationError):
        ClusterManager(client_factory=MagicMock(), probe=MagicMock()).get(issued_record)


def test_kubeconfig_without_clusters(issued_record):
    issued_record.credential.kubeconfigs[ADMIN_KUBECONFIG] = "apiVersion: v1\nkind: Config\n"
    with pytest.raises(ConfigurationError, match="no clusters"):
        ClusterManager(client_factory=MagicMock(), probe=MagicMock()).get(issued_record)


def test_admin_kubeconfig_server_points_at_master(configured_record):
    factory = MagicMock()
    ClusterManager(client_factory=factory, probe=MagicMock()).get(configured_record)
    data = factory.call_args[0][0]
    assert data["clusters"][0]["cluster"]["server"] in {
        "https://10.0.0.11:6443", "https://10.0.0.12:6443", "https://10.0.0.13:6443"}


def test_external_kubeconfig_preferred(configured_record):
    configured_record.spec.features.ha = HAConfig(third_party_ha=ThirdPartyHA(vip="192.168.1.10"))
    ensure_external_kubeconfig(configured_record)
    factory = MagicMock()
    ClusterManager(client_factory=factory, probe=MagicMock()).get(configured_record)
    assert factory.call_args[0][0]["clusters"][0]["cluster"]["server"] == "https://192.168.1.10:6443"
    assert EXTERNAL_ADMIN_KUBECONFIG in configured_record.credential.ext_data


def test_unreachable_api_is_not_ready(configured_record):
    probe = MagicMock(side_effect=ConnectionRefusedError("refused"))
    with pytest.raises(NotReadyError, match="not reachable"):
        ClusterManager(client_factory=MagicMock(), probe=probe).get(configured_record)


def test_clients_are_cached(configured_record):
    factory = MagicMock()
    manager = ClusterManager(client_factory=factory, probe=MagicMock())
    first = manager.get(configured_record)
    assert manager.get(configured_record) is first
    assert factory.call_count == 1
    manager.forget("demo")
    manager.get(configured_record)
    assert factory.call_count == 2


def test_node_is_ready():
    core_v1 = MagicMock()
    core_v1.read_node.return_value = ready_node()
    assert node_is_ready(core_v1, "10.0.0.11")
    core_v1.read_node.return_value = ready_node(ready=False)
    assert not node_is_ready(core_v1, "10.0.0.11")
    core_v1.read_node.side_effect = ApiException(status=404)
    assert not node_is_ready(core_v1, "10.0.0.11")


def test_count_nodes():
    core_v1 = MagicMock()
    core_v1.list_node.return_value = SimpleNamespace(items=[
        ready_node(labels={"node-role.kubernetes.io/control-plane": ""}),
        ready_node(labels={"node-role.kubernetes.io/master": ""}),
        ready_node(),
    ])
    assert count_nodes(core_v1) == {"masters": 2, "workers": 1, "total": 3}


def test_kubeconfig_yaml_is_loadable(configured_record):
    data = yaml.safe_load(configured_record.credential.kubeconfigs[ADMIN_KUBECONFIG])
    assert data["kind"] == "Config"
