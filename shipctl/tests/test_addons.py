import base64
import json

import pytest
import yaml

from shipctl.errors import ConfigurationError
from shipctl.models import HookType
from shipctl.modules.addons import coredns, ensure_addons, flannel
from shipctl.modules.addons.bootstrap import build as bootstrap_objects
from shipctl.modules.reconcile import Action


def _find(objects, kind, name):
    for obj in objects:
        if obj["kind"] == kind and obj["metadata"]["name"] == name:
            return obj
    raise AssertionError(f"{kind} {name} not built")


def test_bootstrap_token_secret(issued_record, provider_config):
    token_id, secret = issued_record.credential.bootstrap_token.split(".")
    objects = bootstrap_objects(provider_config, issued_record)
    token = _find(objects, "Secret", f"bootstrap-token-{token_id}")
    assert token["type"] == "bootstrap.kubernetes.io/token"
    assert base64.b64decode(token["data"]["token-secret"]).decode() == secret


def test_cluster_info_is_public(issued_record, provider_config):
    objects = bootstrap_objects(provider_config, issued_record)
    info = _find(objects, "ConfigMap", "cluster-info")
    assert info["metadata"]["namespace"] == "kube-public"
    kubeconfig = yaml.safe_load(info["data"]["kubeconfig"])
    assert kubeconfig["clusters"][0]["cluster"]["server"].startswith("https://10.0.0.1")


def test_bootstrap_requires_token(completed_record, provider_config):
    completed_record.credential.bootstrap_token = None
    with pytest.raises(ConfigurationError):
        bootstrap_objects(provider_config, completed_record)


def test_coredns_service_uses_dns_ip(completed_record, provider_config):
    service = _find(coredns.build(provider_config, completed_record), "Service", "kube-dns")
    assert service["spec"]["clusterIP"] == "10.0.240.10"


def test_flannel_network_matches_cluster(completed_record, provider_config):
    cfg = _find(flannel.build(provider_config, completed_record), "ConfigMap", "kube-flannel-cfg")
    net = json.loads(cfg["data"]["net-conf.json"])
    assert net["Network"] == "10.0.0.0/16"
    assert net["SubnetLen"] == 26


def test_flannel_skipped_with_cni_hook(completed_record, provider_config):
    completed_record.spec.features.hooks[HookType.CNI_INSTALL] = "dke-cni"
    assert flannel.build(provider_config, completed_record) == []


def test_ensure_addons(issued_record, provider_config, fake_store):
    results = ensure_addons(fake_store, provider_config, issued_record)
    assert list(results) == ["bootstrap", "kube-proxy", "coredns", "flannel", "metrics-server"]
    assert fake_store.get("APIService", None, "v1beta1.metrics.k8s.io") is not None
    again = ensure_addons(fake_store, provider_config, issued_record)
    assert all(action == Action.UNCHANGED for actions in again.values() for action in actions)
