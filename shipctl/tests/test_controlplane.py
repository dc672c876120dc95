import base64

import pytest

from shipctl.errors import ConfigurationError
from shipctl.modules.controlplane import (
    PKI_SECRET,
    TOKEN_FILE_NAME,
    control_plane_objects,
    ensure_control_plane,
)
from shipctl.modules.kubeconfig import ensure_kubeconfigs
from shipctl.modules.reconcile import Action


def _args(deployment):
    return deployment["spec"]["template"]["spec"]["containers"][0]["args"]


def test_objects_in_apply_order(issued_record, provider_config):
    ensure_kubeconfigs(issued_record)
    objects = control_plane_objects(provider_config, issued_record)
    assert [(o["kind"], o["metadata"]["name"]) for o in objects] == [
        ("Secret", "kube-pki"),
        ("Secret", "kube-kubeconfigs"),
        ("ConfigMap", "kube-audit"),
        ("Deployment", "kube-apiserver"),
        ("Service", "kube-apiserver"),
        ("Deployment", "kube-controller-manager"),
        ("Deployment", "kube-scheduler"),
    ]
    assert all(o["metadata"]["namespace"] == "demo-ns" for o in objects)


def test_token_file_grants_cluster_token(issued_record, provider_config):
    pki = control_plane_objects(provider_config, issued_record)[0]
    assert pki["metadata"]["name"] == PKI_SECRET
    token_file = base64.b64decode(pki["data"][TOKEN_FILE_NAME]).decode()
    assert token_file == f"{issued_record.credential.token},admin,admin,system:masters\n"


def test_apiserver_flags(issued_record, provider_config):
    apiserver = control_plane_objects(provider_config, issued_record)[3]
    args = _args(apiserver)
    assert "--service-cluster-ip-range=10.0.240.0/20" in args
    assert "--secure-port=6443" in args
    assert "--etcd-prefix=/registry/demo-ns/demo" in args
    image = apiserver["spec"]["template"]["spec"]["containers"][0]["image"]
    assert image == "registry.k8s.io/kube-apiserver:v1.28.6"


def test_controller_manager_allocates_node_cidrs(issued_record, provider_config):
    args = _args(control_plane_objects(provider_config, issued_record)[5])
    assert "--cluster-cidr=10.0.0.0/16" in args
    assert "--node-cidr-mask-size=26" in args


def test_node_port_service(issued_record, provider_config):
    provider_config.control_plane.apiserver_node_port = 30443
    service = control_plane_objects(provider_config, issued_record)[4]
    assert service["spec"]["type"] == "NodePort"
    assert service["spec"]["ports"][0]["nodePort"] == 30443


def test_requires_certificates(completed_record, provider_config):
    with pytest.raises(ConfigurationError):
        control_plane_objects(provider_config, completed_record)


def test_ensure_control_plane_is_idempotent(issued_record, provider_config, fake_store):
    ensure_kubeconfigs(issued_record)
    first = ensure_control_plane(fake_store, provider_config, issued_record)
    assert set(first) == {Action.CREATED}
    second = ensure_control_plane(fake_store, provider_config, issued_record)
    assert set(second) == {Action.UNCHANGED}
