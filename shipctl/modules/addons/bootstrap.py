"""Objects a node needs to join with a bootstrap token.

Mirrors what ``kubeadm init`` would upload: the bootstrap token Secret,
the public ``cluster-info`` discovery ConfigMap, the kubeadm and kubelet
configuration ConfigMaps, and the RBAC that lets bootstrapping nodes read
them and get their client certificates approved.
"""
import base64

import yaml

from shipctl.errors import ConfigurationError
from shipctl.modules import manifests as m
from shipctl.modules.endpoint import get_stable_endpoint
from shipctl.modules.manifests import KUBE_PUBLIC, KUBE_SYSTEM

BOOTSTRAP_GROUP = "system:bootstrappers:kubeadm:default-node-token"
NODES_GROUP = "system:nodes"
KUBEADM_CONFIG = "kubeadm-config"
KUBELET_CONFIG = "kubelet-config"


def _group(name: str) -> dict:
    return {"kind": "Group", "apiGroup": "rbac.authorization.k8s.io", "name": name}


def _read_config_map(name: str) -> dict:
    return {"apiGroups": [""], "resources": ["configmaps"], "resourceNames": [name], "verbs": ["get"]}


def token_secret(bootstrap_token: str) -> dict:
    token_id, token_secret_value = bootstrap_token.split(".", 1)
    return m.secret(
        f"bootstrap-token-{token_id}",
        KUBE_SYSTEM,
        {
            "token-id": token_id,
            "token-secret": token_secret_value,
            "usage-bootstrap-authentication": "true",
            "usage-bootstrap-signing": "true",
            "auth-extra-groups": BOOTSTRAP_GROUP,
            "description": "Bootstrap token for joining machines",
        },
        secret_type="bootstrap.kubernetes.io/token",
    )


def cluster_info(record) -> dict:
    """Discovery kubeconfig with only the cluster entry; anonymous users may read it."""
    ca_data = base64.b64encode(record.credential.ca_cert.encode()).decode()
    info = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "", "cluster": {"server": get_stable_endpoint(record),
                                              "certificate-authority-data": ca_data}}],
        "contexts": [],
        "users": [],
        "current-context": "",
        "preferences": {},
    }
    return m.config_map("cluster-info", KUBE_PUBLIC, {"kubeconfig": yaml.safe_dump(info, sort_keys=False)})


def kubeadm_config(config, record) -> dict:
    cluster_configuration = {
        "apiVersion": "kubeadm.k8s.io/v1beta3",
        "kind": "ClusterConfiguration",
        "clusterName": record.name,
        "kubernetesVersion": f"v{record.status.version.lstrip('v')}",
        "controlPlaneEndpoint": get_stable_endpoint(record).replace("https://", ""),
        "imageRepository": config.registry.prefix,
        "networking": {
            "dnsDomain": config.cluster_domain,
            "podSubnet": record.spec.cluster_cidr,
            "serviceSubnet": record.status.service_cidr,
        },
    }
    return m.config_map(KUBEADM_CONFIG, KUBE_SYSTEM,
                        {"ClusterConfiguration": yaml.safe_dump(cluster_configuration, sort_keys=False)})


def kubelet_config(config, record) -> dict:
    kubelet = {
        "apiVersion": "kubelet.config.k8s.io/v1beta1",
        "kind": "KubeletConfiguration",
        "cgroupDriver": "systemd",
        "clusterDNS": [record.status.dns_ip],
        "clusterDomain": config.cluster_domain,
        "maxPods": record.spec.properties.max_node_pod_num,
        "rotateCertificates": True,
        "authentication": {
            "anonymous": {"enabled": False},
            "webhook": {"enabled": True},
            "x509": {"clientCAFile": "/etc/kubernetes/pki/ca.crt"},
        },
        "authorization": {"mode": "Webhook"},
    }
    return m.config_map(KUBELET_CONFIG, KUBE_SYSTEM, {"kubelet": yaml.safe_dump(kubelet, sort_keys=False)})


def build(config, record) -> list:
    credential = record.credential
    if not credential.bootstrap_token or not credential.ca_cert:
        raise ConfigurationError(f"cluster {record.name} has no bootstrap token or CA")
    return [
        token_secret(credential.bootstrap_token),
        cluster_info(record),
        m.role("kubeadm:bootstrap-signer-clusterinfo", KUBE_PUBLIC,
               [_read_config_map("cluster-info")]),
        m.role_binding("kubeadm:bootstrap-signer-clusterinfo", KUBE_PUBLIC, "Role",
                       "kubeadm:bootstrap-signer-clusterinfo",
                       [{"kind": "User", "apiGroup": "rbac.authorization.k8s.io", "name": "system:anonymous"}]),
        kubeadm_config(config, record),
        kubelet_config(config, record),
        m.role("kubeadm:nodes-kubeadm-config", KUBE_SYSTEM,
               [_read_config_map(KUBEADM_CONFIG)]),
        m.role_binding("kubeadm:nodes-kubeadm-config", KUBE_SYSTEM, "Role", "kubeadm:nodes-kubeadm-config",
                       [_group(BOOTSTRAP_GROUP), _group(NODES_GROUP)]),
        m.role("kubeadm:kubelet-config", KUBE_SYSTEM,
               [_read_config_map(KUBELET_CONFIG)]),
        m.role_binding("kubeadm:kubelet-config", KUBE_SYSTEM, "Role", "kubeadm:kubelet-config",
                       [_group(BOOTSTRAP_GROUP), _group(NODES_GROUP)]),
        m.role_binding("kubeadm:kubelet-bootstrap", None, "ClusterRole", "system:node-bootstrapper",
                       [_group(BOOTSTRAP_GROUP)]),
        m.role_binding("kubeadm:node-autoapprove-bootstrap", None, "ClusterRole",
                       "system:certificates.k8s.io:certificatesigningrequests:nodeclient",
                       [_group(BOOTSTRAP_GROUP)]),
        m.role_binding("kubeadm:node-autoapprove-certificate-rotation", None, "ClusterRole",
                       "system:certificates.k8s.io:certificatesigningrequests:selfnodeclient",
                       [_group(NODES_GROUP)]),
    ]
