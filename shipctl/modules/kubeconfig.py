"""Kubeconfig rendering for control plane components, operators and nodes."""
import base64
import logging
from typing import Optional

import yaml

from shipctl.errors import ConfigurationError
from shipctl.models import ClusterRecord
from shipctl.modules.certs import issue_cert
from shipctl.modules.endpoint import build_apiserver_endpoint, get_bind_port, get_stable_endpoint
from shipctl.modules.kube import ADMIN_KUBECONFIG, EXTERNAL_ADMIN_KUBECONFIG

logger = logging.getLogger("shipctl.kubeconfig")

CONTROLLER_MANAGER_KUBECONFIG = "controller-manager.conf"
SCHEDULER_KUBECONFIG = "scheduler.conf"
NODE_KUBECONFIG_PATH = "/root/.kube/config"

COMPONENT_USERS = {
    ADMIN_KUBECONFIG: ("kubernetes-admin", ["system:masters"]),
    CONTROLLER_MANAGER_KUBECONFIG: ("system:kube-controller-manager", []),
    SCHEDULER_KUBECONFIG: ("system:kube-scheduler", []),
}


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def build_kubeconfig(cluster_name: str, server: str, ca_cert: str, user: str,
                     client_cert: Optional[str] = None, client_key: Optional[str] = None,
                     token: Optional[str] = None) -> str:
    """Render a single-context kubeconfig as YAML."""
    credentials = {}
    if client_cert and client_key:
        credentials["client-certificate-data"] = _b64(client_cert)
        credentials["client-key-data"] = _b64(client_key)
    if token:
        credentials["token"] = token
    if not credentials:
        raise ConfigurationError("kubeconfig needs a client certificate or a token")

    context = f"{user}@{cluster_name}"
    data = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {"server": server, "certificate-authority-data": _b64(ca_cert)},
        }],
        "users": [{"name": user, "user": credentials}],
        "contexts": [{"name": context, "context": {"cluster": cluster_name, "user": user}}],
        "current-context": context,
        "preferences": {},
    }
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def kubeconfig_matches(raw: Optional[str], server: str, ca_cert: str) -> bool:
    """Whether an existing kubeconfig targets ``server`` and trusts ``ca_cert``."""
    if not raw:
        return False
    try:
        data = yaml.safe_load(raw)
        cluster = data["clusters"][0]["cluster"]
    except (yaml.YAMLError, KeyError, IndexError, TypeError):
        return False
    return cluster.get("server") == server and cluster.get("certificate-authority-data") == _b64(ca_cert)


def internal_server(record: ClusterRecord) -> str:
    return build_apiserver_endpoint("kube-apiserver", get_bind_port(record))


def _client_kubeconfig(record: ClusterRecord, name: str, server: str) -> str:
    credential = record.credential
    user, groups = COMPONENT_USERS[name]
    cert, key = issue_cert(credential.ca_cert, credential.ca_key, common_name=user, organizations=groups)
    return build_kubeconfig(record.name, server, credential.ca_cert, user, client_cert=cert, client_key=key)


def ensure_kubeconfigs(record: ClusterRecord, force: bool = False) -> list:
    """Render component kubeconfigs that are missing or point elsewhere.

    Returns:
        Names of the kubeconfigs that were (re)written

    Raises:
        ConfigurationError: If the cluster CA has not been issued yet
    """
    credential = record.credential
    if not credential.ca_cert or not credential.ca_key:
        raise ConfigurationError(f"cluster {record.name} has no CA; issue certificates first")
    server = internal_server(record)
    written = []
    for name in COMPONENT_USERS:
        if not force and kubeconfig_matches(credential.kubeconfigs.get(name), server, credential.ca_cert):
            continue
        credential.kubeconfigs[name] = _client_kubeconfig(record, name, server)
        written.append(name)
    if written:
        logger.info(f"📝 Wrote kubeconfigs for {record.name}: {', '.join(written)}")
    return written


def ensure_external_kubeconfig(record: ClusterRecord, force: bool = False) -> bool:
    """Export an admin kubeconfig against the third-party load balancer.

    No-op without third-party HA.

    Returns:
        True if the kubeconfig was (re)written

    Raises:
        ConfigurationError: If the CA is missing
    """
    third_party = record.third_party_ha
    if not third_party or not third_party.vip:
        return False
    credential = record.credential
    if not credential.ca_cert or not credential.ca_key:
        raise ConfigurationError(f"cluster {record.name} has no CA for the external kubeconfig")
    server = build_apiserver_endpoint(third_party.vip, third_party.vport)
    if not force and kubeconfig_matches(credential.ext_data.get(EXTERNAL_ADMIN_KUBECONFIG), server, credential.ca_cert):
        return False
    credential.ext_data[EXTERNAL_ADMIN_KUBECONFIG] = _client_kubeconfig(record, ADMIN_KUBECONFIG, server)
    logger.info(f"📝 Exported external admin kubeconfig for {record.name} at {server}")
    return True


def node_kubeconfig(record: ClusterRecord) -> str:
    """Kubeconfig for kubectl on a node, authenticated with the cluster token."""
    credential = record.credential
    if not credential.ca_cert or not credential.token:
        raise ConfigurationError(f"cluster {record.name} has no CA or token yet")
    return build_kubeconfig(record.name, get_stable_endpoint(record), credential.ca_cert,
                            "admin", token=credential.token)


def install_node_kubeconfig(ssh, record: ClusterRecord) -> None:
    ssh.write_file(node_kubeconfig(record), NODE_KUBECONFIG_PATH, mode=0o600)
