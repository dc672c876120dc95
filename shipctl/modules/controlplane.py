"""Hosted control plane objects for one cluster.

The API server, controller manager and scheduler run as Deployments in the
cluster's namespace on the management cluster. Certificates, the static
token file and component kubeconfigs are mounted from Secrets.
"""
import logging
from typing import List

from shipctl.errors import ConfigurationError
from shipctl.models import ClusterRecord
from shipctl.modules import manifests as m
from shipctl.modules import certs
from shipctl.modules.config import ProviderConfig
from shipctl.modules.endpoint import get_bind_port
from shipctl.modules.kubeconfig import CONTROLLER_MANAGER_KUBECONFIG, SCHEDULER_KUBECONFIG
from shipctl.modules.reconcile import ensure_all

logger = logging.getLogger("shipctl.controlplane")

TOKEN_FILE_NAME = "token.csv"
TOKEN_FILE_TEMPLATE = "{token},admin,admin,system:masters\n"

AUDIT_POLICY_FILE_NAME = "audit-policy.yaml"
AUDIT_POLICY = """apiVersion: audit.k8s.io/v1
kind: Policy
rules:
- level: Metadata
"""

PKI_SECRET = "kube-pki"
KUBECONFIG_SECRET = "kube-kubeconfigs"
AUDIT_CONFIG_MAP = "kube-audit"

APISERVER = "kube-apiserver"
CONTROLLER_MANAGER = "kube-controller-manager"
SCHEDULER = "kube-scheduler"

PKI_DIR = "/etc/kubernetes/pki"
KUBECONFIG_DIR = "/etc/kubernetes/kubeconfig"
AUDIT_DIR = "/etc/kubernetes/audit"


def _labels(record: ClusterRecord, component: str) -> dict:
    return {"app": component, "shipctl.io/cluster": record.name}


def _pki(path: str) -> str:
    return f"{PKI_DIR}/{path}"


def pki_secret(record: ClusterRecord) -> dict:
    credential = record.credential
    data = {"ca.crt": credential.ca_cert, "ca.key": credential.ca_key}
    data.update(credential.certs_data)
    data[TOKEN_FILE_NAME] = TOKEN_FILE_TEMPLATE.format(token=credential.token)
    return m.secret(PKI_SECRET, record.namespace, data, labels=_labels(record, "pki"))


def kubeconfig_secret(record: ClusterRecord) -> dict:
    return m.secret(KUBECONFIG_SECRET, record.namespace, record.credential.kubeconfigs,
                    labels=_labels(record, "kubeconfig"))


def audit_config_map(record: ClusterRecord) -> dict:
    return m.config_map(AUDIT_CONFIG_MAP, record.namespace, {AUDIT_POLICY_FILE_NAME: AUDIT_POLICY},
                        labels=_labels(record, "audit"))


def _probe(port: int, path: str = "/healthz") -> dict:
    return {
        "httpGet": {"path": path, "port": port, "scheme": "HTTPS"},
        "initialDelaySeconds": 15,
        "periodSeconds": 10,
        "failureThreshold": 8,
        "timeoutSeconds": 15,
    }


def apiserver_deployment(config: ProviderConfig, record: ClusterRecord) -> dict:
    port = get_bind_port(record)
    args = [
        f"--secure-port={port}",
        "--allow-privileged=true",
        "--authorization-mode=Node,RBAC",
        "--enable-admission-plugins=NodeRestriction",
        "--enable-bootstrap-token-auth=true",
        f"--client-ca-file={_pki('ca.crt')}",
        f"--tls-cert-file={_pki(certs.APISERVER_CERT)}",
        f"--tls-private-key-file={_pki(certs.APISERVER_KEY)}",
        f"--kubelet-client-certificate={_pki(certs.KUBELET_CLIENT_CERT)}",
        f"--kubelet-client-key={_pki(certs.KUBELET_CLIENT_KEY)}",
        "--kubelet-preferred-address-types=InternalIP,ExternalIP,Hostname",
        f"--proxy-client-cert-file={_pki(certs.FRONT_PROXY_CLIENT_CERT)}",
        f"--proxy-client-key-file={_pki(certs.FRONT_PROXY_CLIENT_KEY)}",
        f"--requestheader-client-ca-file={_pki(certs.FRONT_PROXY_CA_CERT)}",
        "--requestheader-allowed-names=front-proxy-client",
        "--requestheader-extra-headers-prefix=X-Remote-Extra-",
        "--requestheader-group-headers=X-Remote-Group",
        "--requestheader-username-headers=X-Remote-User",
        f"--service-account-issuer=https://kubernetes.default.svc.{config.cluster_domain}",
        f"--service-account-key-file={_pki(certs.SA_PUB)}",
        f"--service-account-signing-key-file={_pki(certs.SA_KEY)}",
        f"--service-cluster-ip-range={record.status.service_cidr}",
        f"--token-auth-file={_pki(TOKEN_FILE_NAME)}",
        f"--etcd-servers={','.join(config.etcd.servers)}",
        f"--etcd-prefix={config.etcd.prefix}/{record.namespace}/{record.name}",
        f"--audit-policy-file={AUDIT_DIR}/{AUDIT_POLICY_FILE_NAME}",
        "--audit-log-path=-",
    ]
    labels = _labels(record, APISERVER)
    template = m.pod_template(
        labels,
        [m.container(
            APISERVER,
            config.image(APISERVER, record.status.version),
            command=[APISERVER],
            args=args,
            ports=[{"name": "https", "containerPort": port}],
            mounts=[m.mount("pki", PKI_DIR, read_only=True), m.mount("audit", AUDIT_DIR, read_only=True)],
            livenessProbe=_probe(port, "/livez"),
            readinessProbe=_probe(port, "/readyz"),
        )],
        volumes=[m.secret_volume("pki", PKI_SECRET), m.config_map_volume("audit", AUDIT_CONFIG_MAP)],
    )
    return m.deployment(APISERVER, record.namespace, labels, template, config.control_plane.replicas)


def apiserver_service(config: ProviderConfig, record: ClusterRecord) -> dict:
    port = get_bind_port(record)
    service_port = {"name": "https", "port": port, "targetPort": port, "protocol": "TCP"}
    service_type = "ClusterIP"
    if config.control_plane.apiserver_node_port:
        service_type = "NodePort"
        service_port["nodePort"] = config.control_plane.apiserver_node_port
    labels = _labels(record, APISERVER)
    return m.service(APISERVER, record.namespace, labels, [service_port], labels=labels,
                     service_type=service_type)


def _component_deployment(config: ProviderConfig, record: ClusterRecord, component: str,
                          args: List[str], health_port: int) -> dict:
    labels = _labels(record, component)
    template = m.pod_template(
        labels,
        [m.container(
            component,
            config.image(component, record.status.version),
            command=[component],
            args=args,
            mounts=[m.mount("pki", PKI_DIR, read_only=True),
                    m.mount("kubeconfig", KUBECONFIG_DIR, read_only=True)],
            livenessProbe=_probe(health_port),
        )],
        volumes=[m.secret_volume("pki", PKI_SECRET), m.secret_volume("kubeconfig", KUBECONFIG_SECRET)],
    )
    return m.deployment(component, record.namespace, labels, template, config.control_plane.replicas)


def controller_manager_deployment(config: ProviderConfig, record: ClusterRecord) -> dict:
    kubeconfig = f"{KUBECONFIG_DIR}/{CONTROLLER_MANAGER_KUBECONFIG}"
    args = [
        f"--kubeconfig={kubeconfig}",
        f"--authentication-kubeconfig={kubeconfig}",
        f"--authorization-kubeconfig={kubeconfig}",
        "--bind-address=0.0.0.0",
        "--leader-elect=true",
        "--allocate-node-cidrs=true",
        f"--cluster-cidr={record.spec.cluster_cidr}",
        f"--node-cidr-mask-size={record.status.node_cidr_mask_size}",
        f"--service-cluster-ip-range={record.status.service_cidr}",
        f"--cluster-name={record.name}",
        f"--cluster-signing-cert-file={_pki('ca.crt')}",
        f"--cluster-signing-key-file={_pki('ca.key')}",
        f"--root-ca-file={_pki('ca.crt')}",
        f"--requestheader-client-ca-file={_pki(certs.FRONT_PROXY_CA_CERT)}",
        f"--service-account-private-key-file={_pki(certs.SA_KEY)}",
        "--use-service-account-credentials=true",
        "--controllers=*,bootstrapsigner,tokencleaner",
    ]
    return _component_deployment(config, record, CONTROLLER_MANAGER, args, 10257)


def scheduler_deployment(config: ProviderConfig, record: ClusterRecord) -> dict:
    kubeconfig = f"{KUBECONFIG_DIR}/{SCHEDULER_KUBECONFIG}"
    args = [
        f"--kubeconfig={kubeconfig}",
        f"--authentication-kubeconfig={kubeconfig}",
        f"--authorization-kubeconfig={kubeconfig}",
        "--bind-address=0.0.0.0",
        "--leader-elect=true",
    ]
    return _component_deployment(config, record, SCHEDULER, args, 10259)


def control_plane_objects(config: ProviderConfig, record: ClusterRecord) -> List[dict]:
    """Objects in apply order: configuration first, then the components."""
    credential = record.credential
    if not credential.ca_cert or not credential.token:
        raise ConfigurationError(f"cluster {record.name} has no certificates or token yet")
    if not record.status.service_cidr or not record.status.version:
        raise ConfigurationError(f"cluster {record.name} is not completed")
    return [
        pki_secret(record),
        kubeconfig_secret(record),
        audit_config_map(record),
        apiserver_deployment(config, record),
        apiserver_service(config, record),
        controller_manager_deployment(config, record),
        scheduler_deployment(config, record),
    ]


def ensure_control_plane(store, config: ProviderConfig, record: ClusterRecord):
    """Reconcile the hosted control plane on the management store."""
    actions = ensure_all(store, control_plane_objects(config, record))
    logger.info(f"🚀 Control plane for {record.name}: "
                f"{sum(1 for a in actions if a.value != 'unchanged')} object(s) changed")
    return actions
