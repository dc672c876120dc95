"""kube-proxy DaemonSet and its configuration."""
import yaml

from shipctl.modules import manifests as m
from shipctl.modules.endpoint import get_stable_endpoint
from shipctl.modules.manifests import KUBE_SYSTEM

NAME = "kube-proxy"
LABELS = {"k8s-app": NAME}
SA_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


def proxy_config(record) -> str:
    return yaml.safe_dump({
        "apiVersion": "kubeproxy.config.k8s.io/v1alpha1",
        "kind": "KubeProxyConfiguration",
        "bindAddress": "0.0.0.0",
        "clientConnection": {"kubeconfig": "/var/lib/kube-proxy/kubeconfig.conf"},
        "clusterCIDR": record.spec.cluster_cidr,
        "mode": "iptables",
    }, sort_keys=False)


def proxy_kubeconfig(record) -> str:
    """In-pod kubeconfig using the mounted service account token."""
    return yaml.safe_dump({
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "default", "cluster": {
            "certificate-authority": f"{SA_DIR}/ca.crt",
            "server": get_stable_endpoint(record),
        }}],
        "contexts": [{"name": "default", "context": {
            "cluster": "default", "namespace": "default", "user": "default"}}],
        "current-context": "default",
        "users": [{"name": "default", "user": {"tokenFile": f"{SA_DIR}/token"}}],
    }, sort_keys=False)


def build(config, record) -> list:
    template = m.pod_template(
        LABELS,
        [m.container(
            NAME,
            config.image(NAME, record.status.version),
            command=["/usr/local/bin/kube-proxy", "--config=/var/lib/kube-proxy/config.conf",
                     "--hostname-override=$(NODE_NAME)"],
            mounts=[m.mount("kube-proxy", "/var/lib/kube-proxy"),
                    m.mount("xtables-lock", "/run/xtables.lock"),
                    m.mount("lib-modules", "/lib/modules", read_only=True)],
            env=[{"name": "NODE_NAME", "valueFrom": {"fieldRef": {"fieldPath": "spec.nodeName"}}}],
            securityContext={"privileged": True},
        )],
        volumes=[m.config_map_volume("kube-proxy", NAME),
                 m.host_path_volume("xtables-lock", "/run/xtables.lock", "FileOrCreate"),
                 m.host_path_volume("lib-modules", "/lib/modules")],
        hostNetwork=True,
        priorityClassName="system-node-critical",
        serviceAccountName=NAME,
        tolerations=[{"operator": "Exists"}],
        nodeSelector={"kubernetes.io/os": "linux"},
    )
    return [
        m.service_account(NAME, KUBE_SYSTEM),
        m.role_binding("kubeadm:node-proxier", None, "ClusterRole", "system:node-proxier",
                       [m.sa_subject(NAME, KUBE_SYSTEM)]),
        m.config_map(NAME, KUBE_SYSTEM, {"config.conf": proxy_config(record),
                                         "kubeconfig.conf": proxy_kubeconfig(record)}, labels={"app": NAME}),
        m.daemon_set(NAME, KUBE_SYSTEM, LABELS, template),
    ]
