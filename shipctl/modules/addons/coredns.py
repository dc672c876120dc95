"""CoreDNS serving the cluster DNS address."""
from shipctl.errors import ConfigurationError
from shipctl.modules import manifests as m
from shipctl.modules.manifests import KUBE_SYSTEM

NAME = "coredns"
LABELS = {"k8s-app": "kube-dns"}

COREFILE = """.:53 {{
    errors
    health {{
       lameduck 5s
    }}
    ready
    kubernetes {domain} in-addr.arpa ip6.arpa {{
       pods insecure
       fallthrough in-addr.arpa ip6.arpa
       ttl 30
    }}
    prometheus :9153
    forward . /etc/resolv.conf {{
       max_concurrent 1000
    }}
    cache 30
    loop
    reload
    loadbalance
}}
"""

RULES = [
    {"apiGroups": [""], "resources": ["endpoints", "services", "pods", "namespaces"], "verbs": ["list", "watch"]},
    {"apiGroups": [""], "resources": ["nodes"], "verbs": ["get"]},
    {"apiGroups": ["discovery.k8s.io"], "resources": ["endpointslices"], "verbs": ["list", "watch"]},
]


def build(config, record) -> list:
    if not record.status.dns_ip:
        raise ConfigurationError(f"cluster {record.name} has no DNS address")
    ports = [
        {"name": "dns", "containerPort": 53, "protocol": "UDP"},
        {"name": "dns-tcp", "containerPort": 53, "protocol": "TCP"},
        {"name": "metrics", "containerPort": 9153, "protocol": "TCP"},
    ]
    template = m.pod_template(
        LABELS,
        [m.container(
            NAME,
            config.images.coredns,
            args=["-conf", "/etc/coredns/Corefile"],
            ports=ports,
            mounts=[m.mount("config-volume", "/etc/coredns", read_only=True)],
            livenessProbe={"httpGet": {"path": "/health", "port": 8080, "scheme": "HTTP"},
                           "initialDelaySeconds": 60, "timeoutSeconds": 5},
            readinessProbe={"httpGet": {"path": "/ready", "port": 8181, "scheme": "HTTP"}},
            resources={"requests": {"cpu": "100m", "memory": "70Mi"}, "limits": {"memory": "170Mi"}},
        )],
        volumes=[m.config_map_volume("config-volume", NAME)],
        serviceAccountName=NAME,
        priorityClassName="system-cluster-critical",
        dnsPolicy="Default",
        tolerations=[{"key": "CriticalAddonsOnly", "operator": "Exists"},
                     {"key": "node-role.kubernetes.io/control-plane", "effect": "NoSchedule"}],
        nodeSelector={"kubernetes.io/os": "linux"},
    )
    service_ports = [
        {"name": "dns", "port": 53, "targetPort": 53, "protocol": "UDP"},
        {"name": "dns-tcp", "port": 53, "targetPort": 53, "protocol": "TCP"},
        {"name": "metrics", "port": 9153, "targetPort": 9153, "protocol": "TCP"},
    ]
    return [
        m.service_account(NAME, KUBE_SYSTEM),
        m.cluster_role("system:coredns", RULES),
        m.role_binding("system:coredns", None, "ClusterRole", "system:coredns", [m.sa_subject(NAME, KUBE_SYSTEM)]),
        m.config_map(NAME, KUBE_SYSTEM, {"Corefile": COREFILE.format(domain=config.cluster_domain)}),
        m.deployment(NAME, KUBE_SYSTEM, LABELS, template, replicas=2),
        m.service("kube-dns", KUBE_SYSTEM, LABELS, service_ports, labels=LABELS, cluster_ip=record.status.dns_ip),
    ]
