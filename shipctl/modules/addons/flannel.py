"""Flannel VXLAN overlay. Skipped when the cluster brings its own CNI."""
import json

from shipctl.models import HookType
from shipctl.modules import manifests as m
from shipctl.modules.manifests import KUBE_SYSTEM

NAME = "flannel"
LABELS = {"app": NAME, "k8s-app": NAME}
CONFIG_MAP = "kube-flannel-cfg"

RULES = [
    {"apiGroups": [""], "resources": ["pods"], "verbs": ["get"]},
    {"apiGroups": [""], "resources": ["nodes"], "verbs": ["get", "list", "watch"]},
    {"apiGroups": [""], "resources": ["nodes/status"], "verbs": ["patch"]},
]

CNI_CONF = {
    "name": "cbr0",
    "cniVersion": "0.3.1",
    "plugins": [
        {"type": "flannel", "delegate": {"hairpinMode": True, "isDefaultGateway": True}},
        {"type": "portmap", "capabilities": {"portMappings": True}},
    ],
}


def net_conf(record) -> str:
    return json.dumps({
        "Network": record.spec.cluster_cidr,
        "SubnetLen": record.status.node_cidr_mask_size,
        "Backend": {"Type": "vxlan"},
    }, indent=2)


def build(config, record) -> list:
    if record.spec.features.hooks.get(HookType.CNI_INSTALL):
        return []
    env = [
        {"name": "POD_NAME", "valueFrom": {"fieldRef": {"fieldPath": "metadata.name"}}},
        {"name": "POD_NAMESPACE", "valueFrom": {"fieldRef": {"fieldPath": "metadata.namespace"}}},
    ]
    template = m.pod_template(
        LABELS,
        [m.container(
            "kube-flannel",
            config.images.flannel,
            command=["/opt/bin/flanneld"],
            args=["--ip-masq", "--kube-subnet-mgr"],
            mounts=[m.mount("run", "/run/flannel"), m.mount("flannel-cfg", "/etc/kube-flannel/"),
                    m.mount("xtables-lock", "/run/xtables.lock")],
            env=env,
            securityContext={"privileged": False, "capabilities": {"add": ["NET_ADMIN", "NET_RAW"]}},
        )],
        volumes=[m.host_path_volume("run", "/run/flannel"),
                 m.host_path_volume("cni-plugin", config.cni.bin_dir),
                 m.host_path_volume("cni", config.cni.conf_dir),
                 m.config_map_volume("flannel-cfg", CONFIG_MAP),
                 m.host_path_volume("xtables-lock", "/run/xtables.lock", "FileOrCreate")],
        initContainers=[
            m.container("install-cni-plugin", config.images.flannel_cni_plugin,
                        command=["cp"], args=["-f", "/flannel", "/opt/cni/bin/flannel"],
                        mounts=[m.mount("cni-plugin", "/opt/cni/bin")]),
            m.container("install-cni", config.images.flannel,
                        command=["cp"], args=["-f", "/etc/kube-flannel/cni-conf.json",
                                              "/etc/cni/net.d/10-flannel.conflist"],
                        mounts=[m.mount("cni", "/etc/cni/net.d"), m.mount("flannel-cfg", "/etc/kube-flannel/")]),
        ],
        hostNetwork=True,
        priorityClassName="system-node-critical",
        serviceAccountName=NAME,
        tolerations=[{"operator": "Exists", "effect": "NoSchedule"}],
    )
    return [
        m.service_account(NAME, KUBE_SYSTEM),
        m.cluster_role(NAME, RULES),
        m.role_binding(NAME, None, "ClusterRole", NAME, [m.sa_subject(NAME, KUBE_SYSTEM)]),
        m.config_map(CONFIG_MAP, KUBE_SYSTEM, {"cni-conf.json": json.dumps(CNI_CONF, indent=2),
                                               "net-conf.json": net_conf(record)}, labels=LABELS),
        m.daemon_set("kube-flannel-ds", KUBE_SYSTEM, LABELS, template),
    ]
