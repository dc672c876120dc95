"""Host side of the dke-cni plugin: the bridge interface and the CNI config list."""
import logging
import shlex

from shipctl.errors import ConfigurationError
from shipctl.models import HookType
from shipctl.utils.network import get_node_subnet
from shipctl.utils.templates import render_template

logger = logging.getLogger("shipctl.cni")

DKE_CNI = "dke-cni"
CONFLIST_NAME = "10-dke-cni.conflist"


def uses_dke_cni(record) -> bool:
    return record.spec.features.hooks.get(HookType.CNI_INSTALL) == DKE_CNI


def pod_subnet(record, machine) -> str:
    """Pod subnet of a machine: its position in the cluster's machine list."""
    for index, candidate in enumerate(record.spec.machines):
        if candidate.ip == machine.ip:
            return get_node_subnet(record.spec.cluster_cidr, record.status.node_cidr_mask_size, index)
    raise ConfigurationError(f"machine {machine.ip} is not part of cluster {record.name}")


def apply_eth(ssh, config, record) -> None:
    """Create the bridge the plugin attaches pods to."""
    bridge = config.cni.bridge
    _, _, code = ssh.execf("ip link show %s", bridge)
    if code != 0:
        ssh.combined_output(f"ip link add {shlex.quote(bridge)} type bridge")
    ssh.combined_output(f"ip link set {shlex.quote(bridge)} up")
    logger.info(f"🔌 [{ssh.host_ip()}] bridge {bridge} is up")


def apply_cni_cfg(ssh, config, record, machine) -> None:
    """Write the CNI config list for this machine's pod subnet."""
    rendered = render_template(
        "dke-cni.conflist.j2",
        bridge=config.cni.bridge,
        pod_subnet=pod_subnet(record, machine),
    )
    ssh.write_file(rendered, f"{config.cni.conf_dir}/{CONFLIST_NAME}")
    logger.info(f"🔌 [{ssh.host_ip()}] wrote {CONFLIST_NAME}")
