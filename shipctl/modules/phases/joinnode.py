"""Joining a machine to the cluster with kubeadm."""
import logging
import shlex
from urllib.parse import urlparse

from shipctl.errors import ConfigurationError
from shipctl.models import Machine
from shipctl.modules.certs import ca_cert_hash
from shipctl.utils.templates import render_template

logger = logging.getLogger("shipctl.joinnode")

KUBELET_CONF = "/etc/kubernetes/kubelet.conf"
JOIN_CONFIG = "/var/lib/shipctl/kubeadm-join.yaml"


def join_config(config, record, machine: Machine, endpoint: str) -> str:
    """Render the kubeadm JoinConfiguration for a machine."""
    credential = record.credential
    if not credential.bootstrap_token or not credential.ca_cert:
        raise ConfigurationError(f"cluster {record.name} has no bootstrap token or CA")
    parsed = urlparse(endpoint)
    if not parsed.hostname or not parsed.port:
        raise ConfigurationError(f"invalid API server endpoint: {endpoint}")
    host = f"[{parsed.hostname}]" if ":" in parsed.hostname else parsed.hostname
    labels = ",".join(f"{k}={v}" for k, v in sorted(machine.labels.items()))
    return render_template(
        "kubeadm-join.yaml.j2",
        api_server_endpoint=f"{host}:{parsed.port}",
        bootstrap_token=credential.bootstrap_token,
        ca_cert_hash=ca_cert_hash(credential.ca_cert),
        node_name=machine.node_name,
        node_ip=machine.ip,
        node_labels=labels,
        pause_image=config.images.pause,
    )


def join_node_phase(ssh, config, record, endpoint: str, rejoin: bool = False, machine: Machine = None) -> bool:
    """Join the machine behind ``ssh`` to the cluster at ``endpoint``.

    Already-joined machines are left alone. With ``rejoin`` kubeadm state is
    always reset first, whether or not kubelet.conf survived.

    Returns:
        True if kubeadm join ran

    Raises:
        RemoteCommandError: If kubeadm fails
    """
    machine = machine or record.machine(ssh.host_ip())
    if machine is None:
        raise ConfigurationError(f"machine {ssh.host_ip()} is not part of cluster {record.name}")

    if rejoin:
        # kubelet.conf may already be wiped by a reset pass; the kubelet is still running
        logger.warning(f"🧹 [{ssh.host_ip()}] resetting kubeadm state before rejoin")
        ssh.combined_output("kubeadm reset -f")
    elif ssh.exists(KUBELET_CONF):
        logger.info(f"↪️ [{ssh.host_ip()}] already joined, skipping")
        return False

    ssh.write_file(join_config(config, record, machine, endpoint), JOIN_CONFIG, mode=0o600)
    logger.info(f"🚀 [{ssh.host_ip()}] joining {record.name} via {endpoint}")
    ssh.combined_output(f"kubeadm join --config {shlex.quote(JOIN_CONFIG)}")
    logger.info(f"✅ [{ssh.host_ip()}] joined {record.name}")
    return True
