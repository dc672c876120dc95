"""Operating system prerequisites: files, kernel settings and the container runtime."""
import logging
import shlex

from shipctl.errors import ConfigurationError
from shipctl.models import FileSpec
from shipctl.utils.templates import render_template

logger = logging.getLogger("shipctl.system")

KERNEL_MODULES = ("overlay", "br_netfilter")
SYSCTL = {
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.bridge.bridge-nf-call-ip6tables": "1",
    "net.ipv4.ip_forward": "1",
}
CONTAINERD_CONFIG = "/etc/containerd/config.toml"


def copy_file(ssh, file: FileSpec) -> None:
    """Copy one declared file onto the machine."""
    if not file.src or not file.dst:
        raise ConfigurationError(f"file entry needs src and dst: {file}")
    ssh.copy_file(file.src, file.dst)
    logger.debug(f"[{ssh.host_ip()}] copied {file.src} -> {file.dst}")


def _package_manager(ssh) -> str:
    for manager in ("apt-get", "dnf", "yum"):
        _, _, code = ssh.execf("command -v %s", manager)
        if code == 0:
            return manager
    raise ConfigurationError(f"no supported package manager on {ssh.host_ip()}")


def disable_swap(ssh) -> None:
    ssh.combined_output("swapoff -a")
    ssh.combined_output(r"sed -ri '/\sswap\s/s/^#?/#/' /etc/fstab")


def configure_kernel(ssh) -> None:
    ssh.write_file("\n".join(KERNEL_MODULES) + "\n", "/etc/modules-load.d/k8s.conf")
    for module in KERNEL_MODULES:
        ssh.combined_output(f"modprobe {module}")
    ssh.write_file("".join(f"{k} = {v}\n" for k, v in SYSCTL.items()), "/etc/sysctl.d/k8s.conf")
    ssh.combined_output("sysctl --system")


def install_containerd(ssh, config) -> None:
    _, _, code = ssh.exec("command -v containerd")
    if code != 0:
        manager = _package_manager(ssh)
        package = shlex.quote(config.packages.containerd_package)
        if manager == "apt-get":
            ssh.combined_output(f"DEBIAN_FRONTEND=noninteractive apt-get update -q && "
                                f"DEBIAN_FRONTEND=noninteractive apt-get install -y -q {package}")
        else:
            ssh.combined_output(f"{manager} install -y {package}")
    rendered = render_template(
        "containerd-config.toml.j2",
        pause_image=config.images.pause,
        registry_domain=config.registry.domain if config.need_set_hosts() else "",
    )
    ssh.write_file(rendered, CONTAINERD_CONFIG)
    ssh.combined_output("systemctl daemon-reload && systemctl enable containerd && systemctl restart containerd")


def install(ssh, config, record) -> None:
    """Prepare a machine to run kubelet.

    Args:
        ssh: Remote shell on the machine
        config: Provider configuration
        record: Cluster the machine joins

    Raises:
        RemoteCommandError: If any step fails on the machine
    """
    logger.info(f"🔧 [{ssh.host_ip()}] installing system prerequisites for {record.name}")
    disable_swap(ssh)
    configure_kernel(ssh)
    install_containerd(ssh, config)
    logger.info(f"✅ [{ssh.host_ip()}] system prerequisites installed")
