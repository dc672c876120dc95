"""Kubernetes node binaries and the kubelet service."""
import logging

from shipctl.utils.templates import render_template

logger = logging.getLogger("shipctl.k8scomponent")

BIN_DIR = "/usr/bin"
BINARIES = ("kubeadm", "kubelet", "kubectl")
KUBELET_UNIT = "/etc/systemd/system/kubelet.service"
KUBELET_DROPIN = "/etc/systemd/system/kubelet.service.d/10-kubeadm.conf"
VERSION_COMMANDS = {
    "kubeadm": "kubeadm version -o short",
    "kubelet": "kubelet --version",
    "kubectl": "kubectl version --client -o yaml | awk '/gitVersion/ {print $2}'",
}


def installed_version(ssh, binary: str) -> str:
    """Installed version as ``vX.Y.Z``, or an empty string."""
    out, _, code = ssh.exec(f"{BIN_DIR}/{VERSION_COMMANDS[binary]}")
    return out.strip().split()[-1] if code == 0 and out.strip() else ""


def install_binaries(ssh, config, version: str) -> list:
    """Download node binaries whose installed version differs. Returns the ones fetched."""
    base = config.packages.binaries_url.format(version=version.lstrip("v"), arch=config.packages.arch)
    wanted = f"v{version.lstrip('v')}"
    fetched = []
    for binary in BINARIES:
        if installed_version(ssh, binary) == wanted:
            continue
        ssh.combined_output(f"curl -fsSL --retry 3 -o {BIN_DIR}/{binary}.tmp {base}/{binary} && "
                            f"chmod 0755 {BIN_DIR}/{binary}.tmp && mv -f {BIN_DIR}/{binary}.tmp {BIN_DIR}/{binary}")
        fetched.append(binary)
    return fetched


def install_cni_plugins(ssh, config) -> None:
    bin_dir = config.cni.bin_dir
    if ssh.exists(f"{bin_dir}/bridge") and ssh.exists(f"{bin_dir}/portmap"):
        return
    url = config.cni.plugins_url.format(arch=config.packages.arch)
    ssh.combined_output(f"mkdir -p {bin_dir} && curl -fsSL --retry 3 {url} | tar -xz -C {bin_dir}")


def install(ssh, config, record) -> None:
    """Install kubeadm, kubelet, kubectl and CNI plugins, and enable kubelet."""
    version = record.status.version or record.spec.version
    logger.info(f"📦 [{ssh.host_ip()}] installing Kubernetes v{version.lstrip('v')} components")
    fetched = install_binaries(ssh, config, version)
    install_cni_plugins(ssh, config)
    ssh.write_file(render_template("kubelet.service.j2", bin_dir=BIN_DIR), KUBELET_UNIT)
    ssh.write_file(render_template("10-kubeadm.conf.j2", bin_dir=BIN_DIR), KUBELET_DROPIN)
    ssh.combined_output("systemctl daemon-reload && systemctl enable kubelet")
    logger.info(f"✅ [{ssh.host_ip()}] components ready ({', '.join(fetched) or 'already current'})")
