"""Node checks run before anything is installed."""
import logging
from typing import Callable, List, Optional, Tuple

from shipctl.errors import PreflightError

logger = logging.getLogger("shipctl.preflight")

MIN_MEMORY_KB = 1700 * 1024
MIN_CPUS = 1
REQUIRED_PORTS = (10250,)
REQUIRED_COMMANDS = ("systemctl", "curl", "tar", "modprobe", "sysctl")


def check_os(ssh) -> Optional[str]:
    out, _, code = ssh.exec("uname -s")
    if code != 0 or out.strip() != "Linux":
        return f"unsupported operating system: {out.strip() or 'unknown'}"
    return None


def check_root(ssh) -> Optional[str]:
    out, _, code = ssh.exec("id -u")
    if code != 0 or out.strip() != "0":
        return "installation requires root privileges"
    return None


def check_commands(ssh) -> Optional[str]:
    missing = []
    for command in REQUIRED_COMMANDS:
        _, _, code = ssh.execf("command -v %s", command)
        if code != 0:
            missing.append(command)
    if missing:
        return f"missing required commands: {', '.join(missing)}"
    return None


def check_memory(ssh) -> Optional[str]:
    out, _, code = ssh.exec("awk '/MemTotal/ {print $2}' /proc/meminfo")
    try:
        total = int(out.strip())
    except ValueError:
        return "cannot read total memory"
    if code != 0 or total < MIN_MEMORY_KB:
        return f"insufficient memory: {total // 1024}MB, need {MIN_MEMORY_KB // 1024}MB"
    return None


def check_cpus(ssh) -> Optional[str]:
    out, _, code = ssh.exec("nproc")
    try:
        cpus = int(out.strip())
    except ValueError:
        return "cannot read CPU count"
    if code != 0 or cpus < MIN_CPUS:
        return f"insufficient CPUs: {cpus}, need {MIN_CPUS}"
    return None


def check_ports(ssh) -> Optional[str]:
    busy = []
    for port in REQUIRED_PORTS:
        out, _, _ = ssh.exec(f"ss -Hltn 'sport = :{port}'")
        # kubelet already listening means the node joined before; not a failure.
        if out.strip() and not ssh.exists("/etc/kubernetes/kubelet.conf"):
            busy.append(str(port))
    if busy:
        return f"ports in use: {', '.join(busy)}"
    return None


NODE_CHECKS: List[Tuple[str, Callable]] = [
    ("os", check_os),
    ("root", check_root),
    ("commands", check_commands),
    ("memory", check_memory),
    ("cpus", check_cpus),
    ("ports", check_ports),
]


def run_node_checks(ssh) -> None:
    """Run every node check and report all failures at once.

    Raises:
        PreflightError: If any check fails
    """
    failures = []
    for name, check in NODE_CHECKS:
        problem = check(ssh)
        if problem:
            logger.warning(f"⚠️  [{ssh.host_ip()}] preflight {name}: {problem}")
            failures.append(problem)
    if failures:
        raise PreflightError(failures, host=ssh.host_ip())
    logger.info(f"✅ [{ssh.host_ip()}] preflight checks passed")
