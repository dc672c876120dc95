"""Managing /etc/hosts entries on a remote machine."""
import logging

logger = logging.getLogger("shipctl.hosts")

HOSTS_FILE = "/etc/hosts"


def _names(line: str):
    fields = line.split("#", 1)[0].split()
    return fields[0] if fields else None, fields[1:]


def lookup(content: str, host: str) -> list:
    """Addresses ``host`` maps to in a hosts file."""
    return [ip for ip, names in map(_names, content.splitlines()) if host in names]


def update_hosts(content: str, host: str, ip: str) -> str:
    """Return ``content`` with exactly one ``ip host`` line for ``host``."""
    lines = [line for line in content.splitlines() if host not in _names(line)[1]]
    lines.append(f"{ip} {host}")
    return "\n".join(lines) + "\n"


class RemoteHosts:
    """A single host name in a machine's hosts file."""

    def __init__(self, host: str, ssh, path: str = HOSTS_FILE):
        self.host = host
        self.ssh = ssh
        self.path = path

    def get(self) -> str:
        return self.ssh.combined_output(f"cat {self.path}")

    def set(self, ip: str) -> bool:
        """Point the host name at ``ip``. Returns False when already correct."""
        current = self.get()
        if lookup(current, self.host) == [ip]:
            return False
        self.ssh.write_file(update_hosts(current, self.host, ip), self.path, mode=0o644)
        logger.info(f"📝 [{self.ssh.host_ip()}] {self.host} -> {ip} in {self.path}")
        return True
