"""
SSH connection management over paramiko.
"""
import io
import logging
import os
import posixpath
import shlex
import socket
import threading
from typing import Dict, Optional, Tuple

import paramiko
from paramiko.ssh_exception import (
    AuthenticationException,
    NoValidConnectionsError,
    SSHException,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shipctl.errors import RemoteCommandError, SSHConnectionError
from shipctl.models import Machine

logger = logging.getLogger("shipctl.ssh")

KEY_CLASSES = (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey)


def load_private_key(pem: str) -> paramiko.PKey:
    """Parse a PEM/OpenSSH private key string with whichever key type accepts it."""
    for key_cls in KEY_CLASSES:
        try:
            return key_cls.from_private_key(io.StringIO(pem))
        except SSHException:
            continue
    raise SSHConnectionError("unsupported or malformed private key")


class SSHConnection:
    """Remote shell on one host.

    Exposes command execution and file transfer. Every transport failure is
    raised as :class:`SSHConnectionError`; non-zero exits are only errors for
    :meth:`combined_output`.
    """

    def __init__(self, host: str, username: str = "root", port: int = 22,
                 password: Optional[str] = None, private_key: Optional[str] = None,
                 key_path: Optional[str] = None, timeout: int = 10, command_timeout: int = 600):
        """Initialize and connect.

        Args:
            host: Remote host to connect to
            username: Username for authentication
            port: SSH port (default: 22)
            password: Password, used when no key is given
            private_key: Private key PEM content
            key_path: Path to SSH private key
            timeout: Connection timeout in seconds
            command_timeout: Per-command timeout in seconds
        """
        self.host = host
        self.username = username
        self.port = port
        self.password = password
        self.private_key = private_key
        self.key_path = os.path.expanduser(key_path) if key_path else None
        self.timeout = timeout
        self.command_timeout = command_timeout
        self.client: Optional[paramiko.SSHClient] = None
        self._connect()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Pooled connections are closed by the pool.
        pass

    @retry(
        retry=retry_if_exception_type((NoValidConnectionsError, socket.timeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _open(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        pkey = load_private_key(self.private_key) if self.private_key else None
        client.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password if not pkey else None,
            pkey=pkey,
            key_filename=self.key_path if not pkey else None,
            timeout=self.timeout,
            allow_agent=pkey is None and self.password is None,
            look_for_keys=pkey is None and self.key_path is None and self.password is None,
        )
        return client

    def _connect(self) -> None:
        logger.debug(f"Connecting to {self.username}@{self.host}:{self.port}")
        try:
            self.client = self._open()
        except AuthenticationException as e:
            raise SSHConnectionError(f"authentication failed for {self.username}@{self.host}: {e}",
                                     host=self.host) from e
        except (SSHException, OSError) as e:
            raise SSHConnectionError(f"cannot connect to {self.host}:{self.port}: {e}",
                                     host=self.host) from e

    def is_active(self) -> bool:
        transport = self.client.get_transport() if self.client else None
        return bool(transport and transport.is_active())

    def host_ip(self) -> str:
        return self.host

    def exec(self, command: str, timeout: Optional[int] = None) -> Tuple[str, str, int]:
        """Run a command and return ``(stdout, stderr, exit_code)``.

        Raises:
            SSHConnectionError: If the command could not be run at all
        """
        logger.debug(f"[{self.host}] exec: {command}")
        try:
            _, stdout, stderr = self.client.exec_command(command, timeout=timeout or self.command_timeout)
            out = stdout.read().decode("utf-8", "replace")
            err = stderr.read().decode("utf-8", "replace")
            code = stdout.channel.recv_exit_status()
        except (SSHException, OSError) as e:
            raise SSHConnectionError(f"exec on {self.host} failed: {e}", host=self.host) from e
        return out, err, code

    def execf(self, fmt: str, *args, timeout: Optional[int] = None) -> Tuple[str, str, int]:
        """Run ``fmt % args`` with every argument shell-quoted."""
        return self.exec(fmt % tuple(shlex.quote(str(a)) for a in args), timeout=timeout)

    def combined_output(self, command: str, timeout: Optional[int] = None) -> str:
        """Run a command and return stdout followed by stderr.

        Raises:
            RemoteCommandError: If the command exits non-zero
        """
        out, err, code = self.exec(command, timeout=timeout)
        if code != 0:
            raise RemoteCommandError(command, code, err or out, host=self.host)
        return out + err

    def exists(self, path: str) -> bool:
        _, _, code = self.execf("test -e %s", path)
        return code == 0

    def write_file(self, content, remote_path: str, mode: int = 0o644) -> None:
        """Write ``content`` (str or bytes) to ``remote_path`` creating parent dirs."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        self.combined_output(f"mkdir -p {shlex.quote(posixpath.dirname(remote_path) or '/')}")
        try:
            with self.client.open_sftp() as sftp:
                with sftp.open(remote_path, "wb") as f:
                    f.write(data)
                sftp.chmod(remote_path, mode)
        except (SSHException, OSError) as e:
            raise SSHConnectionError(f"failed to write {self.host}:{remote_path}: {e}", host=self.host) from e

    def copy_file(self, local_path: str, remote_path: str, mode: Optional[int] = None) -> None:
        """Upload a local file to the remote host."""
        local_path = os.path.expanduser(local_path)
        self.combined_output(f"mkdir -p {shlex.quote(posixpath.dirname(remote_path) or '/')}")
        try:
            with self.client.open_sftp() as sftp:
                sftp.put(local_path, remote_path)
                if mode is not None:
                    sftp.chmod(remote_path, mode)
        except (SSHException, OSError) as e:
            raise SSHConnectionError(f"failed to upload {local_path} to {self.host}:{remote_path}: {e}",
                                     host=self.host) from e

    def close(self) -> None:
        if self.client:
            self.client.close()
            self.client = None


class ConnectionPool:
    """Thread-safe pool of SSH connections keyed by ``user@host:port``."""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(ConnectionPool, cls).__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self.connections: Dict[str, SSHConnection] = {}
        self.lock = threading.RLock()
        self._initialized = True

    def get_connection(self, host: str, username: str, **kwargs) -> SSHConnection:
        """Get a live connection from the pool, reconnecting if it dropped.

        Args:
            host: SSH host to connect to
            username: SSH username
            **kwargs: port, password, private_key, key_path, timeout, command_timeout

        Returns:
            SSHConnection: An active SSH connection

        Raises:
            SSHConnectionError: If the host cannot be reached
        """
        connection_id = f"{username}@{host}:{kwargs.get('port', 22)}"
        with self.lock:
            conn = self.connections.get(connection_id)
            if conn is not None:
                if conn.is_active():
                    return conn
                logger.debug(f"Connection {connection_id} dropped, reconnecting")
                conn.close()
                del self.connections[connection_id]

            logger.debug(f"Creating new SSH connection to {connection_id}")
            conn = SSHConnection(host=host, username=username, **kwargs)
            self.connections[connection_id] = conn
            return conn

    def close_all(self) -> None:
        with self.lock:
            for conn in self.connections.values():
                conn.close()
            self.connections.clear()


ssh_pool = ConnectionPool()


def get_ssh_pool() -> ConnectionPool:
    """Get the global SSH connection pool."""
    return ssh_pool


def ssh_for_machine(machine: Machine, timeout: int = 10, command_timeout: int = 600) -> SSHConnection:
    """Open (or reuse) the SSH handle for a machine."""
    return get_ssh_pool().get_connection(
        host=machine.ip,
        username=machine.username,
        port=machine.port,
        password=machine.password,
        private_key=machine.private_key,
        key_path=machine.key_path,
        timeout=timeout,
        command_timeout=command_timeout,
    )
