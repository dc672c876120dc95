"""Exception types raised by the provisioning phases."""
from typing import Optional


class ProvisionError(Exception):
    """Base class for all provisioning failures.

    The pipeline runner stamps ``phase`` and ``host`` on the error before it
    is re-raised so callers can tell where a pass stopped.
    """

    def __init__(self, message: str = "", phase: Optional[str] = None, host: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.host = host

    def __str__(self) -> str:
        prefix = []
        if self.phase:
            prefix.append(f"phase={self.phase}")
        if self.host:
            prefix.append(f"host={self.host}")
        if prefix:
            return f"[{' '.join(prefix)}] {self.message}"
        return self.message


class ConfigurationError(ProvisionError):
    """Declared spec or provider configuration cannot be satisfied."""


class CryptoError(ProvisionError):
    """Random source or key material generation failed."""


class SSHConnectionError(ProvisionError, ConnectionError):
    """A remote shell handle could not be obtained."""


class RemoteCommandError(ProvisionError):
    """A remote command exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = "", **kwargs):
        message = f"exec {command!r} failed: exit {exit_code}: stderr {stderr.strip()}"
        super().__init__(message, **kwargs)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class PreflightError(ProvisionError):
    """One or more node checks failed before installation."""

    def __init__(self, failures, **kwargs):
        self.failures = list(failures)
        super().__init__("preflight checks failed: " + "; ".join(self.failures), **kwargs)


class ConflictError(ProvisionError):
    """The declarative store rejected a write because of a concurrent change."""


class NodeReadyTimeout(ProvisionError, TimeoutError):
    """A node did not report Ready within the poll window."""


class NoAddressError(ProvisionError):
    """The cluster has no Advertise or Real address to build an endpoint from."""


class NotReadyError(ProvisionError):
    """The target cluster's API is not reachable yet."""


class PipelineCancelled(ProvisionError):
    """The pass was cancelled or ran past its deadline."""


class PhaseError(ProvisionError):
    """Wraps an unexpected exception raised inside a phase."""

    def __init__(self, cause: BaseException, **kwargs):
        super().__init__(f"{type(cause).__name__}: {cause}", **kwargs)
        self.cause = cause
