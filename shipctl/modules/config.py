"""Provider configuration management.

Configuration is loaded with the following precedence:
1. Explicitly passed path
2. The first existing default path
3. Default values
"""
import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from shipctl.errors import ConfigurationError

logger = logging.getLogger("shipctl.config")

DEFAULT_CONFIG_PATHS = [
    Path("/etc/shipctl/config.yaml"),
    Path("~/.config/shipctl/config.yaml").expanduser(),
    Path("shipctl-config.yaml").absolute(),
]


class RegistryConfig(BaseModel):
    """Image registry the nodes pull from."""
    prefix: str = Field(default="registry.k8s.io", description="Prefix for control plane images")
    domain: str = Field(default="", description="Private registry domain written to /etc/hosts")
    ip: str = Field(default="", description="Private registry IP address")


class ImagesConfig(BaseModel):
    """Addon images. Control plane images are derived from the registry prefix and version."""
    pause: str = "registry.k8s.io/pause:3.9"
    coredns: str = "registry.k8s.io/coredns/coredns:v1.10.1"
    flannel: str = "docker.io/flannel/flannel:v0.24.2"
    flannel_cni_plugin: str = "docker.io/flannel/flannel-cni-plugin:v1.4.0-flannel1"
    metrics_server: str = "registry.k8s.io/metrics-server/metrics-server:v0.7.0"


class SSHDefaults(BaseModel):
    connect_timeout: int = Field(default=10, description="SSH connection timeout in seconds")
    command_timeout: int = Field(default=600, description="SSH command execution timeout in seconds")


class NodeReadyConfig(BaseModel):
    poll_interval: float = Field(default=5.0, description="Seconds between node Ready checks")
    timeout: float = Field(default=300.0, description="Seconds to wait for a node to become Ready")

    @field_validator("poll_interval", "timeout")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class CniConfig(BaseModel):
    bridge: str = Field(default="cni0", description="Bridge the dke-cni plugin attaches pods to")
    conf_dir: str = "/etc/cni/net.d"
    bin_dir: str = "/opt/cni/bin"
    plugins_url: str = "https://github.com/containernetworking/plugins/releases/download/v1.4.0/cni-plugins-linux-{arch}-v1.4.0.tgz"


class PackagesConfig(BaseModel):
    """Where node binaries are downloaded from."""
    binaries_url: str = "https://dl.k8s.io/release/v{version}/bin/linux/{arch}"
    arch: str = "amd64"
    containerd_package: str = "containerd"


class ControlPlaneConfig(BaseModel):
    replicas: int = Field(default=1, ge=1)
    apiserver_node_port: Optional[int] = Field(default=None, description="NodePort exposing the API server")


class EtcdConfig(BaseModel):
    """External etcd shared by hosted API servers; each cluster gets its own key prefix."""
    servers: List[str] = Field(default_factory=lambda: ["http://etcd-client.kube-system:2379"])
    prefix: str = "/registry"


class ProviderConfig(BaseModel):
    """Provisioner configuration."""
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    ssh: SSHDefaults = Field(default_factory=SSHDefaults)
    node_ready: NodeReadyConfig = Field(default_factory=NodeReadyConfig)
    cni: CniConfig = Field(default_factory=CniConfig)
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    control_plane: ControlPlaneConfig = Field(default_factory=ControlPlaneConfig)
    etcd: EtcdConfig = Field(default_factory=EtcdConfig)
    kubernetes_versions: List[str] = Field(default_factory=lambda: ["1.27.10", "1.28.6", "1.29.1"])
    cluster_domain: str = "cluster.local"

    def need_set_hosts(self) -> bool:
        """Registry host entries are only written for a private registry."""
        return bool(self.registry.domain and self.registry.ip)

    def image(self, component: str, version: str) -> str:
        return f"{self.registry.prefix}/{component}:v{version.lstrip('v')}"

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> "ProviderConfig":
        """Load configuration from ``config_path`` or the default locations."""
        data = {}
        if config_path:
            path = Path(config_path).expanduser().absolute()
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            data = cls._load_config_file(path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    data = cls._load_config_file(path)
                    break
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid provider configuration: {e}")

    @classmethod
    def _load_config_file(cls, path: Path) -> dict:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        logger.debug(f"Loaded provider config from {path}")
        return data

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False)


_config: Optional[ProviderConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> ProviderConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ProviderConfig.load(config_path)
    return _config


def set_config(config: Optional[ProviderConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
