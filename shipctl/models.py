"""Data models for cluster and machine records."""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_API_PORT = 6443


class AddressType(str, Enum):
    """Kind of address a cluster can be reached on."""
    REAL = "Real"
    ADVERTISE = "Advertise"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class NodeRole(str, Enum):
    """Role of a machine in the cluster."""
    MASTER = "master"
    WORKER = "worker"


class HookType:
    """Keys of the ``features.hooks`` map."""
    PRE_INSTALL = "PreInstall"
    POST_INSTALL = "PostInstall"
    CNI_INSTALL = "CniInstall"


class Condition(BaseModel):
    """Outcome of one phase for a cluster or a machine."""
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def set_condition(conditions: List[Condition], condition: Condition) -> None:
    """Replace the condition of the same type, or append it."""
    for i, existing in enumerate(conditions):
        if existing.type == condition.type:
            if existing.status == condition.status:
                condition.last_transition_time = existing.last_transition_time
            conditions[i] = condition
            return
    conditions.append(condition)


def find_condition(conditions: List[Condition], condition_type: str) -> Optional[Condition]:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


class Taint(BaseModel):
    key: str
    value: str = ""
    effect: str = "NoSchedule"

    @field_validator("effect")
    @classmethod
    def check_effect(cls, v: str) -> str:
        if v not in ("NoSchedule", "PreferNoSchedule", "NoExecute"):
            raise ValueError(f"unsupported taint effect: {v}")
        return v


class MachineStatus(BaseModel):
    phase: str = "Pending"
    conditions: List[Condition] = Field(default_factory=list)


class Machine(BaseModel):
    """A host that joins a cluster over SSH."""
    ip: str
    name: Optional[str] = None
    cluster_name: Optional[str] = None
    port: int = 22
    username: str = "root"
    password: Optional[str] = None
    private_key: Optional[str] = None
    key_path: Optional[str] = None
    role: NodeRole = NodeRole.WORKER
    labels: Dict[str, str] = Field(default_factory=dict)
    taints: List[Taint] = Field(default_factory=list)
    tenant_id: str = ""
    status: MachineStatus = Field(default_factory=MachineStatus)

    @property
    def node_name(self) -> str:
        """Nodes register under their IP address."""
        return self.ip


class ClusterAddress(BaseModel):
    type: AddressType
    host: str
    port: int = DEFAULT_API_PORT


class DKEHA(BaseModel):
    """Self-managed virtual IP in front of the masters."""
    vip: str


class ThirdPartyHA(BaseModel):
    """Externally managed load balancer in front of the API servers."""
    vip: str
    vport: int = DEFAULT_API_PORT


class HAConfig(BaseModel):
    dke_ha: Optional[DKEHA] = None
    third_party_ha: Optional[ThirdPartyHA] = None


class FileSpec(BaseModel):
    src: str
    dst: str


class Features(BaseModel):
    ha: Optional[HAConfig] = None
    files: List[FileSpec] = Field(default_factory=list)
    hooks: Dict[str, str] = Field(default_factory=dict)


class ClusterProperties(BaseModel):
    max_node_pod_num: int = 256
    max_cluster_service_num: int = 256


class ClusterSpec(BaseModel):
    version: str
    cluster_cidr: str
    service_cidr: Optional[str] = None
    properties: ClusterProperties = Field(default_factory=ClusterProperties)
    machines: List[Machine] = Field(default_factory=list)
    features: Features = Field(default_factory=Features)
    public_alternative_names: List[str] = Field(default_factory=list)
    tenant_id: str = ""


class ClusterStatus(BaseModel):
    phase: str = "Initializing"
    version: Optional[str] = None
    service_cidr: Optional[str] = None
    node_cidr_mask_size: Optional[int] = None
    dns_ip: Optional[str] = None
    addresses: List[ClusterAddress] = Field(default_factory=list)
    conditions: List[Condition] = Field(default_factory=list)

    def add_address(self, address: ClusterAddress) -> bool:
        """Add an address unless an identical one is already present."""
        for existing in self.addresses:
            if (existing.type, existing.host, existing.port) == (address.type, address.host, address.port):
                return False
        self.addresses.append(address)
        return True


class ClusterCredential(BaseModel):
    """Secrets issued for a cluster. The token is immutable once set."""
    token: Optional[str] = None
    bootstrap_token: Optional[str] = None
    certificate_key: Optional[str] = None
    ca_cert: Optional[str] = None
    ca_key: Optional[str] = None
    certs_data: Dict[str, str] = Field(default_factory=dict)
    kubeconfigs: Dict[str, str] = Field(default_factory=dict)
    ext_data: Dict[str, str] = Field(default_factory=dict)


class ClusterRecord(BaseModel):
    name: str
    namespace: str = "default"
    spec: ClusterSpec
    status: ClusterStatus = Field(default_factory=ClusterStatus)
    credential: ClusterCredential = Field(default_factory=ClusterCredential)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not v or not v.replace("-", "").isalnum() or v != v.lower():
            raise ValueError(f"cluster name must be lowercase alphanumeric with dashes: {v!r}")
        return v

    @property
    def third_party_ha(self) -> Optional[ThirdPartyHA]:
        ha = self.spec.features.ha
        return ha.third_party_ha if ha else None

    @property
    def dke_ha(self) -> Optional[DKEHA]:
        ha = self.spec.features.ha
        return ha.dke_ha if ha else None

    def machine(self, ip: str) -> Optional[Machine]:
        for machine in self.spec.machines:
            if machine.ip == ip:
                return machine
        return None
