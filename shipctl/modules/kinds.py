"""Registry of object kinds the provisioner manages."""
from dataclasses import dataclass
from typing import Dict

from shipctl.errors import ConfigurationError

COMPARE_DATA = "data"
COMPARE_RBAC = "rbac"
COMPARE_HASH = "hash"


@dataclass(frozen=True)
class KindInfo:
    kind: str
    api_version: str
    namespaced: bool
    compare: str


KINDS: Dict[str, KindInfo] = {
    info.kind: info
    for info in (
        KindInfo("Deployment", "apps/v1", True, COMPARE_HASH),
        KindInfo("DaemonSet", "apps/v1", True, COMPARE_HASH),
        KindInfo("Service", "v1", True, COMPARE_HASH),
        KindInfo("ServiceAccount", "v1", True, COMPARE_HASH),
        KindInfo("ConfigMap", "v1", True, COMPARE_DATA),
        KindInfo("Secret", "v1", True, COMPARE_DATA),
        KindInfo("Role", "rbac.authorization.k8s.io/v1", True, COMPARE_RBAC),
        KindInfo("RoleBinding", "rbac.authorization.k8s.io/v1", True, COMPARE_RBAC),
        KindInfo("ClusterRole", "rbac.authorization.k8s.io/v1", False, COMPARE_RBAC),
        KindInfo("ClusterRoleBinding", "rbac.authorization.k8s.io/v1", False, COMPARE_RBAC),
        KindInfo("APIService", "apiregistration.k8s.io/v1", False, COMPARE_HASH),
    )
}


def kind_info(kind: str) -> KindInfo:
    """Look up a managed kind.

    Raises:
        ConfigurationError: If the kind is not managed
    """
    try:
        return KINDS[kind]
    except KeyError:
        raise ConfigurationError(f"unsupported object kind: {kind}")


def object_key(obj: dict):
    """Identity of an object: (kind, namespace, name)."""
    info = kind_info(obj.get("kind", ""))
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise ConfigurationError(f"{info.kind} without metadata.name")
    namespace = metadata.get("namespace") if info.namespaced else None
    if info.namespaced and not namespace:
        raise ConfigurationError(f"{info.kind}/{name} requires metadata.namespace")
    return info.kind, namespace, name
