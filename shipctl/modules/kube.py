"""Kubernetes API access for the management cluster and provisioned clusters."""
import hashlib
import logging
import os
import random
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, ResourceNotFoundError

from shipctl.errors import ConfigurationError, ConflictError, NotReadyError
from shipctl.models import ClusterRecord, Taint
from shipctl.modules.endpoint import get_master_endpoint
from shipctl.modules.kinds import kind_info, object_key

logger = logging.getLogger("shipctl.kube")

ADMIN_KUBECONFIG = "admin.conf"
EXTERNAL_ADMIN_KUBECONFIG = "external-admin.conf"


def load_kubeconfig(path: str = None) -> client.ApiClient:
    """
    Build an API client for the management cluster.

    Uses the KUBECONFIG_CONTENT env var when set (CI), then ``path``, then
    the default kubeconfig location.
    """
    if "KUBECONFIG_CONTENT" in os.environ:
        data = yaml.safe_load(os.environ["KUBECONFIG_CONTENT"])
        return config.new_client_from_config_dict(data)

    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise ConfigurationError(f"❌ Kubeconfig not found: {resolved}")
        return config.new_client_from_config(config_file=str(resolved))

    try:
        return config.new_client_from_config()
    except ConfigException as e:
        raise ConfigurationError(f"No usable kubeconfig: {e}")


def _status(e: Exception) -> Optional[int]:
    return getattr(e, "status", None)


class KubeStore:
    """Get/list/create/update of manifest dicts against one API server."""

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self._dynamic = None
        self._lock = threading.Lock()

    @property
    def dynamic(self) -> DynamicClient:
        with self._lock:
            if self._dynamic is None:
                self._dynamic = DynamicClient(self.api_client)
            return self._dynamic

    def _resource(self, kind: str):
        info = kind_info(kind)
        try:
            return self.dynamic.resources.get(api_version=info.api_version, kind=info.kind)
        except ResourceNotFoundError as e:
            raise ConfigurationError(f"{info.api_version}/{info.kind} is not served by the cluster: {e}")

    def get(self, kind: str, namespace: Optional[str], name: str) -> Optional[dict]:
        """Return the live object or None when it does not exist."""
        resource = self._resource(kind)
        try:
            found = resource.get(name=name, namespace=namespace)
        except (ApiException, DynamicApiError) as e:
            if _status(e) == 404:
                return None
            raise
        return found.to_dict()

    def list(self, kind: str, namespace: Optional[str] = None) -> List[dict]:
        resource = self._resource(kind)
        return [item.to_dict() for item in resource.get(namespace=namespace).items]

    def create(self, obj: dict) -> dict:
        kind, namespace, name = object_key(obj)
        try:
            return self._resource(kind).create(body=obj, namespace=namespace).to_dict()
        except (ApiException, DynamicApiError) as e:
            if _status(e) == 409:
                raise ConflictError(f"{kind} {namespace}/{name} already exists")
            raise

    def update(self, obj: dict) -> dict:
        kind, namespace, name = object_key(obj)
        try:
            return self._resource(kind).replace(body=obj, name=name, namespace=namespace).to_dict()
        except (ApiException, DynamicApiError) as e:
            if _status(e) == 409:
                raise ConflictError(f"{kind} {namespace}/{name} was modified concurrently")
            raise


class ClusterContext:
    """Clients bound to one provisioned cluster."""

    def __init__(self, name: str, api_client: client.ApiClient):
        self.name = name
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.store = KubeStore(api_client)


def _default_probe(api_client: client.ApiClient) -> None:
    client.VersionApi(api_client).get_code(_request_timeout=5)


class ClusterManager:
    """Cache of clients for provisioned clusters, built from their admin kubeconfig.

    ``get`` raises NotReadyError while the cluster has no kubeconfig yet or
    its API does not answer, and ConfigurationError when the stored
    kubeconfig is malformed.
    """

    def __init__(self, client_factory: Optional[Callable[[dict], client.ApiClient]] = None,
                 probe: Optional[Callable[[client.ApiClient], None]] = None):
        self._client_factory = client_factory or config.new_client_from_config_dict
        self._probe = probe or _default_probe
        self._clusters: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def _kubeconfig(self, record: ClusterRecord) -> dict:
        credential = record.credential
        raw = credential.ext_data.get(EXTERNAL_ADMIN_KUBECONFIG)
        override = None
        if not raw:
            raw = credential.kubeconfigs.get(ADMIN_KUBECONFIG)
            if raw and record.status.addresses:
                override = get_master_endpoint(record.status.addresses, random.Random(record.name))
        if not raw:
            raise NotReadyError(f"cluster {record.name} has no admin kubeconfig yet")
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"admin kubeconfig of cluster {record.name} is not valid YAML: {e}")
        if not isinstance(data, dict) or not data.get("clusters"):
            raise ConfigurationError(f"admin kubeconfig of cluster {record.name} has no clusters")
        if override:
            for entry in data["clusters"]:
                entry.setdefault("cluster", {})["server"] = override
        return data

    def get(self, record: ClusterRecord) -> ClusterContext:
        data = self._kubeconfig(record)
        digest = hashlib.sha256(yaml.safe_dump(data, sort_keys=True).encode()).hexdigest()
        with self._lock:
            cached = self._clusters.get(record.name)
            if cached and cached[0] == digest:
                return cached[1]
        try:
            api_client = self._client_factory(data)
        except (ConfigException, KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"cannot build client for cluster {record.name}: {e}")
        try:
            self._probe(api_client)
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
            raise NotReadyError(f"cluster {record.name} API is not reachable: {e}")
        ctx = ClusterContext(record.name, api_client)
        with self._lock:
            self._clusters[record.name] = (digest, ctx)
        return ctx

    def forget(self, name: str) -> None:
        with self._lock:
            self._clusters.pop(name, None)


def mark_node(core_v1: client.CoreV1Api, node_name: str, labels: Dict[str, str], taints: List[Taint]) -> None:
    """Merge labels and taints onto a node."""
    node = core_v1.read_node(node_name)
    current = [
        {"key": t.key, "value": t.value, "effect": t.effect}
        for t in (node.spec.taints or [])
    ]
    present = {(t["key"], t["effect"]) for t in current}
    for taint in taints:
        if (taint.key, taint.effect) not in present:
            current.append({"key": taint.key, "value": taint.value, "effect": taint.effect})
    body = {"metadata": {"labels": dict(labels)}, "spec": {"taints": current}}
    core_v1.patch_node(node_name, body)
    logger.info(f"🏷️  Marked node {node_name} with {len(labels)} label(s), {len(taints)} taint(s)")


def node_is_ready(core_v1: client.CoreV1Api, node_name: str) -> bool:
    """True when the node reports condition Ready=True. Lookup errors count as not ready."""
    try:
        node = core_v1.read_node(node_name)
    except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
        logger.debug(f"Node {node_name} not readable yet: {e}")
        return False
    for condition in (node.status.conditions or []) if node.status else []:
        if condition.type == "Ready" and condition.status == "True":
            return True
    return False


def count_nodes(core_v1: client.CoreV1Api) -> Dict[str, int]:
    """Count masters and workers by role label."""
    masters = workers = 0
    for node in core_v1.list_node().items:
        labels = node.metadata.labels or {}
        if "node-role.kubernetes.io/master" in labels or "node-role.kubernetes.io/control-plane" in labels:
            masters += 1
        else:
            workers += 1
    return {"masters": masters, "workers": workers, "total": masters + workers}
