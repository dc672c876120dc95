"""Builders for the manifest dicts handed to the reconciler."""
import base64
from typing import Dict, List, Optional

KUBE_SYSTEM = "kube-system"
KUBE_PUBLIC = "kube-public"


def metadata(name: str, namespace: Optional[str] = None, labels: Optional[Dict[str, str]] = None,
             annotations: Optional[Dict[str, str]] = None) -> dict:
    meta = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    if labels:
        meta["labels"] = dict(labels)
    if annotations:
        meta["annotations"] = dict(annotations)
    return meta


def config_map(name: str, namespace: str, data: Dict[str, str], labels: Optional[Dict[str, str]] = None) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": metadata(name, namespace, labels),
        "data": dict(data),
    }


def secret(name: str, namespace: str, data: Dict[str, str], labels: Optional[Dict[str, str]] = None,
           secret_type: str = "Opaque") -> dict:
    """Secret with ``data`` given as plain strings; values are base64-encoded here."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": secret_type,
        "metadata": metadata(name, namespace, labels),
        "data": {k: base64.b64encode(v.encode()).decode() for k, v in data.items()},
    }


def service_account(name: str, namespace: str, labels: Optional[Dict[str, str]] = None) -> dict:
    return {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": metadata(name, namespace, labels)}


def cluster_role(name: str, rules: List[dict], labels: Optional[Dict[str, str]] = None) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": metadata(name, labels=labels),
        "rules": rules,
    }


def role(name: str, namespace: str, rules: List[dict], labels: Optional[Dict[str, str]] = None) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "Role",
        "metadata": metadata(name, namespace, labels),
        "rules": rules,
    }


def role_binding(name: str, namespace: Optional[str], role_kind: str, role_name: str,
                 subjects: List[dict], labels: Optional[Dict[str, str]] = None) -> dict:
    """RoleBinding, or ClusterRoleBinding when ``namespace`` is None."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding" if namespace else "ClusterRoleBinding",
        "metadata": metadata(name, namespace, labels),
        "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": role_kind, "name": role_name},
        "subjects": subjects,
    }


def sa_subject(name: str, namespace: str) -> dict:
    return {"kind": "ServiceAccount", "name": name, "namespace": namespace}


def container(name: str, image: str, command: Optional[List[str]] = None, args: Optional[List[str]] = None,
              ports: Optional[List[dict]] = None, mounts: Optional[List[dict]] = None, **extra) -> dict:
    spec = {"name": name, "image": image, "imagePullPolicy": "IfNotPresent"}
    if command:
        spec["command"] = command
    if args:
        spec["args"] = args
    if ports:
        spec["ports"] = ports
    if mounts:
        spec["volumeMounts"] = mounts
    spec.update(extra)
    return spec


def pod_template(labels: Dict[str, str], containers: List[dict], volumes: Optional[List[dict]] = None,
                 **pod_spec) -> dict:
    spec = {"containers": containers}
    if volumes:
        spec["volumes"] = volumes
    spec.update(pod_spec)
    return {"metadata": {"labels": dict(labels)}, "spec": spec}


def deployment(name: str, namespace: str, labels: Dict[str, str], template: dict, replicas: int = 1) -> dict:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": metadata(name, namespace, labels),
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": dict(labels)},
            "template": template,
        },
    }


def daemon_set(name: str, namespace: str, labels: Dict[str, str], template: dict) -> dict:
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": metadata(name, namespace, labels),
        "spec": {
            "selector": {"matchLabels": dict(labels)},
            "updateStrategy": {"type": "RollingUpdate"},
            "template": template,
        },
    }


def service(name: str, namespace: str, selector: Dict[str, str], ports: List[dict],
            labels: Optional[Dict[str, str]] = None, service_type: str = "ClusterIP",
            cluster_ip: Optional[str] = None) -> dict:
    spec = {"type": service_type, "selector": dict(selector), "ports": ports}
    if cluster_ip:
        spec["clusterIP"] = cluster_ip
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata(name, namespace, labels),
        "spec": spec,
    }


def secret_volume(name: str, secret_name: str) -> dict:
    return {"name": name, "secret": {"secretName": secret_name}}


def config_map_volume(name: str, config_map_name: str) -> dict:
    return {"name": name, "configMap": {"name": config_map_name}}


def host_path_volume(name: str, path: str, path_type: Optional[str] = None) -> dict:
    host_path = {"path": path}
    if path_type:
        host_path["type"] = path_type
    return {"name": name, "hostPath": host_path}


def mount(name: str, path: str, read_only: bool = False) -> dict:
    m = {"name": name, "mountPath": path}
    if read_only:
        m["readOnly"] = True
    return m
