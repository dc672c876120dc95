"""Idempotent "ensure present" for declarative objects."""
import copy
import hashlib
import json
import logging
from enum import Enum
from typing import Iterable, List

from shipctl.modules.kinds import COMPARE_DATA, COMPARE_HASH, COMPARE_RBAC, kind_info, object_key

logger = logging.getLogger("shipctl.reconcile")

HASH_ANNOTATION = "shipctl.io/desired-hash"
RBAC_FIELDS = ("rules", "subjects", "roleRef", "aggregationRule")


class Action(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def fingerprint(obj: dict) -> str:
    """SHA-256 over the controlled fields of an object."""
    metadata = obj.get("metadata") or {}
    controlled = {k: v for k, v in obj.items() if k not in ("metadata", "status")}
    controlled["labels"] = metadata.get("labels") or {}
    annotations = dict(metadata.get("annotations") or {})
    annotations.pop(HASH_ANNOTATION, None)
    controlled["annotations"] = annotations
    payload = json.dumps(controlled, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _annotations(obj: dict) -> dict:
    return (obj.get("metadata") or {}).get("annotations") or {}


def diverges(desired: dict, live: dict) -> bool:
    """Whether ``live`` differs from ``desired`` under the kind's comparison rule."""
    info = kind_info(desired["kind"])
    if info.compare == COMPARE_DATA:
        # only declared keys are managed; controllers may add their own
        live_data = live.get("data") or {}
        return any(live_data.get(k) != v for k, v in (desired.get("data") or {}).items())
    if info.compare == COMPARE_RBAC:
        return any((desired.get(f) or None) != (live.get(f) or None) for f in RBAC_FIELDS)
    return _annotations(desired).get(HASH_ANNOTATION) != _annotations(live).get(HASH_ANNOTATION)


def _prepare(obj: dict) -> dict:
    desired = copy.deepcopy(obj)
    if kind_info(desired["kind"]).compare == COMPARE_HASH:
        metadata = desired.setdefault("metadata", {})
        metadata.setdefault("annotations", {})[HASH_ANNOTATION] = fingerprint(desired)
    return desired


def _carry_over(desired: dict, live: dict) -> None:
    live_meta = live.get("metadata") or {}
    desired["metadata"]["resourceVersion"] = live_meta.get("resourceVersion")
    if kind_info(desired["kind"]).compare == COMPARE_DATA:
        desired["data"] = {**(live.get("data") or {}), **(desired.get("data") or {})}
    if desired["kind"] == "Service":
        live_spec = live.get("spec") or {}
        spec = desired.setdefault("spec", {})
        for field in ("clusterIP", "clusterIPs"):
            if live_spec.get(field) and not spec.get(field):
                spec[field] = live_spec[field]


def ensure_present(store, obj: dict) -> Action:
    """Create ``obj`` if absent, update it if it diverged, otherwise do nothing.

    Args:
        store: Declarative store with get/create/update
        obj: Desired manifest

    Returns:
        The action taken

    Raises:
        ConfigurationError: If the kind is not managed or identity fields are missing
        ConflictError: If the store rejects the write as conflicting
    """
    kind, namespace, name = object_key(obj)
    desired = _prepare(obj)
    ref = f"{kind} {namespace + '/' if namespace else ''}{name}"

    live = store.get(kind, namespace, name)
    if live is None:
        store.create(desired)
        logger.info(f"📄 Created {ref}")
        return Action.CREATED

    if not diverges(desired, live):
        logger.debug(f"{ref} is up to date")
        return Action.UNCHANGED

    _carry_over(desired, live)
    store.update(desired)
    logger.info(f"↪️ Updated {ref}")
    return Action.UPDATED


def ensure_all(store, objects: Iterable[dict]) -> List[Action]:
    """Apply ``ensure_present`` to each object in order, stopping at the first error."""
    return [ensure_present(store, obj) for obj in objects]
