"""Addons installed into a provisioned cluster.

Each addon module exposes ``build(config, record) -> list`` returning the
manifests to reconcile, in apply order.
"""
import logging

from shipctl.modules.addons import bootstrap, coredns, flannel, kubeproxy, metrics_server
from shipctl.modules.reconcile import ensure_all

logger = logging.getLogger("shipctl.addons")

ADDONS = [
    ("bootstrap", bootstrap.build),
    ("kube-proxy", kubeproxy.build),
    ("coredns", coredns.build),
    ("flannel", flannel.build),
    ("metrics-server", metrics_server.build),
]


def ensure_addons(store, config, record) -> dict:
    """Reconcile every addon against the target cluster's store.

    Returns:
        Map of addon name to the actions taken
    """
    results = {}
    for name, build in ADDONS:
        objects = build(config, record)
        if not objects:
            logger.debug(f"Addon {name} skipped for {record.name}")
            continue
        results[name] = ensure_all(store, objects)
        logger.info(f"✅ Addon {name} ensured on {record.name}")
    return results
