"""Derive cluster-wide facts from the declared spec.

Every step is a plain function over a :class:`ClusterRecord`. They run in a
fixed order against a deep copy and are only committed when all of them
succeed, so a failed derivation never leaves a half-filled record.
"""
import logging
from typing import Callable, List, Optional, Tuple

from shipctl.errors import ConfigurationError
from shipctl.models import AddressType, ClusterAddress, ClusterRecord, ClusterStatus, DEFAULT_API_PORT
from shipctl.utils.ids import IdGenerator, default_generator
from shipctl.utils.network import (
    compute_node_cidr_mask_size,
    compute_service_cidr,
    get_indexed_ip,
    parse_cidr,
)

logger = logging.getLogger("shipctl.complete")

DNS_IP_INDEX = 10


def complete_k8s_version(record: ClusterRecord, ids: IdGenerator) -> None:
    if not record.spec.version:
        raise ConfigurationError("cluster version is required")
    record.status.version = record.spec.version


def complete_networking(record: ClusterRecord, ids: IdGenerator) -> None:
    spec = record.spec
    props = spec.properties
    if spec.service_cidr:
        parse_cidr(spec.service_cidr)
        record.status.service_cidr = spec.service_cidr
    else:
        record.status.service_cidr = compute_service_cidr(
            spec.cluster_cidr, props.max_cluster_service_num
        )
    record.status.node_cidr_mask_size = compute_node_cidr_mask_size(
        spec.cluster_cidr, props.max_node_pod_num
    )


def complete_dns(record: ClusterRecord, ids: IdGenerator) -> None:
    if not record.status.service_cidr:
        raise ConfigurationError("service CIDR must be derived before the DNS address")
    record.status.dns_ip = get_indexed_ip(record.status.service_cidr, DNS_IP_INDEX)


def complete_addresses(record: ClusterRecord, ids: IdGenerator) -> None:
    for machine in record.spec.machines:
        record.status.add_address(
            ClusterAddress(type=AddressType.REAL, host=machine.ip, port=DEFAULT_API_PORT)
        )
    if record.dke_ha and record.dke_ha.vip:
        record.status.add_address(
            ClusterAddress(type=AddressType.ADVERTISE, host=record.dke_ha.vip, port=DEFAULT_API_PORT)
        )
    third_party = record.third_party_ha
    if third_party and third_party.vip:
        record.status.add_address(
            ClusterAddress(type=AddressType.ADVERTISE, host=third_party.vip, port=third_party.vport)
        )


def complete_credential(record: ClusterRecord, ids: IdGenerator) -> None:
    credential = record.credential
    if credential.token is None:
        credential.token = ids.token()
    if credential.bootstrap_token is None:
        credential.bootstrap_token = ids.bootstrap_token()
    if credential.certificate_key is None:
        credential.certificate_key = ids.certificate_key()


COMPLETE_STEPS: List[Tuple[str, Callable[[ClusterRecord, IdGenerator], None]]] = [
    ("version", complete_k8s_version),
    ("networking", complete_networking),
    ("dns", complete_dns),
    ("addresses", complete_addresses),
    ("credential", complete_credential),
]


def ensure_cluster_complete(record: ClusterRecord, ids: Optional[IdGenerator] = None) -> ClusterRecord:
    """Fill in derived status and credentials on ``record``.

    Existing credentials are kept. Safe to call on every pass.

    Args:
        record: Cluster record to complete in place
        ids: Generator for tokens and keys (default: system random)

    Returns:
        The same record, completed

    Raises:
        ConfigurationError: If networking or addresses cannot be derived
        CryptoError: If credential generation fails
    """
    ids = ids or default_generator
    draft = record.model_copy(deep=True)
    for name, step in COMPLETE_STEPS:
        logger.debug(f"Completing {name} for cluster {record.name}")
        step(draft, ids)

    # conditions stay on the live status; running pipelines append to that list
    for field in ClusterStatus.model_fields:
        if field != "conditions":
            setattr(record.status, field, getattr(draft.status, field))
    record.credential = draft.credential
    logger.info(f"✅ Cluster {record.name} completed: service CIDR {record.status.service_cidr}, "
                f"DNS {record.status.dns_ip}, {len(record.status.addresses)} address(es)")
    return record


def regenerate_credential(record: ClusterRecord, ids: Optional[IdGenerator] = None) -> ClusterRecord:
    """Issue new token, bootstrap token and certificate key for the cluster.

    Issued certificates and kubeconfigs embedding the old token are cleared so
    the next cluster pass reissues them.
    """
    ids = ids or default_generator
    credential = record.credential.model_copy(deep=True)
    credential.token = ids.token()
    credential.bootstrap_token = ids.bootstrap_token()
    credential.certificate_key = ids.certificate_key()
    credential.kubeconfigs = {}
    credential.ext_data = {}
    record.credential = credential
    logger.warning(f"🔑 Credentials for cluster {record.name} were regenerated")
    return record
