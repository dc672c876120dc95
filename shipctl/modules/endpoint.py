"""API server endpoint selection."""
import random
from typing import List, Optional

from shipctl.errors import NoAddressError
from shipctl.models import AddressType, ClusterAddress, ClusterRecord, DEFAULT_API_PORT


def build_apiserver_endpoint(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"https://{host}:{port}"


def get_bind_port(record: ClusterRecord) -> int:
    """Port the API server is reached on from nodes."""
    third_party = record.third_party_ha
    if third_party and third_party.vport:
        return third_party.vport
    return DEFAULT_API_PORT


def get_master_endpoint(addresses: List[ClusterAddress], rng: Optional[random.Random] = None) -> str:
    """Pick the endpoint nodes should talk to.

    Advertise addresses are preferred over Real ones; within the chosen group
    one address is picked uniformly at random.

    Args:
        addresses: Known cluster addresses
        rng: Random source (default: module level ``random``)

    Returns:
        Endpoint URL, e.g. ``https://10.0.0.1:6443``

    Raises:
        NoAddressError: If neither group has an address
    """
    rng = rng or random
    advertise = [a for a in addresses if a.type == AddressType.ADVERTISE]
    real = [a for a in addresses if a.type == AddressType.REAL]
    candidates = advertise or real
    if not candidates:
        raise NoAddressError("no advertise or internal address for the cluster")
    address = rng.choice(candidates)
    return build_apiserver_endpoint(address.host, address.port)


def get_join_endpoint(record: ClusterRecord, rng: Optional[random.Random] = None) -> str:
    """Endpoint used by joining nodes: first public alternative name, else selection."""
    if record.spec.public_alternative_names:
        return build_apiserver_endpoint(record.spec.public_alternative_names[0], get_bind_port(record))
    return get_master_endpoint(record.status.addresses, rng)


def get_stable_endpoint(record: ClusterRecord) -> str:
    """Join endpoint picked with an RNG seeded by the cluster name.

    Used for endpoints written into reconciled objects so repeated passes
    render the same value.
    """
    return get_join_endpoint(record, random.Random(record.name))
