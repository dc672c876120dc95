"""CIDR arithmetic used to derive cluster networking."""
import ipaddress
from typing import Union

from shipctl.errors import ConfigurationError

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_cidr(cidr: str) -> IPNetwork:
    """Parse a CIDR string, raising ConfigurationError when malformed."""
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid CIDR {cidr!r}: {e}")


def ceil_log2(n: int) -> int:
    """Smallest k with 2**k >= n, for n >= 1."""
    return (n - 1).bit_length()


def compute_service_cidr(cluster_cidr: str, max_services: int) -> str:
    """Carve the service CIDR out of the top of the cluster CIDR.

    The block is the last ``2**ceil(log2(max_services))`` addresses of the
    cluster CIDR.

    Args:
        cluster_cidr: Cluster-wide CIDR, e.g. ``10.0.0.0/16``
        max_services: Number of service addresses required

    Returns:
        Service CIDR string

    Raises:
        ConfigurationError: If the capacity cannot fit strictly inside the cluster CIDR
    """
    if max_services <= 0:
        raise ConfigurationError(f"max cluster service num must be positive, got {max_services}")
    network = parse_cidr(cluster_cidr)
    host_bits = ceil_log2(max_services)
    prefix = network.max_prefixlen - host_bits
    if prefix <= network.prefixlen:
        raise ConfigurationError(
            f"cluster CIDR {network} is too small for {max_services} services"
        )
    start = int(network.broadcast_address) + 1 - 2 ** host_bits
    return str(type(network)((start, prefix)))


def compute_node_cidr_mask_size(cluster_cidr: str, max_pods: int) -> int:
    """Prefix length of the per-node pod subnet holding ``max_pods`` addresses.

    Raises:
        ConfigurationError: If the node subnet would not be strictly smaller than the cluster CIDR
    """
    if max_pods <= 0:
        raise ConfigurationError(f"max node pod num must be positive, got {max_pods}")
    network = parse_cidr(cluster_cidr)
    mask_size = network.max_prefixlen - ceil_log2(max_pods)
    if mask_size <= network.prefixlen:
        raise ConfigurationError(
            f"node CIDR mask /{mask_size} does not fit inside cluster CIDR {network}"
        )
    return mask_size


def get_indexed_ip(cidr: str, index: int) -> str:
    """Return the address at ``index`` within ``cidr``.

    The network and broadcast addresses are never returned.

    Raises:
        ConfigurationError: If the CIDR has no usable address at that index
    """
    network = parse_cidr(cidr)
    last = network.num_addresses - 1
    if index <= 0 or index >= last:
        raise ConfigurationError(f"CIDR {network} has no address at index {index}")
    return str(network.network_address + index)


def get_node_subnet(cluster_cidr: str, mask_size: int, index: int) -> str:
    """Return the ``index``-th node pod subnet of the cluster CIDR."""
    network = parse_cidr(cluster_cidr)
    if mask_size <= network.prefixlen or mask_size > network.max_prefixlen:
        raise ConfigurationError(f"invalid node mask /{mask_size} for {network}")
    count = 2 ** (mask_size - network.prefixlen)
    if index < 0 or index >= count:
        raise ConfigurationError(f"no node subnet {index} in {network} at /{mask_size}")
    size = 2 ** (network.max_prefixlen - mask_size)
    start = network.network_address + index * size
    return f"{start}/{mask_size}"


def cidr_contains(cidr: str, address: str) -> bool:
    return ipaddress.ip_address(address) in parse_cidr(cidr)
