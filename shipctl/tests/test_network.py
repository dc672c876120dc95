import pytest

from shipctl.errors import ConfigurationError
from shipctl.utils.network import (
    ceil_log2,
    cidr_contains,
    compute_node_cidr_mask_size,
    compute_service_cidr,
    get_indexed_ip,
    get_node_subnet,
    parse_cidr,
)


@pytest.mark.parametrize("n,expected", [(1, 0), (2, 1), (3, 2), (64, 6), (65, 7), (4096, 12)])
def test_ceil_log2(n, expected):
    assert ceil_log2(n) == expected


def test_service_cidr_is_top_block_of_cluster_cidr():
    assert compute_service_cidr("10.0.0.0/16", 4096) == "10.0.240.0/20"
    assert compute_service_cidr("10.0.0.0/16", 256) == "10.0.255.0/24"


def test_service_cidr_rounds_capacity_up():
    assert compute_service_cidr("172.16.0.0/12", 1000) == "172.31.252.0/22"


def test_service_cidr_ipv6():
    assert compute_service_cidr("fd00::/48", 65536) == "fd00::ffff:ffff:ffff:ffff:0/112"


def test_service_cidr_must_be_strictly_inside():
    with pytest.raises(ConfigurationError):
        compute_service_cidr("10.0.0.0/24", 256)
    with pytest.raises(ConfigurationError):
        compute_service_cidr("10.0.0.0/24", 0)


def test_node_mask_size():
    assert compute_node_cidr_mask_size("10.0.0.0/16", 64) == 26
    assert compute_node_cidr_mask_size("10.0.0.0/16", 110) == 25
    with pytest.raises(ConfigurationError):
        compute_node_cidr_mask_size("10.0.0.0/24", 256)


def test_indexed_ip():
    assert get_indexed_ip("10.0.240.0/20", 10) == "10.0.240.10"
    assert get_indexed_ip("10.0.240.0/20", 1) == "10.0.240.1"


@pytest.mark.parametrize("index", [0, 3, -1])
def test_indexed_ip_out_of_range(index):
    with pytest.raises(ConfigurationError):
        get_indexed_ip("10.0.0.0/30", index)


def test_node_subnet():
    assert get_node_subnet("10.0.0.0/16", 26, 0) == "10.0.0.0/26"
    assert get_node_subnet("10.0.0.0/16", 26, 2) == "10.0.0.128/26"
    with pytest.raises(ConfigurationError):
        get_node_subnet("10.0.0.0/16", 26, 1024)


def test_invalid_cidr():
    with pytest.raises(ConfigurationError, match="invalid CIDR"):
        parse_cidr("10.0.0.300/16")


def test_cidr_contains():
    assert cidr_contains("10.0.240.0/20", "10.0.240.10")
    assert not cidr_contains("10.0.240.0/20", "10.0.0.10")
