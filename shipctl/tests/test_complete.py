import pytest

from shipctl.errors import ConfigurationError
from shipctl.models import AddressType, ClusterRecord, Condition
from shipctl.modules.complete import ensure_cluster_complete, regenerate_credential
from shipctl.tests.conftest import cluster_data, fixed_ids
from shipctl.utils.network import cidr_contains


def test_scenario_derivation(record):
    ensure_cluster_complete(record, fixed_ids())
    status = record.status
    assert status.version == "1.28.6"
    assert status.service_cidr == "10.0.240.0/20"
    assert status.node_cidr_mask_size == 26
    assert status.dns_ip == "10.0.240.10"
    assert cidr_contains(status.service_cidr, status.dns_ip)
    assert [(a.type, a.host, a.port) for a in status.addresses] == [
        (AddressType.REAL, "10.0.0.11", 6443),
        (AddressType.REAL, "10.0.0.12", 6443),
        (AddressType.REAL, "10.0.0.13", 6443),
    ]
    credential = record.credential
    assert credential.token and credential.bootstrap_token and credential.certificate_key


def test_declared_service_cidr_is_kept(record):
    record.spec.service_cidr = "10.96.0.0/12"
    ensure_cluster_complete(record, fixed_ids())
    assert record.status.service_cidr == "10.96.0.0/12"
    assert record.status.dns_ip == "10.96.0.10"


def test_rerun_keeps_credentials_and_addresses(record):
    ensure_cluster_complete(record, fixed_ids(1))
    token = record.credential.token
    bootstrap = record.credential.bootstrap_token
    ensure_cluster_complete(record, fixed_ids(99))
    assert record.credential.token == token
    assert record.credential.bootstrap_token == bootstrap
    assert len(record.status.addresses) == 3


def test_completion_keeps_the_live_conditions_list(record):
    conditions = record.status.conditions
    conditions.append(Condition(type="EnsureComplete"))
    ensure_cluster_complete(record, fixed_ids())
    assert record.status.conditions is conditions
    assert [c.type for c in record.status.conditions] == ["EnsureComplete"]
    assert record.status.dns_ip == "10.0.240.10"


def test_independent_derivations_share_networking_not_secrets():
    first = ensure_cluster_complete(ClusterRecord.model_validate(cluster_data()))
    second = ensure_cluster_complete(ClusterRecord.model_validate(cluster_data()))
    assert first.status.service_cidr == second.status.service_cidr
    assert first.status.addresses == second.status.addresses
    assert first.credential.token != second.credential.token
    assert first.credential.bootstrap_token != second.credential.bootstrap_token
    assert first.credential.certificate_key != second.credential.certificate_key


def test_ha_addresses():
    data = cluster_data()
    data["spec"]["features"] = {"ha": {"dke_ha": {"vip": "10.0.0.100"},
                                       "third_party_ha": {"vip": "192.168.1.10", "vport": 8443}}}
    record = ensure_cluster_complete(ClusterRecord.model_validate(data), fixed_ids())
    advertise = [(a.host, a.port) for a in record.status.addresses if a.type == AddressType.ADVERTISE]
    assert advertise == [("10.0.0.100", 6443), ("192.168.1.10", 8443)]


def test_failure_leaves_record_untouched(record):
    record.spec.properties.max_cluster_service_num = 1 << 20
    with pytest.raises(ConfigurationError):
        ensure_cluster_complete(record, fixed_ids())
    assert record.status.service_cidr is None
    assert record.status.addresses == []
    assert record.credential.token is None


def test_regenerate_credential(completed_record):
    old = completed_record.credential.model_copy(deep=True)
    completed_record.credential.kubeconfigs["admin.conf"] = "stale"
    regenerate_credential(completed_record, fixed_ids(42))
    new = completed_record.credential
    assert new.token != old.token
    assert new.bootstrap_token != old.bootstrap_token
    assert new.certificate_key != old.certificate_key
    assert new.kubeconfigs == {}


def test_invalid_cluster_name():
    with pytest.raises(ValueError):
        ClusterRecord.model_validate(cluster_data(name="Demo_Cluster"))
