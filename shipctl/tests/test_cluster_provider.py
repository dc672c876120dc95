import pytest

from shipctl.errors import ConfigurationError
from shipctl.models import ClusterRecord, ConditionStatus
from shipctl.modules.provider.cluster import ClusterProvider
from shipctl.modules.provider.pipeline import PhaseContext
from shipctl.tests.conftest import FakeClusterManager, FakeStore, cluster_data, fixed_ids


def test_pass_builds_control_plane_and_addons(issued_record, provider_config, fake_store):
    manager = FakeClusterManager()
    provider = ClusterProvider(provider_config, fake_store, manager, ids=fixed_ids())
    provider.on_create(issued_record)

    assert issued_record.status.phase == "Running"
    assert [c.type for c in provider.conditions(issued_record)] == [
        "EnsureComplete", "EnsureCerts", "EnsureKubeconfig",
        "EnsureKubeMaster", "EnsureExtKubeconfig", "EnsureAddons",
    ]
    assert all(c.reason == "Succeeded" for c in provider.conditions(issued_record))
    assert fake_store.get("Deployment", "demo-ns", "kube-apiserver") is not None
    assert manager.store.get("Service", "kube-system", "kube-dns") is not None


def test_token_survives_repeated_passes(issued_record, provider_config):
    provider = ClusterProvider(provider_config, FakeStore(), FakeClusterManager(), ids=fixed_ids(50))
    token = issued_record.credential.token
    provider.on_create(issued_record)
    provider.on_create(issued_record)
    assert issued_record.credential.token == token


def test_addons_skipped_while_cluster_not_ready(issued_record, provider_config, not_ready_manager):
    provider = ClusterProvider(provider_config, FakeStore(), not_ready_manager)
    provider.on_create(issued_record)
    report = {c.type: c for c in provider.conditions(issued_record)}
    assert issued_record.status.phase == "Running"
    assert report["EnsureAddons"].reason == "Skipped"
    assert report["EnsureAddons"].status == ConditionStatus.TRUE


def test_failed_completion_marks_cluster_failed(provider_config):
    data = cluster_data()
    data["spec"]["cluster_cidr"] = "10.0.0.0/24"
    record = ClusterRecord.model_validate(data)
    provider = ClusterProvider(provider_config, FakeStore(), FakeClusterManager())
    with pytest.raises(ConfigurationError) as exc:
        provider.on_create(record, PhaseContext())
    assert exc.value.phase == "EnsureComplete"
    assert record.status.phase == "Failed"
    report = {c.type: c.status for c in provider.conditions(record)}
    assert report["EnsureComplete"] == ConditionStatus.FALSE
    assert report["EnsureCerts"] == ConditionStatus.UNKNOWN


def test_force_certs_option_reissues(issued_record, provider_config):
    provider = ClusterProvider(provider_config, FakeStore(), FakeClusterManager())
    old_ca = issued_record.credential.ca_cert
    provider.on_create(issued_record, PhaseContext(options={"force_certs": True}))
    assert issued_record.credential.ca_cert != old_ca


def test_pass_records_conditions_on_the_record(issued_record, provider_config):
    provider = ClusterProvider(provider_config, FakeStore(), FakeClusterManager())
    provider.on_create(issued_record)
    recorded = [c.type for c in issued_record.status.conditions]
    assert recorded == [
        "EnsureComplete", "EnsureCerts", "EnsureKubeconfig",
        "EnsureKubeMaster", "EnsureExtKubeconfig", "EnsureAddons",
    ]
