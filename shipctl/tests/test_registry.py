import pytest

from shipctl import registry
from shipctl.errors import ConfigurationError
from shipctl.logging import redact_sensitive_data
from shipctl.models import ClusterRecord
from shipctl.tests.conftest import cluster_data


def test_save_and_load(tmp_path, completed_record):
    path = tmp_path / "registry.json"
    registry.save_cluster(completed_record, path)
    loaded = registry.get_cluster("demo", path)
    assert loaded.credential.token == completed_record.credential.token
    assert loaded.status.addresses == completed_record.status.addresses
    assert [r.name for r in registry.list_clusters(path)] == ["demo"]


def test_missing_cluster(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        registry.get_cluster("ghost", tmp_path / "registry.json")


def test_save_keeps_other_clusters(tmp_path):
    path = tmp_path / "registry.json"
    registry.save_cluster(ClusterRecord.model_validate(cluster_data(name="one")), path)
    registry.save_cluster(ClusterRecord.model_validate(cluster_data(name="two")), path)
    assert sorted(registry.load_registry(path)) == ["one", "two"]


def test_redaction_masks_credentials(completed_record):
    data = redact_sensitive_data(completed_record.model_dump(mode="json"))
    assert data["credential"]["token"] == "***REDACTED***"
    assert data["credential"]["bootstrap_token"] == "***REDACTED***"
    assert data["spec"]["cluster_cidr"] == "10.0.0.0/16"
