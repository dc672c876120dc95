import pytest
from typer.testing import CliRunner

from shipctl import registry
from shipctl.cli import app
from shipctl.config import Config

runner = CliRunner()

CLUSTER_YAML = """
name: demo
spec:
  version: 1.28.6
  cluster_cidr: 10.0.0.0/16
  properties:
    max_node_pod_num: 64
    max_cluster_service_num: 4096
  machines:
    - ip: 10.0.0.11
    - ip: 10.0.0.12
"""


@pytest.fixture
def registry_file(tmp_path, monkeypatch):
    path = tmp_path / "registry.json"
    monkeypatch.setattr(Config, "REGISTRY_PATH", str(path))
    return path


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "cluster" in result.stdout
    assert "machine" in result.stdout


def test_cluster_commands_exist():
    result = runner.invoke(app, ["cluster", "--help"])
    for command in ("derive", "provision", "endpoint", "conditions", "nodes"):
        assert command in result.stdout


def test_machine_provision_help():
    result = runner.invoke(app, ["machine", "provision", "--help"])
    assert "--parallel" in result.stdout
    assert "--reset" in result.stdout


def test_derive_registers_cluster(tmp_path, registry_file):
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML)
    result = runner.invoke(app, ["cluster", "derive", "-f", str(cluster_file)])
    assert result.exit_code == 0, result.stdout
    assert "10.0.240.0/20" in result.stdout
    token = registry.get_cluster("demo").credential.token

    runner.invoke(app, ["cluster", "derive", "-f", str(cluster_file)])
    assert registry.get_cluster("demo").credential.token == token


def test_derive_rejects_bad_cidr(tmp_path, registry_file):
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML.replace("10.0.0.0/16", "10.0.0.0/24"))
    result = runner.invoke(app, ["cluster", "derive", "-f", str(cluster_file)])
    assert result.exit_code == 1
    assert not registry_file.exists()


def test_conditions_and_endpoint(tmp_path, registry_file):
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML)
    runner.invoke(app, ["cluster", "derive", "-f", str(cluster_file)])

    result = runner.invoke(app, ["cluster", "conditions", "-n", "demo"])
    assert result.exit_code == 0
    assert "EnsureKubeMaster" in result.stdout

    result = runner.invoke(app, ["cluster", "endpoint", "-n", "demo"])
    assert result.stdout.strip() in {"https://10.0.0.11:6443", "https://10.0.0.12:6443"}

    result = runner.invoke(app, ["machine", "conditions", "-c", "demo", "--ip", "10.0.0.12"])
    assert result.exit_code == 0
    assert "EnsureJoinNode" in result.stdout


def test_unknown_cluster(registry_file):
    result = runner.invoke(app, ["cluster", "endpoint", "-n", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.stdout
