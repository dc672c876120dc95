import copy
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from shipctl.errors import ConflictError, NotReadyError, RemoteCommandError
from shipctl.models import ClusterRecord
from shipctl.modules.certs import ensure_certs
from shipctl.modules.complete import ensure_cluster_complete
from shipctl.modules.config import ProviderConfig
from shipctl.modules.kinds import object_key
from shipctl.utils.ids import IdGenerator


class FakeSSH:
    """Scripted remote shell.

    ``responses`` maps a command substring to ``(stdout, stderr, code)``; the
    first matching entry wins and unmatched commands succeed silently.
    """

    def __init__(self, host="10.0.0.11", responses=None, files=None):
        self.host = host
        self.responses = list((responses or {}).items())
        self.files = dict(files or {})
        self.commands = []
        self.copies = []

    def host_ip(self):
        return self.host

    def exec(self, command, timeout=None):
        self.commands.append(command)
        if command.startswith("test -e "):
            path = command[len("test -e "):].strip("'")
            if path in self.files:
                return "", "", 0
        if command.startswith("cat ") and command[4:] in self.files:
            return self.files[command[4:]], "", 0
        if command.startswith("rm -rf "):
            root = command[len("rm -rf "):].strip("'").rstrip("/")
            self.files = {p: c for p, c in self.files.items() if p != root and not p.startswith(root + "/")}
        for needle, response in self.responses:
            if needle in command:
                return response
        if command.startswith("test -e "):
            return "", "", 1
        return "", "", 0

    def execf(self, fmt, *args, timeout=None):
        return self.exec(fmt % args, timeout=timeout)

    def combined_output(self, command, timeout=None):
        out, err, code = self.exec(command, timeout=timeout)
        if code != 0:
            raise RemoteCommandError(command, code, err or out, host=self.host)
        return out + err

    def exists(self, path):
        _, _, code = self.execf("test -e %s", path)
        return code == 0

    def write_file(self, content, remote_path, mode=0o644):
        self.files[remote_path] = content

    def copy_file(self, local_path, remote_path, mode=None):
        self.copies.append((local_path, remote_path))

    def ran(self, needle):
        return any(needle in command for command in self.commands)


HEALTHY_NODE = {
    "uname -s": ("Linux\n", "", 0),
    "id -u": ("0\n", "", 0),
    "MemTotal": ("8000000\n", "", 0),
    "nproc": ("4\n", "", 0),
}


class FakeStore:
    """Dict-backed object store keyed by (kind, namespace, name)."""

    def __init__(self):
        self.objects = {}
        self.creates = []
        self.updates = []
        self.conflict_on = set()

    def get(self, kind, namespace, name):
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def list(self, kind, namespace=None):
        return [copy.deepcopy(o) for (k, ns, _), o in self.objects.items()
                if k == kind and (namespace is None or ns == namespace)]

    def create(self, obj):
        key = object_key(obj)
        if key in self.objects or key in self.conflict_on:
            raise ConflictError(f"{key} already exists")
        self.objects[key] = copy.deepcopy(obj)
        self.creates.append(key)
        return obj

    def update(self, obj):
        key = object_key(obj)
        if key in self.conflict_on:
            raise ConflictError(f"{key} was modified concurrently")
        self.objects[key] = copy.deepcopy(obj)
        self.updates.append(key)
        return obj


def ready_node(ready=True, labels=None):
    condition = SimpleNamespace(type="Ready", status="True" if ready else "False")
    return SimpleNamespace(
        metadata=SimpleNamespace(labels=labels or {}),
        spec=SimpleNamespace(taints=None),
        status=SimpleNamespace(conditions=[condition]),
    )


class FakeClusterManager:
    """Stands in for ClusterManager; ``error`` is raised from ``get`` when set."""

    def __init__(self, error=None):
        self.error = error
        self.core_v1 = MagicMock()
        self.core_v1.read_node.return_value = ready_node()
        self.store = FakeStore()

    def get(self, record):
        if self.error:
            raise self.error
        return SimpleNamespace(name=record.name, core_v1=self.core_v1, store=self.store)


def fixed_ids(seed=1):
    counter = {"n": seed}

    def rand_bytes(n):
        counter["n"] += 1
        return bytes((counter["n"] * 31 + i * 7) % 256 for i in range(n))

    return IdGenerator(rand_bytes=rand_bytes, now=lambda: 1700000000)


def cluster_data(**overrides):
    data = {
        "name": "demo",
        "namespace": "demo-ns",
        "spec": {
            "version": "1.28.6",
            "cluster_cidr": "10.0.0.0/16",
            "properties": {"max_node_pod_num": 64, "max_cluster_service_num": 4096},
            "machines": [
                {"ip": "10.0.0.11"},
                {"ip": "10.0.0.12"},
                {"ip": "10.0.0.13"},
            ],
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def record():
    return ClusterRecord.model_validate(cluster_data())


@pytest.fixture
def completed_record(record):
    return ensure_cluster_complete(record, fixed_ids())


@pytest.fixture(scope="session")
def _issued_record():
    record = ensure_cluster_complete(ClusterRecord.model_validate(cluster_data()), fixed_ids())
    ensure_certs(record)
    return record


@pytest.fixture
def issued_record(_issued_record):
    return _issued_record.model_copy(deep=True)


@pytest.fixture
def provider_config():
    return ProviderConfig()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def healthy_ssh():
    return FakeSSH(responses=HEALTHY_NODE)


@pytest.fixture
def not_ready_manager():
    return FakeClusterManager(error=NotReadyError("cluster demo has no admin kubeconfig yet"))
