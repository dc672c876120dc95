"""JSON file storage for cluster records."""
import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from shipctl.config import Config
from shipctl.errors import ConfigurationError
from shipctl.models import ClusterRecord

logger = logging.getLogger("shipctl.registry")

_lock = threading.Lock()


def registry_path(path: Optional[Union[str, Path]] = None) -> Path:
    return Path(path or Config.REGISTRY_PATH).expanduser()


def load_registry(path: Optional[Union[str, Path]] = None) -> Dict[str, dict]:
    path = registry_path(path)
    if path.exists():
        with open(path, "r") as f:
            return json.load(f)
    return {}


def save_registry(data: Dict[str, dict], path: Optional[Union[str, Path]] = None) -> None:
    path = registry_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(data, f, indent=2)
    tmp.replace(path)


def list_clusters(path=None) -> List[ClusterRecord]:
    return [ClusterRecord.model_validate(raw) for raw in load_registry(path).values()]


def get_cluster(name: str, path=None) -> ClusterRecord:
    """Load one cluster record.

    Raises:
        ConfigurationError: If the cluster is not registered
    """
    raw = load_registry(path).get(name)
    if raw is None:
        raise ConfigurationError(f"Cluster '{name}' not found in registry")
    return ClusterRecord.model_validate(raw)


def save_cluster(record: ClusterRecord, path=None) -> None:
    with _lock:
        data = load_registry(path)
        data[record.name] = record.model_dump(mode="json")
        save_registry(data, path)
    logger.debug(f"Saved cluster {record.name} to {registry_path(path)}")
