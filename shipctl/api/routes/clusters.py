from fastapi import APIRouter, HTTPException

from shipctl import registry
from shipctl.errors import ConfigurationError, NoAddressError
from shipctl.logging import redact_sensitive_data
from shipctl.modules.endpoint import get_join_endpoint
from shipctl.modules.provider.cluster import ClusterProvider
from shipctl.modules.provider.machine import MachineProvider

router = APIRouter(prefix="/clusters")


def _load(name: str):
    try:
        return registry.get_cluster(name)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=e.message)


def _conditions(report):
    return [c.model_dump(mode="json") for c in report]


@router.get("")
def list_clusters():
    return [
        {
            "name": record.name,
            "version": record.status.version or record.spec.version,
            "phase": record.status.phase,
            "machines": len(record.spec.machines),
        }
        for record in registry.list_clusters()
    ]


@router.get("/{name}")
def get_cluster(name: str):
    """Cluster record with credential material masked."""
    return redact_sensitive_data(_load(name).model_dump(mode="json"))


@router.get("/{name}/conditions")
def cluster_conditions(name: str):
    record = _load(name)
    provider = ClusterProvider(config=None, management_store=None)
    return {"name": name, "phase": record.status.phase,
            "conditions": _conditions(provider.conditions(record))}


@router.get("/{name}/machines/{ip}/conditions")
def machine_conditions(name: str, ip: str):
    machine = _load(name).machine(ip)
    if machine is None:
        raise HTTPException(status_code=404, detail=f"machine {ip} is not part of cluster {name}")
    provider = MachineProvider(config=None)
    return {"ip": ip, "phase": machine.status.phase,
            "conditions": _conditions(provider.conditions(machine))}


@router.get("/{name}/endpoint")
def endpoint(name: str):
    record = _load(name)
    try:
        return {"endpoint": get_join_endpoint(record)}
    except NoAddressError as e:
        raise HTTPException(status_code=409, detail=e.message)
