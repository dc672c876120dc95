from fastapi import APIRouter

from shipctl.modules.config import get_config

router = APIRouter()


@router.get("/versions")
def versions():
    """Kubernetes versions clusters can be created with."""
    return {"versions": get_config().kubernetes_versions}
