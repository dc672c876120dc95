from fastapi import APIRouter

from shipctl import __version__

router = APIRouter()


@router.get("/ping")
def ping():
    return {"status": "ok", "version": __version__}
