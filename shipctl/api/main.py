from dotenv import load_dotenv
from fastapi import FastAPI

from shipctl import __version__
from shipctl.api.middleware import AuthMiddleware
from shipctl.api.routes import clusters, ping, versions

load_dotenv()
app = FastAPI(title="shipctl", version=__version__)
app.add_middleware(AuthMiddleware)

app.include_router(ping.router)
app.include_router(versions.router)
app.include_router(clusters.router)
