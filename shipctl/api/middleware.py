from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shipctl.config import Config

OPEN_PATHS = ("/docs", "/openapi.json", "/ping")


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(OPEN_PATHS):
            return await call_next(request)

        auth_header = request.headers.get("X-API-Key")
        if auth_header != Config.API_KEY:
            return JSONResponse(status_code=403, content={"detail": "Unauthorized"})
        return await call_next(request)
