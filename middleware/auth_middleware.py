"""
Authentication middleware: flags requests to protected routes that carry no bearer token.
Token validation itself is done by the FastAPI dependencies in auth.dependencies.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List

from core.logger import logger

# Exact paths that don't require authentication
PUBLIC_ROUTES: List[str] = [
    "/",
    "/health",
    "/openapi.json",
    "/api/auth/register",
    "/api/auth/login",
]

# Path prefixes that don't require authentication
PUBLIC_PREFIXES: List[str] = [
    "/docs",
    "/redoc",
]


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """
    Logs unauthenticated requests to protected routes.

    Requests are never blocked here so that the dependencies can return
    their proper 401/403 responses.
    """

    def __init__(self, app, public_routes: List[str] = None, public_prefixes: List[str] = None):
        super().__init__(app)
        self.public_routes = set(public_routes or PUBLIC_ROUTES)
        self.public_prefixes = public_prefixes or PUBLIC_PREFIXES

    def is_public(self, path: str) -> bool:
        if path in self.public_routes:
            return True
        return any(path.startswith(prefix) for prefix in self.public_prefixes)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # OPTIONS is the CORS preflight
        if self.is_public(path) or request.method == "OPTIONS":
            return await call_next(request)

        if not request.headers.get("authorization"):
            client = request.client.host if request.client else "unknown"
            logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")

        return await call_next(request)
