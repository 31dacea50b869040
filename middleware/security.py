"""
Security middleware for rate limiting, CORS, and other security features.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
import time
from collections import defaultdict
from typing import Dict

from core.logger import logger


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding-window rate limiting, kept in process memory."""
    
    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        login_requests_per_minute: int = None,
        login_path: str = "/api/auth/login",
    ):
        """
        Initialize rate limiting middleware.
        
        Args:
            app: FastAPI application
            requests_per_minute: Max requests per minute per IP
            requests_per_hour: Max requests per hour per IP
            login_requests_per_minute: Separate, usually tighter, per-minute limit on login_path
            login_path: Path that gets the login limit
        """
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.login_requests_per_minute = login_requests_per_minute or requests_per_minute
        self.login_path = login_path
        self.minute_requests: Dict[str, list] = defaultdict(list)
        self.hour_requests: Dict[str, list] = defaultdict(list)
        self.cleanup_interval = 300  # Clean up old entries every 5 minutes
        self.last_cleanup = time.time()
    
    async def dispatch(self, request: Request, call_next):
        """Process request with rate limiting."""
        # Get client IP
        client_ip = request.client.host if request.client else "unknown"
        
        # Clean up old entries periodically
        current_time = time.time()
        if current_time - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_entries(current_time)
            self.last_cleanup = current_time
        
        # Login attempts are counted in their own bucket
        if request.url.path == self.login_path and request.method == "POST":
            bucket = f"{client_ip}:login"
            per_minute = self.login_requests_per_minute
        else:
            bucket = client_ip
            per_minute = self.requests_per_minute

        if not self._check_rate_limit(bucket, current_time, per_minute):
            logger.warning(f"Rate limit exceeded for {bucket}")
            # Exceptions raised inside BaseHTTPMiddleware bypass the app's handlers
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": "60"}
            )
        
        return await call_next(request)
    
    def _check_rate_limit(self, key: str, current_time: float, per_minute: int) -> bool:
        """Check if request is within rate limits."""
        # Clean minute requests (older than 1 minute)
        self.minute_requests[key] = [
            t for t in self.minute_requests[key]
            if current_time - t < 60
        ]
        
        # Clean hour requests (older than 1 hour)
        self.hour_requests[key] = [
            t for t in self.hour_requests[key]
            if current_time - t < 3600
        ]
        
        # Check limits
        if len(self.minute_requests[key]) >= per_minute:
            return False
        if len(self.hour_requests[key]) >= self.requests_per_hour:
            return False
        
        # Add current request
        self.minute_requests[key].append(current_time)
        self.hour_requests[key].append(current_time)
        
        return True
    
    def _cleanup_old_entries(self, current_time: float):
        """Clean up old rate limit entries."""
        # Clean minute requests
        for key in list(self.minute_requests.keys()):
            self.minute_requests[key] = [
                t for t in self.minute_requests[key]
                if current_time - t < 60
            ]
            if not self.minute_requests[key]:
                del self.minute_requests[key]
        
        # Clean hour requests
        for key in list(self.hour_requests.keys()):
            self.hour_requests[key] = [
                t for t in self.hour_requests[key]
                if current_time - t < 3600
            ]
            if not self.hour_requests[key]:
                del self.hour_requests[key]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""
    
    async def dispatch(self, request: Request, call_next):
        """Add security headers."""
        response = await call_next(request)
        
        # CSP is left to the frontend; this service only serves JSON
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        
        return response


def setup_cors(app, allowed_origins: list[str], allowed_methods: list[str] = None, allow_credentials: bool = True):
    """
    Setup CORS middleware.
    
    Args:
        app: FastAPI application
        allowed_origins: List of allowed origins
        allowed_methods: List of allowed HTTP methods
        allow_credentials: Whether browsers may send credentials
    """
    if allowed_methods is None:
        allowed_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allow_credentials,
        allow_methods=allowed_methods,
        allow_headers=["*"],
        expose_headers=["*"],
    )


def setup_trusted_hosts(app, allowed_hosts: list[str]):
    """
    Setup trusted hosts middleware.
    
    Args:
        app: FastAPI application
        allowed_hosts: List of allowed hostnames
    """
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=allowed_hosts
    )
