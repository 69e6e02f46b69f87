"""
Security utilities: caller identity and rate limiting
"""

from fastapi import HTTPException, Depends, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import time
from collections import defaultdict

from app.core.config import settings
from app.services.permission_service import Actor

# Simple in-memory rate limiter
rate_limiter = defaultdict(list)

security = HTTPBearer(auto_error=False)

def get_optional_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Actor]:
    """Resolve the caller from the admin bearer token and the identity gateway headers.

    The upstream gateway authenticates users and forwards ``X-User-Id``
    (local user id) and ``X-Actor-Id`` (its own subject id). Returns
    ``None`` for anonymous callers.
    """
    is_admin = False
    if credentials is not None:
        if credentials.credentials != settings.ADMIN_TOKEN:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )
        is_admin = True

    self_id = None
    user_header = request.headers.get("X-User-Id")
    if user_header:
        try:
            self_id = int(user_header)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="X-User-Id must be an integer"
            )

    actor_id = request.headers.get("X-Actor-Id")
    if not is_admin and self_id is None and not actor_id:
        return None

    if not actor_id:
        actor_id = f"user:{self_id}" if self_id is not None else "admin"
    return Actor(id=actor_id, is_admin=is_admin, self_id=self_id)

def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    """Require an identified caller"""
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return actor

def verify_admin_token(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require the admin token"""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
    return actor

def rate_limit_check(client_ip: str, limit: int = None) -> bool:
    """Simple rate limiting by IP address"""
    if limit is None:
        limit = settings.RATE_LIMIT_PER_MINUTE

    current_time = time.time()
    minute_ago = current_time - 60

    # Clean old requests
    rate_limiter[client_ip] = [
        req_time for req_time in rate_limiter[client_ip]
        if req_time > minute_ago
    ]

    # Check limit
    if len(rate_limiter[client_ip]) >= limit:
        return False

    # Add current request
    rate_limiter[client_ip].append(current_time)
    return True

def get_client_ip(request) -> str:
    """Extract client IP from request"""
    # Check for forwarded IP first (for reverse proxy setups)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    # Check for real IP header
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Fall back to direct client IP
    return request.client.host

def enforce_rate_limit(request: Request) -> None:
    """Dependency for public mutation endpoints"""
    if not rate_limit_check(get_client_ip(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again later."
        )
