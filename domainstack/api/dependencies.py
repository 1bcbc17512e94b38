"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting the wired
domain services and the caller identity into routes.
"""

from fastapi import Header, HTTPException, Request, status

from domainstack.bootstrap import Container
from domainstack.domain.tracking import TrackingService


def get_container(request: Request) -> Container:
    """Get the service container built during lifespan startup."""
    return request.app.state.container


def get_tracking_service(request: Request) -> TrackingService:
    return get_container(request).tracking


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Caller identity set by the authenticating gateway.

    Raises:
        HTTPException: 401 when the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id.strip()
