"""
API v1 package.

Contains versioned API routes for the domain tracking API.
"""

from domainstack.api.v1.routes import router

__all__ = ["router"]
