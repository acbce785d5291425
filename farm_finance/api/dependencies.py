"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from farm_finance.infrastructure.clients.authority import AuthorityClient
from farm_finance.services.registry import DealRegistry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_registry(request: Request) -> DealRegistry:
    """The registry hosted by this process"""
    return request.app.state.registry


def get_authority_client() -> AuthorityClient:
    """Provide Authority API client instance for observer proxying"""
    return AuthorityClient()
