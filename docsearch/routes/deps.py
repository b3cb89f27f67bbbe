from fastapi import Request

from ..container import Services


def get_services(request: Request) -> Services:
    """The Services built at startup (or injected by tests)."""
    return request.app.state.services
