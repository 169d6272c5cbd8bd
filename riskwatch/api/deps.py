"""FastAPI dependencies: the process-wide service container."""

from fastapi import Request

from riskwatch.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
