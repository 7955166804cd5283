from __future__ import annotations
"""FastAPI dependencies that hand out the services built in the app lifespan."""

from fastapi import Request

from clipforge.services.orchestrator import TaskOrchestrator


def get_orchestrator(request: Request) -> TaskOrchestrator:
    return request.app.state.orchestrator
