"""Liveness route."""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Report that the service is up and how many loops it serves."""
    return {
        "status": "ok",
        "service": "iterloop",
        "loops": len(request.app.state.registry.names()),
    }
