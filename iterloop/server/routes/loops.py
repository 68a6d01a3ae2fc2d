"""Loop execution routes with SSE streaming."""
import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from iterloop.errors import ConfigValidationError, PhaseExecutionError
from iterloop.loop import IterationLoop
from iterloop.server.registry import LoopNotFoundError, LoopRegistry
from iterloop.server.settings import Settings
from iterloop.stream import StreamingLoop

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RunLoopRequest(BaseModel):
    """Request to run a registered loop."""
    input: Any = None
    config: Dict[str, Any] = Field(default_factory=dict)


class LoopInfo(BaseModel):
    """A registered loop and its current configuration."""
    name: str
    config: Dict[str, Any]


def get_registry(request: Request) -> LoopRegistry:
    return request.app.state.registry


def get_service_settings(request: Request) -> Settings:
    return request.app.state.settings


def sse_event(data: dict) -> str:
    """Format data as SSE event."""
    return f"data: {json.dumps(jsonable_encoder(data))}\n\n"


def prepare_loop(registry: LoopRegistry, name: str, overrides: Dict[str, Any]) -> IterationLoop:
    """Per-request sibling of the registered loop, with config overrides applied."""
    try:
        template = registry.get(name)
    except LoopNotFoundError:
        raise HTTPException(status_code=404, detail=f"Loop '{name}' not found")

    if "logger" in overrides:
        raise HTTPException(status_code=422, detail="logger cannot be set over HTTP")
    try:
        return template.with_config(**overrides)
    except ConfigValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


async def run_loop_events(loop: IterationLoop, input: Any, heartbeat: float) -> AsyncGenerator[str, None]:
    """Run `loop` and stream its lifecycle events via SSE."""
    event_queue: asyncio.Queue = asyncio.Queue()
    loop.subscribe(lambda event: event_queue.put_nowait(event.to_dict()))

    async def run():
        try:
            await loop.run(input)
        except Exception as e:
            # Already reported to listeners as an "error" event
            logger.error(f"Loop run failed: {e}", exc_info=True)
        finally:
            event_queue.put_nowait({"type": "done"})

    loop_task = asyncio.create_task(run())

    try:
        while True:
            try:
                event = await asyncio.wait_for(event_queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield sse_event({"type": "heartbeat"})
                continue

            yield sse_event(event)
            if event.get("type") == "done":
                break
    finally:
        if not loop_task.done():
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task


async def run_loop_snapshots(stream: StreamingLoop, input: Any) -> AsyncGenerator[str, None]:
    """Stream snapshots of a streaming run as they are produced."""
    try:
        async for snapshot in stream.iterate(input):
            yield sse_event({"type": "snapshot", **snapshot.to_dict()})
    except PhaseExecutionError as e:
        logger.error(f"Streaming run failed: {e}")
        yield sse_event({"type": "error", "message": str(e)})
    yield sse_event({"type": "done"})


@router.get("", response_model=list[LoopInfo])
async def list_loops(registry: LoopRegistry = Depends(get_registry)):
    """List registered loops."""
    return [
        LoopInfo(name=name, config=registry.get(name).get_config().to_dict())
        for name in registry.names()
    ]


@router.post("/{name}/run")
async def run_loop(name: str, request: RunLoopRequest, registry: LoopRegistry = Depends(get_registry)):
    """Run a loop to completion and return its result."""
    loop = prepare_loop(registry, name, request.config)
    logger.info(f"Running loop '{name}'")
    try:
        outcome = await loop.run(request.input)
    except PhaseExecutionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return jsonable_encoder(outcome.to_dict())


@router.post("/{name}/events")
async def stream_loop_events(
    name: str,
    request: RunLoopRequest,
    registry: LoopRegistry = Depends(get_registry),
    settings: Settings = Depends(get_service_settings),
):
    """Run a loop and stream its events via SSE."""
    loop = prepare_loop(registry, name, request.config)
    logger.info(f"Streaming events of loop '{name}'")
    return StreamingResponse(
        run_loop_events(loop, request.input, settings.heartbeat_interval),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/{name}/snapshots")
async def stream_loop_snapshots(name: str, request: RunLoopRequest, registry: LoopRegistry = Depends(get_registry)):
    """Run a loop with the streaming controller and stream each snapshot via SSE."""
    loop = prepare_loop(registry, name, request.config)
    stream = StreamingLoop(loop.phases, loop.get_config())
    logger.info(f"Streaming snapshots of loop '{name}'")
    return StreamingResponse(
        run_loop_snapshots(stream, request.input),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
