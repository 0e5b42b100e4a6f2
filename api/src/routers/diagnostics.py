"""
Diagnostics router for runtime profiling and introspection.

Provides endpoints for:
- Listing the available profiles
- Command line of the serving process
- Stack dump of every thread
- Heap allocation summary
- Statistical CPU profile in folded-stack format

Mounted under the configured diagnostics prefix (``/debug/pprof`` by
default). Profiles are collected in a worker thread so the server keeps
answering while a profile runs.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from api.src.config import Settings
from api.src.dependencies import get_app_settings
from api.src.services.profiler import StackSampler, command_line, heap_summary, thread_dump

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Diagnostics"])

PROFILES = {
    "cmdline": "The command line invocation of the current process",
    "heap": "Live memory allocations by source line (tracemalloc)",
    "profile": "CPU profile as folded stacks. Use the seconds parameter to set the duration",
    "threads": "Stack traces of all current threads",
}


@router.get("/", response_class=PlainTextResponse, summary="List profiles")
async def index(settings: Settings = Depends(get_app_settings)) -> str:
    lines = ["Types of profiles available:", ""]
    for name, description in PROFILES.items():
        lines.append(f"{settings.diagnostics_prefix}/{name}: {description}")
    return "\n".join(lines) + "\n"


@router.get("/cmdline", summary="Process command line")
async def cmdline() -> Response:
    return Response(content=command_line(), media_type="text/plain; charset=utf-8")


@router.get("/threads", response_class=PlainTextResponse, summary="Thread stacks")
async def threads() -> str:
    return thread_dump()


@router.get("/heap", response_class=PlainTextResponse, summary="Heap allocations")
async def heap(limit: int = Query(25, ge=1, le=1000)) -> str:
    return await run_in_threadpool(heap_summary, limit)


@router.get("/profile", response_class=PlainTextResponse, summary="CPU profile")
async def profile(
    seconds: Optional[int] = Query(None, ge=1, le=300),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """
    Sample every thread's stack for the requested duration.

    The response is folded-stack text (``frame;frame;frame count``), most
    frequent stacks first, ready to feed to flame-graph tools.
    """
    duration = seconds or settings.profile_default_seconds
    logger.info("cpu_profile_started", seconds=duration, interval=settings.profile_sample_interval)

    sampler = StackSampler(settings.profile_sample_interval)
    await run_in_threadpool(sampler.run, duration)
    return sampler.render()
