"""
Load router exposing the synthetic CPU-burning endpoint.

Every request decodes its form parameters, burns a fixed amount of CPU and
answers with a deterministic digit payload. Nothing is shared between
requests: each one builds its own payload in its own worker thread.
"""

import time

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from api.src.config import Settings
from api.src.dependencies import get_app_settings, get_load_metrics
from api.src.services.form_parser import FormParseError, parse_request_form
from api.src.services.workload import burn_cpu, generate_payload
from shared.metrics import LoadMetrics

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Load"])


@router.api_route(
    "/test",
    methods=["GET", "POST"],
    response_class=PlainTextResponse,
    status_code=status.HTTP_200_OK,
    summary="Burn CPU and return a digit payload",
    description="""
    Decode and log the request's form parameters, spin a busy-wait loop of
    N*log2(N) empty iterations, then return a payload of ASCII digits where
    byte i (from 1) is i mod 10.

    A malformed query string or form body is answered with the decoder's
    error text, still with status 200.
    """,
)
async def run_load_test(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    metrics: LoadMetrics = Depends(get_load_metrics),
) -> PlainTextResponse:
    try:
        form = await parse_request_form(request, settings.max_form_size)
    except FormParseError as e:
        metrics.requests.labels(outcome="parse_error").inc()
        return PlainTextResponse(str(e))

    logger.info("form_parsed", form=form)

    started = time.perf_counter()
    await run_in_threadpool(burn_cpu, settings.burn_iterations)
    metrics.burn_duration.observe(time.perf_counter() - started)

    payload = await run_in_threadpool(generate_payload, settings.payload_length)
    metrics.payload_bytes.inc(len(payload))
    metrics.requests.labels(outcome="served").inc()

    return PlainTextResponse(payload)
