"""
Cron trigger endpoint.

An external scheduler calls this periodically; it synchronizes the
convert rules (subject to the sync interval) and records the run.
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends, Request

from ..core.auth import authenticate_cron_secret
from ..core.settings_store import get_settings_store
from ..core.transformer import get_message_transformer
from ..models import CronResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/v1/cron",
    response_model=CronResponse,
    responses={401: {"description": "Missing or invalid cron secret"}},
    summary="Run scheduled tasks",
    description="""
    Run the module's scheduled work.

    - Requires the cron secret as the `secret` query parameter
    - Synchronizes convert rules when the sync interval has elapsed
    - Records the execution time
    """,
)
async def run_cron(request: Request, secret: str = Depends(authenticate_cron_secret)) -> CronResponse:
    transformer = getattr(request.app.state, "transformer", None) or get_message_transformer()
    settings_store = get_settings_store()

    await transformer.synchronize()
    await asyncio.to_thread(settings_store.update_cron_last_exec)

    last_exec = await asyncio.to_thread(settings_store.get_cron_last_exec)
    logger.info("Cron executed", last_exec=last_exec)
    return CronResponse(status="ok", last_exec=last_exec)
