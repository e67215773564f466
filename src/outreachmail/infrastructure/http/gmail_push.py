"""Gmail push endpoint for history notifications delivered by Pub/Sub."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from loguru import logger

from outreachmail.application.use_cases.ingest_push import PushOutcome
from outreachmail.domain.errors import MalformedPush
from outreachmail.infrastructure.container import Services, get_services


router = APIRouter(tags=["push"])


# ============================================================================
# Background Task
# ============================================================================


async def _sync_after_push(services: Services, scope: str) -> None:
    """Background task running one sync for the pushed scope."""
    result = await services.engine.trigger(scope)
    if result is not None:
        logger.bind(stored=result.stored, cursor=result.cursor).info(
            f"Push-triggered sync for {scope}: {result.status}"
        )


# ============================================================================
# Endpoint
# ============================================================================


@router.post("/google/webhook", status_code=204)
async def gmail_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
) -> Response:
    """
    Receive a Gmail push notification.

    This endpoint:
    1. Decodes the base64 JSON payload (400 if malformed)
    2. Seeds the cursor when none is stored yet
    3. Otherwise queues a sync in the background
    4. Returns 204 at once; the sync outcome never reaches the pusher
    """
    try:
        envelope = await request.json()
    except ValueError:
        logger.warning("Gmail push body is not JSON")
        raise HTTPException(status_code=400, detail="Body is not JSON")

    try:
        outcome = services.ingress.accept(envelope)
    except MalformedPush as e:
        logger.warning(f"Rejected malformed Gmail push: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if outcome == PushOutcome.SYNC_REQUESTED:
        background_tasks.add_task(_sync_after_push, services, services.scope)
        logger.debug(f"Queued sync for scope {services.scope}")

    return Response(status_code=204)


# ============================================================================
# Health check for the sync subsystem
# ============================================================================


@router.get("/internal/sync/health")
async def sync_health(services: Services = Depends(get_services)) -> dict:
    """Sync counters and state for the configured scope."""
    scope = services.scope
    try:
        with services.store._connection() as conn:
            conn.execute("SELECT 1")

        return {
            "status": "healthy",
            "scope": scope,
            "state": services.engine.state(scope).value,
            "poller_running": services.poller.running,
            "stats": services.engine.stats(scope).as_dict(),
        }
    except Exception as e:
        logger.error(f"Sync health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
