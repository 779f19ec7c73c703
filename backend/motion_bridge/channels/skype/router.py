"""Endpoints del canal Skype (Bot Framework)."""

from fastapi import APIRouter, BackgroundTasks, Depends, status

from motion_bridge.core.logging import get_logger

from .deps import get_inbound_relay, verify_bot_authorization
from .schemas import Activity
from .service import InboundRelay

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["skype"])


async def _relay_in_background(relay: InboundRelay, activity: Activity) -> None:
    try:
        await relay.handle_activity(activity)
    except Exception:
        logger.exception(
            "skype.relay_failed",
            extra={"conversation_id": activity.conversation.id},
        )


@router.post(
    "/messages",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Webhook de recepción de Bot Framework",
)
async def skype_webhook(
    activity: Activity,
    background_tasks: BackgroundTasks,
    relay: InboundRelay = Depends(get_inbound_relay),
    _: None = Depends(verify_bot_authorization),
) -> dict[str, str]:
    """Confirma la actividad de inmediato y la reenvía a Motion en segundo plano."""
    background_tasks.add_task(_relay_in_background, relay, activity)
    return {"status": "accepted"}
