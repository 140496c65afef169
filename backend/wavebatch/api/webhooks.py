"""Generation engine webhook router."""

from fastapi import APIRouter, Depends

from wavebatch.deps import Services, get_services
from wavebatch.schemas.webhook import WebhookAck, WebhookPayload

router = APIRouter()


@router.post("/wavespeed")
async def wavespeed_webhook(
    payload: WebhookPayload,
    services: Services = Depends(get_services),
) -> WebhookAck:
    # Redeliveries are acknowledged the same as first deliveries.
    await services.webhook.handle(payload)
    return WebhookAck()
