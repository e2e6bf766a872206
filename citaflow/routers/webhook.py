from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from starlette.requests import ClientDisconnect

from citaflow.dependencies import get_inbound_router
from citaflow.logging_config import get_logger
from citaflow.services.inbound_service import InboundEventRouter, WebhookOutcome

logger = get_logger("webhook")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/whatsapp", response_class=PlainTextResponse)
async def whatsapp_webhook(request: Request, inbound: InboundEventRouter = Depends(get_inbound_router)):
    """Wassenger message webhook. Answers 200 with the decision unless handling crashes."""
    try:
        payload = await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return PlainTextResponse(WebhookOutcome.ACKNOWLEDGED.value)
    except ValueError as exc:
        logger.warning("Webhook payload is not valid JSON", extra={"context": {"error": str(exc)}})
        return PlainTextResponse(WebhookOutcome.ACKNOWLEDGED.value)

    try:
        outcome = await inbound.handle(payload)
    except Exception as exc:
        logger.error(
            "Webhook processing failed",
            extra={"context": {"error": str(exc)}},
            exc_info=True,
        )
        return PlainTextResponse("Internal Server Error", status_code=500)
    return PlainTextResponse(outcome.value)
