"""Webhook Routes - Stripe payment webhooks.

POST /api/webhook/stripe - Main Stripe webhook endpoint
POST /api/webhooks/stripe - Alias for Stripe webhook (for backward compatibility)

- 200 {received: true} once the event is verified and handled
- 400 {error, details} for a missing/invalid signature, an unknown
  client reference, or a processing failure (Stripe retries non-2xx)
- 405 {error} for any other method
"""
from fastapi import APIRouter, Request, Header, status
from fastapi.responses import JSONResponse
from models import AuditAction
from services.stripe_webhook_service import (
    ReferenceResolutionError,
    WebhookVerificationError,
    stripe_webhook_service,
)
from utils.audit import create_audit_log
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])

OTHER_METHODS = ["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _bad_request(error: str, details: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": error, "details": details})


async def _handle_stripe_webhook(request: Request, stripe_signature: str = None):
    payload = await request.body()
    try:
        await stripe_webhook_service.process_webhook(payload=payload, signature=stripe_signature)
    except WebhookVerificationError as e:
        logger.warning("Stripe webhook rejected: %s", e)
        await create_audit_log(
            action=AuditAction.WEBHOOK_REJECTED,
            actor_role="WEBHOOK",
            resource_type="stripe_webhook",
            reason_code="SIGNATURE",
            metadata={"error": str(e)},
        )
        return _bad_request("Webhook signature verification failed", str(e))
    except ReferenceResolutionError as e:
        logger.error("Stripe webhook reference not found: %s", e)
        return _bad_request("Submission not found", str(e))
    except Exception as e:
        logger.exception(f"Stripe webhook error: {e}")
        return _bad_request("Webhook handler failed", str(e))
    return {"received": True}


# Primary webhook endpoint
@router.post("/api/webhook/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/webhook/stripe"""
    return await _handle_stripe_webhook(request, stripe_signature)


# Alias endpoint for backward compatibility (Stripe may be configured with this URL)
@router.post("/api/webhooks/stripe")
async def stripe_webhook_alias(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/webhooks/stripe (alias)"""
    return await _handle_stripe_webhook(request, stripe_signature)


@router.api_route("/api/webhook/stripe", methods=OTHER_METHODS, include_in_schema=False)
@router.api_route("/api/webhooks/stripe", methods=OTHER_METHODS, include_in_schema=False)
async def stripe_webhook_method_not_allowed():
    return JSONResponse(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, content={"error": "Method not allowed"})
