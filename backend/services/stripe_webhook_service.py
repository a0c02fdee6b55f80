"""Stripe Webhook Service - payment reconciliation for onboarding submissions.

Events Handled:
- checkout.session.completed: resolve the client reference to a submission,
  flip payment_status pending -> completed, send payment confirmation emails
- checkout.session.expired: logged only
- payment_intent.payment_failed: logged only
- anything else: acknowledged and ignored

Key Principles:
1. Signature verification happens before any field of the event is trusted
2. References resolve against an ordered list of submission sources
   (current schema first, then legacy); not-found only when all miss
3. payment_status is monotonic; a redelivered event changes nothing and
   sends no second confirmation
4. Notification failures after the state change are logged, never raised
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import stripe

from models import AuditAction, PaymentStatus
from services.notification_dispatcher import NotificationDispatcher, notification_dispatcher
from services.submission_repository import SUBMISSION_SOURCES, SubmissionSource
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
PAYMENT_FAILED = "payment_intent.payment_failed"


class WebhookVerificationError(Exception):
    """Missing or invalid signature, or an unparseable payload."""
    pass


class ReferenceResolutionError(Exception):
    """No submission source recognises the event's reference."""
    pass


@dataclass
class WebhookOutcome:
    event_id: Optional[str]
    event_type: str
    status: str  # completed | already_completed | logged | ignored
    submission_id: Optional[str] = None
    source: Optional[str] = None


def _get_webhook_secret() -> str:
    return (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()


class StripeWebhookService:
    def __init__(
        self,
        sources: Optional[Sequence[SubmissionSource]] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.sources: List[SubmissionSource] = list(sources if sources is not None else SUBMISSION_SOURCES)
        self.dispatcher = dispatcher or notification_dispatcher

    # =========================================================================
    # Verification
    # =========================================================================

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe signature and return the event as a plain dict."""
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        secret = _get_webhook_secret()
        if not secret:
            raise WebhookVerificationError("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed: %s", e)
            raise WebhookVerificationError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
        # Signature covers the raw body, so the parsed body is now trusted
        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e

    # =========================================================================
    # Event Processing Entry Point
    # =========================================================================

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """Verify and handle one webhook delivery.

        Raises WebhookVerificationError or ReferenceResolutionError; the route
        maps both to 400.
        """
        event = self.verify_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(
            "WEBHOOK_RECEIVED event_id=%s event_type=%s livemode=%s object_id=%s",
            event_id, event_type, event.get("livemode"), obj.get("id"),
        )

        if event_type == CHECKOUT_COMPLETED:
            outcome = await self._handle_checkout_completed(event_id, obj)
        elif event_type == CHECKOUT_EXPIRED:
            outcome = await self._log_only(event_id, event_type, obj, AuditAction.PAYMENT_SESSION_EXPIRED)
        elif event_type == PAYMENT_FAILED:
            outcome = await self._log_only(event_id, event_type, obj, AuditAction.PAYMENT_FAILED)
        else:
            logger.info("Unhandled event type %s - acknowledged", event_type)
            outcome = WebhookOutcome(event_id, event_type, "ignored")

        logger.info(
            "WEBHOOK_PROCESSED_OK event_id=%s event_type=%s status=%s submission_id=%s",
            event_id, event_type, outcome.status, outcome.submission_id,
        )
        return outcome

    async def resolve_reference(self, references: Iterable[Optional[str]]) -> Tuple[SubmissionSource, Dict[str, Any]]:
        """Walk the sources in order for each candidate reference."""
        tried = []
        for reference in references:
            if not reference or reference in tried:
                continue
            tried.append(reference)
            for source in self.sources:
                submission = await source.resolve(reference)
                if submission:
                    return source, submission
        raise ReferenceResolutionError(f"No submission found for reference(s): {', '.join(tried) or '(none)'}")

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_checkout_completed(self, event_id: Optional[str], session: Dict[str, Any]) -> WebhookOutcome:
        session_id = session.get("id")
        client_reference = session.get("client_reference_id")
        if client_reference:
            source, submission = await self.resolve_reference([client_reference, session_id])
        else:
            # Payment made outside the onboarding funnel (plain payment link)
            try:
                source, submission = await self.resolve_reference([session_id])
            except ReferenceResolutionError:
                logger.info("Checkout %s has no client_reference_id and no matching submission - acknowledged",
                            session_id)
                return WebhookOutcome(event_id, CHECKOUT_COMPLETED, "ignored")
        submission_id = submission.get("id")

        if submission.get("payment_status") == PaymentStatus.COMPLETED.value:
            logger.info("Submission %s already completed - no state change, no emails", submission_id)
            return WebhookOutcome(event_id, CHECKOUT_COMPLETED, "already_completed", submission_id, source.name)

        flipped = await source.mark_payment_completed(submission, session_id)
        if not flipped:
            logger.info("Submission %s completed by a concurrent delivery - skipping emails", submission_id)
            return WebhookOutcome(event_id, CHECKOUT_COMPLETED, "already_completed", submission_id, source.name)

        payment = {
            "session_id": session_id,
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "payment_intent": session.get("payment_intent"),
            "customer": session.get("customer"),
        }
        await create_audit_log(
            action=AuditAction.PAYMENT_COMPLETED,
            actor_role="WEBHOOK",
            resource_type=source.name,
            resource_id=submission_id,
            metadata={"event_id": event_id, **payment},
        )

        await self.dispatcher.notify_payment_confirmed(submission, payment)
        return WebhookOutcome(event_id, CHECKOUT_COMPLETED, "completed", submission_id, source.name)

    async def _log_only(
        self,
        event_id: Optional[str],
        event_type: str,
        obj: Dict[str, Any],
        action: AuditAction,
    ) -> WebhookOutcome:
        reference = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("submission_id")
        if event_type == CHECKOUT_EXPIRED:
            logger.info("Payment session expired session_id=%s reference=%s", obj.get("id"), reference)
        else:
            error = (obj.get("last_payment_error") or {}).get("message")
            logger.warning("Payment failed payment_intent=%s error=%s", obj.get("id"), error)
        await create_audit_log(
            action=action,
            actor_role="WEBHOOK",
            resource_type="stripe_object",
            resource_id=obj.get("id"),
            metadata={"event_id": event_id, "reference": reference},
        )
        return WebhookOutcome(event_id, event_type, "logged", reference)


stripe_webhook_service = StripeWebhookService()
