"""Notification Dispatcher - sends onboarding and payment emails with duplicate-send suppression.

A message is identified by (recipients, normalized subject, submission id). A
second send of the same message inside the cooldown window (default 5 minutes,
EMAIL_DUPLICATE_COOLDOWN_MINUTES) is skipped and reported as
``{"duplicate": True, "skipped": True}``.

The suppression ledger is pluggable:
- MongoSendLedger (default): shared by every API instance; claims are atomic
  upserts on a unique key and expire through a TTL index after 24 hours.
- InMemorySendLedger: per-process map, pruned of entries older than 24 hours
  on every claim. For single-instance deployments and tests.

A failed send releases its claim so a retry can deliver. The notify_* helpers
never raise; the HTTP request or webhook that triggered them always completes.
"""
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from database import database
from models import AuditAction
from services.email_service import EmailAttachment, EmailService, email_service, mask_email
from services.email_templates import (
    RenderedEmail,
    admin_submission_email,
    payment_admin_email,
    payment_confirmation_email,
    welcome_email,
)
from utils.audit import create_audit_log
from utils.env_config import env_int

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MINUTES = 5
LEDGER_RETENTION = timedelta(hours=24)


class NotificationError(Exception):
    """Rendering, ledger or provider failure for one message."""
    pass


def normalize_subject(subject: str) -> str:
    text = re.sub(r"[^\w\s]", "", subject or "")
    return re.sub(r"\s+", " ", text).strip().lower()


def dedupe_key(recipients: List[str], subject: str, submission_id: Optional[str] = None) -> str:
    to = ",".join(sorted(r.strip().lower() for r in recipients))
    key = f"{to}:{normalize_subject(subject)}"
    if submission_id:
        key = f"{key}:{submission_id}"
    return key


# ============================================================================
# Ledgers
# ============================================================================

class SendLedger(ABC):
    @abstractmethod
    async def claim(self, key: str, now: datetime, cooldown: timedelta) -> bool:
        """Record an imminent send. False when the key was sent within the cooldown."""
        pass

    @abstractmethod
    async def release(self, key: str) -> None:
        """Forget a claim whose send failed."""
        pass


class InMemorySendLedger(SendLedger):
    def __init__(self):
        self.sent_at: Dict[str, datetime] = {}

    def _prune(self, now: datetime) -> None:
        cutoff = now - LEDGER_RETENTION
        for key in [k for k, ts in self.sent_at.items() if ts < cutoff]:
            del self.sent_at[key]

    async def claim(self, key: str, now: datetime, cooldown: timedelta) -> bool:
        self._prune(now)
        last = self.sent_at.get(key)
        if last is not None and now - last < cooldown:
            return False
        self.sent_at[key] = now
        return True

    async def release(self, key: str) -> None:
        self.sent_at.pop(key, None)


class MongoSendLedger(SendLedger):
    """Shared ledger in the email_send_ledger collection (unique key, TTL on last_sent_at)."""

    collection_name = "email_send_ledger"

    def _collection(self):
        return database.get_db()[self.collection_name]

    async def claim(self, key: str, now: datetime, cooldown: timedelta) -> bool:
        try:
            # Matches only a stale entry; a fresh one makes the upsert collide on the unique key
            await self._collection().update_one(
                {"key": key, "last_sent_at": {"$lt": now - cooldown}},
                {"$set": {"key": key, "last_sent_at": now}},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        return True

    async def release(self, key: str) -> None:
        await self._collection().delete_one({"key": key})


def ledger_from_env() -> SendLedger:
    store = (os.getenv("EMAIL_DEDUPE_STORE") or "mongo").strip().lower()
    if store == "memory":
        logger.info("Email duplicate suppression: in-memory ledger (single instance only)")
        return InMemorySendLedger()
    return MongoSendLedger()


# ============================================================================
# Dispatcher
# ============================================================================

@dataclass
class SendOptions:
    prevent_duplicates: bool = True
    submission_id: Optional[str] = None


@dataclass
class DispatchResult:
    sent: bool = False
    id: Optional[str] = None
    duplicate: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.duplicate:
            return {"duplicate": True, "skipped": True}
        return {"sent": self.sent, "id": self.id}


def get_admin_email() -> str:
    return (os.getenv("ADMIN_EMAIL") or "").strip()


class NotificationDispatcher:
    def __init__(
        self,
        ledger: Optional[SendLedger] = None,
        email: Optional[EmailService] = None,
        cooldown_minutes: Optional[int] = None,
    ):
        self._ledger = ledger
        self.email = email or email_service
        minutes = cooldown_minutes if cooldown_minutes is not None else env_int(
            "EMAIL_DUPLICATE_COOLDOWN_MINUTES", DEFAULT_COOLDOWN_MINUTES
        )
        self.cooldown = timedelta(minutes=minutes)

    @property
    def ledger(self) -> SendLedger:
        if self._ledger is None:
            self._ledger = ledger_from_env()
        return self._ledger

    async def send(self, message: RenderedEmail, options: Optional[SendOptions] = None) -> DispatchResult:
        """Send one rendered email. Raises NotificationError on failure."""
        options = options or SendOptions()
        key = dedupe_key(message.to, message.subject, options.submission_id)
        claimed = False

        if options.prevent_duplicates:
            try:
                claimed = await self.ledger.claim(key, datetime.now(timezone.utc), self.cooldown)
            except Exception as e:
                raise NotificationError(f"Duplicate-send ledger unavailable: {e}") from e
            if not claimed:
                logger.info("Duplicate email skipped template=%s to=%s",
                            message.template.value, ", ".join(mask_email(r) for r in message.to))
                await create_audit_log(
                    action=AuditAction.EMAIL_DUPLICATE_SKIPPED,
                    resource_type="submission",
                    resource_id=options.submission_id,
                    metadata={"template": message.template.value, "subject": message.subject},
                )
                return DispatchResult(duplicate=True, skipped=True)

        try:
            message_id = await self.email.send(
                to=message.to,
                subject=message.subject,
                html=message.html,
                attachments=message.attachments or None,
                tag=message.template.value,
            )
        except Exception as e:
            if claimed:
                try:
                    await self.ledger.release(key)
                except Exception as release_err:
                    logger.warning("Could not release send claim %s: %s", key, release_err)
            await create_audit_log(
                action=AuditAction.EMAIL_FAILED,
                resource_type="submission",
                resource_id=options.submission_id,
                metadata={"template": message.template.value, "error": str(e)},
            )
            raise NotificationError(f"{message.template.value} email failed: {e}") from e

        await create_audit_log(
            action=AuditAction.EMAIL_SENT,
            resource_type="submission",
            resource_id=options.submission_id,
            metadata={"template": message.template.value, "message_id": message_id},
        )
        return DispatchResult(sent=True, id=message_id)

    async def _send_logged(
        self,
        render: Callable[[], RenderedEmail],
        submission_id: Optional[str],
    ) -> Optional[DispatchResult]:
        try:
            try:
                message = render()
            except (KeyError, TypeError, ValueError) as e:
                raise NotificationError(f"Template rendering failed: {e}") from e
            return await self.send(message, SendOptions(prevent_duplicates=True, submission_id=submission_id))
        except NotificationError as e:
            logger.error("Notification failed submission_id=%s: %s", submission_id, e)
            return None

    async def notify_submission_received(
        self,
        submission: Dict[str, Any],
        attachments: Optional[List[EmailAttachment]] = None,
    ) -> Dict[str, Optional[DispatchResult]]:
        """Welcome email to the submitter and an alert to the admin. Never raises."""
        submission_id = submission.get("id")
        results = {"welcome": await self._send_logged(lambda: welcome_email(submission), submission_id)}
        admin = get_admin_email()
        if admin:
            results["admin"] = await self._send_logged(
                lambda: admin_submission_email(submission, admin, attachments), submission_id
            )
        else:
            logger.warning("ADMIN_EMAIL not set - admin submission alert not sent")
            results["admin"] = None
        return results

    async def notify_payment_confirmed(
        self,
        submission: Dict[str, Any],
        payment: Dict[str, Any],
    ) -> Dict[str, Optional[DispatchResult]]:
        """Payment receipt to the submitter and a payment alert to the admin. Never raises."""
        submission_id = submission.get("id")
        results = {"client": await self._send_logged(lambda: payment_confirmation_email(submission), submission_id)}
        admin = get_admin_email()
        if admin:
            results["admin"] = await self._send_logged(
                lambda: payment_admin_email(submission, admin, payment), submission_id
            )
        else:
            logger.warning("ADMIN_EMAIL not set - admin payment alert not sent")
            results["admin"] = None
        return results


notification_dispatcher = NotificationDispatcher()
