from postmarker.core import PostmarkClient
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
import asyncio
import base64
import httpx
import logging
import os
import uuid

from utils.env_config import env_int

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = "noreply@ai-chatflows.com"
DEFAULT_SEND_TIMEOUT_SECONDS = 30
ATTACHMENT_FETCH_TIMEOUT_SECONDS = 15


class EmailDeliveryError(Exception):
    """Provider rejected or failed to accept a message."""
    pass


@dataclass
class EmailAttachment:
    filename: str
    url: str


def mask_email(email: str) -> str:
    """Mask an address for logs: jo***@example.com"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def get_sender() -> str:
    return (os.getenv("EMAIL_SENDER") or "").strip() or DEFAULT_SENDER


class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")
        self.timeout_seconds = env_int("EMAIL_SEND_TIMEOUT_SECONDS", DEFAULT_SEND_TIMEOUT_SECONDS)

    async def _fetch_attachments(self, attachments: Sequence[EmailAttachment]) -> List[dict]:
        """Download attachment bytes by URL. Unreachable files are skipped with a warning."""
        fetched = []
        async with httpx.AsyncClient(timeout=ATTACHMENT_FETCH_TIMEOUT_SECONDS, follow_redirects=True) as http:
            for att in attachments:
                try:
                    resp = await http.get(att.url)
                    resp.raise_for_status()
                except httpx.HTTPError as e:
                    logger.warning("Skipping attachment %s (%s): %s", att.filename, att.url, e)
                    continue
                fetched.append({
                    "Name": att.filename,
                    "Content": base64.b64encode(resp.content).decode("ascii"),
                    "ContentType": resp.headers.get("content-type", "application/octet-stream"),
                })
        return fetched

    async def send(
        self,
        to: Union[str, Sequence[str]],
        subject: str,
        html: str,
        attachments: Optional[Sequence[EmailAttachment]] = None,
        tag: Optional[str] = None,
    ) -> str:
        """Send one message and return the provider message id.

        Raises EmailDeliveryError on provider failure or timeout.
        """
        recipients = [to] if isinstance(to, str) else list(to)
        if not self.client:
            # Dev mode - just log
            message_id = f"dev-{uuid.uuid4()}"
            logger.info(
                "[DEV MODE] Email logged (not sent) to %s subject=%r attachments=%d",
                ", ".join(mask_email(r) for r in recipients), subject, len(attachments or []),
            )
            return message_id

        payload = {
            "From": get_sender(),
            "To": ", ".join(recipients),
            "Subject": subject,
            "HtmlBody": html,
            "TrackOpens": True,
        }
        if tag:
            payload["Tag"] = tag
        if attachments:
            payload["Attachments"] = await self._fetch_attachments(attachments)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.client.emails.send, **payload),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EmailDeliveryError(f"Email send timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise EmailDeliveryError(f"{type(e).__name__}: {e}") from e

        message_id = response.get("MessageID") if isinstance(response, dict) else None
        if not message_id:
            raise EmailDeliveryError(f"Unexpected provider response: {response!r}")
        logger.info("Email sent to %s: %s", ", ".join(mask_email(r) for r in recipients), message_id)
        return message_id


email_service = EmailService()
