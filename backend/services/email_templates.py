"""
Built-in HTML email templates for the onboarding funnel.

Each builder takes a stored submission (either schema generation) and returns a
RenderedEmail. All user-provided text is HTML-escaped.
"""
from dataclasses import dataclass, field
from enum import Enum
from html import escape
from typing import Any, Dict, List, Optional, Sequence

from services.email_service import EmailAttachment
from utils.public_url import get_site_url

BRAND = "AIChatFlows"
SUPPORT_EMAIL = "support@ai-chatflows.com"


class EmailTemplate(str, Enum):
    WELCOME = "welcome"
    ADMIN_SUBMISSION = "admin_submission"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    PAYMENT_ADMIN = "payment_admin"


@dataclass
class RenderedEmail:
    template: EmailTemplate
    to: List[str]
    subject: str
    html: str
    attachments: List[EmailAttachment] = field(default_factory=list)


PLAN_LABELS = {"starter": "Starter", "pro": "Pro", "pro_plus": "Pro Plus"}


def display_name(submission: Dict[str, Any]) -> str:
    return (
        submission.get("business_name")
        or submission.get("company")
        or submission.get("name")
        or submission.get("email", "")
    )


def format_amount(amount_total: Optional[int], currency: Optional[str]) -> str:
    if amount_total is None:
        return "n/a"
    return f"{amount_total / 100:.2f} {(currency or 'usd').upper()}"


def _wrap(title: str, body: str) -> str:
    return (
        '<div style="font-family: -apple-system, Segoe UI, Roboto, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<div style="background: #111827; padding: 24px; text-align: center;">'
        f'<h1 style="color: #ffffff; margin: 0; font-size: 22px;">{escape(title)}</h1></div>'
        f'<div style="padding: 24px; color: #1f2937;">{body}</div>'
        f'<div style="background: #f8fafc; padding: 16px; text-align: center; color: #6b7280; font-size: 12px;">'
        f'{BRAND} &middot; <a href="{escape(get_site_url())}">{escape(get_site_url())}</a></div>'
        '</div>'
    )


def _rows(pairs: Sequence) -> str:
    rows = "".join(
        f'<tr><td style="padding: 4px 12px 4px 0; font-weight: 600;">{escape(label)}</td>'
        f'<td style="padding: 4px 0;">{escape(str(value))}</td></tr>'
        for label, value in pairs
        if value not in (None, "", [])
    )
    return f'<table style="border-collapse: collapse;">{rows}</table>'


def _joined(values: Optional[List[str]], other: Optional[str] = None) -> str:
    text = ", ".join(values or [])
    if other:
        text = f"{text} (Other: {other})"
    return text


def welcome_email(submission: Dict[str, Any]) -> RenderedEmail:
    name = display_name(submission)
    plan = PLAN_LABELS.get(submission.get("plan"), submission.get("plan"))
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Thanks for choosing {BRAND}. Your <strong>{escape(str(plan))}</strong> setup has started.</p>"
        "<ol>"
        "<li>Complete your payment using the checkout link</li>"
        "<li>We review your business details and documents</li>"
        "<li>Receive your login credentials within 24 hours</li>"
        "</ol>"
        f'<p>Questions? Reply to this email or write to <a href="mailto:{SUPPORT_EMAIL}">{SUPPORT_EMAIL}</a>.</p>'
    )
    return RenderedEmail(
        template=EmailTemplate.WELCOME,
        to=[submission["email"]],
        subject=f"Welcome to {BRAND} - Setup Started",
        html=_wrap("Your Setup is Starting", body),
    )


def _file_links(submission: Dict[str, Any]) -> str:
    links = []
    if submission.get("menu_file_url"):
        links.append(("Menu", submission["menu_file_url"]))
    if submission.get("faq_file_url"):
        links.append(("FAQ", submission["faq_file_url"]))
    if submission.get("file_url"):
        links.append(("Uploaded file", submission["file_url"]))
    for i, url in enumerate(submission.get("additional_docs_urls") or [], start=1):
        links.append((f"Document {i}", url))
    if not links:
        return "<p>No files uploaded.</p>"
    items = "".join(f'<li><a href="{escape(url)}">{escape(label)}</a></li>' for label, url in links)
    return f"<ul>{items}</ul>"


def admin_submission_email(
    submission: Dict[str, Any],
    admin_email: str,
    attachments: Optional[List[EmailAttachment]] = None,
) -> RenderedEmail:
    name = display_name(submission)
    details = _rows([
        ("Business", submission.get("business_name")),
        ("Name", submission.get("name")),
        ("Company", submission.get("company")),
        ("Email", submission.get("email")),
        ("Phone", submission.get("phone")),
        ("Instagram", submission.get("instagram_handle")),
        ("Other platforms", submission.get("other_platforms")),
        ("Type", _joined([submission["business_type"]], submission.get("business_type_other"))
            if submission.get("business_type") else None),
        ("Plan", submission.get("plan")),
        ("Categories", _joined(submission.get("product_categories"), submission.get("product_categories_other"))),
        ("Customer questions", _joined(submission.get("customer_questions"), submission.get("customer_questions_other"))),
        ("Delivery/Pickup", submission.get("delivery_pickup")),
        ("Delivery options", _joined(submission.get("delivery_options"), submission.get("delivery_options_other"))),
        ("Pickup options", _joined(submission.get("pickup_options"), submission.get("pickup_options_other"))),
        ("Delivery notes", submission.get("delivery_notes")),
        ("Menu description", submission.get("menu_description")),
        ("Credentials", submission.get("credential_sharing") or submission.get("login_sharing_preference")),
        ("Has FAQs", submission.get("has_faqs")),
        ("FAQ content", submission.get("faq_content")),
        ("Submission ID", submission.get("id")),
        ("Submitted", submission.get("created_at")),
    ])
    body = f"{details}<h3>Files</h3>{_file_links(submission)}"
    return RenderedEmail(
        template=EmailTemplate.ADMIN_SUBMISSION,
        to=[admin_email],
        subject=f"New Client Onboarding Form Submitted - {name}",
        html=_wrap("New Client Onboarding Form", body),
        attachments=list(attachments or []),
    )


def payment_confirmation_email(submission: Dict[str, Any]) -> RenderedEmail:
    name = display_name(submission)
    plan = PLAN_LABELS.get(submission.get("plan"), submission.get("plan"))
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>We received your payment for the <strong>{escape(str(plan))}</strong> plan. Thank you!</p>"
        "<p>Our team will prepare your social media account access and reach out within 24 hours "
        "with your login credentials and setup instructions.</p>"
        f'<p>Need help? <a href="mailto:{SUPPORT_EMAIL}">{SUPPORT_EMAIL}</a></p>'
    )
    return RenderedEmail(
        template=EmailTemplate.PAYMENT_CONFIRMATION,
        to=[submission["email"]],
        subject=f"Your {BRAND} Payment Receipt",
        html=_wrap("Payment Confirmed", body),
    )


def payment_admin_email(
    submission: Dict[str, Any],
    admin_email: str,
    payment: Dict[str, Any],
) -> RenderedEmail:
    """Admin alert for a completed payment; the only template that carries payment metadata."""
    name = display_name(submission)
    details = _rows([
        ("Business", name),
        ("Email", submission.get("email")),
        ("Plan", submission.get("plan")),
        ("Amount", format_amount(payment.get("amount_total"), payment.get("currency"))),
        ("Transaction", payment.get("payment_intent") or payment.get("session_id")),
        ("Checkout session", payment.get("session_id")),
        ("Submission ID", submission.get("id")),
    ])
    body = f"{details}<p><strong>Action required:</strong> begin account setup for {escape(name)}.</p>"
    return RenderedEmail(
        template=EmailTemplate.PAYMENT_ADMIN,
        to=[admin_email],
        subject=f"Payment Received - {name}",
        html=_wrap("Payment Received", body),
    )
