"""Built-in email templates: recipients, subjects, escaping, payment details only for the admin."""
from services.email_service import EmailAttachment, mask_email
from services.email_templates import (
    EmailTemplate,
    admin_submission_email,
    format_amount,
    payment_admin_email,
    payment_confirmation_email,
    welcome_email,
)

SUBMISSION = {
    "id": "sub-42",
    "business_name": "Tom & Jerry's <Diner>",
    "email": "owner@diner.example.com",
    "plan": "pro_plus",
    "business_type": "other",
    "business_type_other": "Diner",
    "product_categories": ["Breakfast", "Other"],
    "product_categories_other": "Milkshakes",
    "menu_file_url": "https://files.test/menus/menus/1.pdf",
}
PAYMENT = {"session_id": "cs_test_9", "amount_total": 20000, "currency": "usd", "payment_intent": "pi_9"}


def test_welcome_goes_to_submitter_and_escapes_name():
    email = welcome_email(SUBMISSION)
    assert email.template == EmailTemplate.WELCOME
    assert email.to == ["owner@diner.example.com"]
    assert email.subject == "Welcome to AIChatFlows - Setup Started"
    assert "Tom &amp; Jerry&#x27;s &lt;Diner&gt;" in email.html
    assert "<Diner>" not in email.html
    assert "Pro Plus" in email.html


def test_admin_submission_lists_fields_and_files():
    attachments = [EmailAttachment("menu-menu.pdf", SUBMISSION["menu_file_url"])]
    email = admin_submission_email(SUBMISSION, "admin@ai-chatflows.com", attachments)
    assert email.to == ["admin@ai-chatflows.com"]
    assert email.subject == "New Client Onboarding Form Submitted - Tom & Jerry's <Diner>"
    assert "Other: Milkshakes" in email.html
    assert SUBMISSION["menu_file_url"] in email.html
    assert email.attachments == attachments


def test_admin_submission_without_files():
    email = admin_submission_email({"id": "s", "name": "Dana", "email": "d@example.com"}, "admin@x.com")
    assert "No files uploaded." in email.html


def test_payment_amount_only_in_admin_email():
    client = payment_confirmation_email(SUBMISSION)
    admin = payment_admin_email(SUBMISSION, "admin@ai-chatflows.com", PAYMENT)
    assert client.subject == "Your AIChatFlows Payment Receipt"
    assert admin.subject == "Payment Received - Tom & Jerry's <Diner>"
    assert "200.00 USD" in admin.html
    assert "pi_9" in admin.html
    assert "200.00" not in client.html
    assert "pi_9" not in client.html


def test_format_amount():
    assert format_amount(10000, "usd") == "100.00 USD"
    assert format_amount(None, "usd") == "n/a"


def test_mask_email():
    assert mask_email("owner@diner.example.com") == "ow***@diner.example.com"
