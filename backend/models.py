from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class PricingTier(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    PRO_PLUS = "pro_plus"

class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"

class DeliveryPickup(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    BOTH = "both"
    NEITHER = "neither"

class CredentialSharing(str, Enum):
    DIRECT = "direct"
    SENDSECURELY = "sendsecurely"
    CALL = "call"

class HasFaqs(str, Enum):
    YES = "yes"
    NO = "no"

class LoginSharingPreference(str, Enum):
    SECURE_SITE = "secure_site"
    IN_PERSON_SETUP = "in_person_setup"
    EMAIL_ENCRYPTED = "email_encrypted"
    PHONE_CALL = "phone_call"

class AuditAction(str, Enum):
    # Intake
    SUBMISSION_CREATED = "SUBMISSION_CREATED"
    LEGACY_SUBMISSION_CREATED = "LEGACY_SUBMISSION_CREATED"
    UPLOAD_FAILED = "UPLOAD_FAILED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"
    EMAIL_DUPLICATE_SKIPPED = "EMAIL_DUPLICATE_SKIPPED"

    # Payments
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_SESSION_EXPIRED = "PAYMENT_SESSION_EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    WEBHOOK_REJECTED = "WEBHOOK_REJECTED"


# Multi-select sentinel; business type uses the lower-case form
OTHER_OPTION = "Other"
BUSINESS_TYPE_OTHER = "other"

DEFAULT_SOURCE = "ai-chatflows.com"

# ============================================================================
# SUBMISSIONS
# ============================================================================

class OnboardingSubmission(BaseModel):
    """Current-generation onboarding submission (collection: onboarding_submissions)."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    business_name: str
    instagram_handle: str
    other_platforms: Optional[str] = None
    business_type: str
    business_type_other: Optional[str] = None
    product_categories: List[str]
    product_categories_other: Optional[str] = None
    customer_questions: List[str]
    customer_questions_other: Optional[str] = None
    delivery_pickup: DeliveryPickup
    delivery_options: List[str] = Field(default_factory=list)
    delivery_options_other: Optional[str] = None
    pickup_options: List[str] = Field(default_factory=list)
    pickup_options_other: Optional[str] = None
    delivery_notes: Optional[str] = None
    menu_description: Optional[str] = None
    menu_file_url: Optional[str] = None
    faq_file_url: Optional[str] = None
    additional_docs_urls: List[str] = Field(default_factory=list)
    has_faqs: HasFaqs
    faq_content: Optional[str] = None
    plan: PricingTier
    credential_sharing: CredentialSharing
    credentials_direct: Optional[str] = None
    email: EmailStr
    consent_checkbox: bool
    source: str = DEFAULT_SOURCE
    payment_status: PaymentStatus = PaymentStatus.PENDING
    stripe_session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LegacyFormSubmission(BaseModel):
    """Older single-file onboarding form (collection: form_submissions)."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    email: EmailStr
    phone: Optional[str] = None
    company: Optional[str] = None
    plan: PricingTier
    instagram_login: Optional[str] = None
    facebook_login: Optional[str] = None
    twitter_login: Optional[str] = None
    linkedin_login: Optional[str] = None
    tiktok_login: Optional[str] = None
    login_sharing_preference: LoginSharingPreference
    file_url: Optional[str] = None
    source: str = DEFAULT_SOURCE
    payment_status: PaymentStatus = PaymentStatus.PENDING
    stripe_session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# AUDIT
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    reason_code: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
