"""Onboarding Validation Engine.

Validates raw multipart form fields for both onboarding form generations:

- Primitive checks (required, length, enum, email) run through pydantic models.
- Cross-field checks are a declarative list of named rules; each rule reads the
  normalized field mapping and is evaluated independently of the others.

Every violation is collected and reported together as a list of
``{"path": ..., "message": ...}`` entries so the form can highlight all of them
in one round trip. Nothing here touches storage, the database or email.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from models import (
    BUSINESS_TYPE_OTHER,
    OTHER_OPTION,
    CredentialSharing,
    DeliveryPickup,
    HasFaqs,
    LoginSharingPreference,
    PricingTier,
)

logger = logging.getLogger(__name__)


class OnboardingValidationError(Exception):
    """Raised when a submission fails validation. Carries every field error."""

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} validation error(s)")

    @property
    def paths(self) -> List[str]:
        return [e["path"] for e in self.errors]


# ============================================================================
# Raw field normalization
# ============================================================================

LIST_FIELDS = (
    "product_categories",
    "customer_questions",
    "delivery_options",
    "pickup_options",
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_list(value: Any) -> List[str]:
    """Accept a JSON-encoded array string, repeated form values, or a single value."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        if len(value) == 1 and isinstance(value[0], str) and value[0].strip().startswith("["):
            return coerce_list(value[0])
        return [str(v).strip() for v in value if not _blank(v)]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            parsed = json.loads(text)
            if not isinstance(parsed, list):
                raise ValueError("expected a JSON array")
            return [str(v).strip() for v in parsed if not _blank(v)]
        return [text]
    return [str(value)]


def coerce_bool(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "on", "1", "yes")


def _scalar(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if _blank(value):
        return None
    return str(value).strip()


def normalize_onboarding_fields(raw: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """Turn raw form values into plain python values.

    Returns (fields, errors); malformed list payloads are reported as errors
    rather than raised so they join the rest of the error set.
    """
    fields: Dict[str, Any] = {}
    errors: List[Dict[str, str]] = []
    for key, value in raw.items():
        if key in LIST_FIELDS:
            try:
                fields[key] = coerce_list(value)
            except ValueError:
                fields[key] = []
                errors.append({"path": key, "message": "Must be a list of options"})
        elif key == "consent_checkbox":
            fields[key] = coerce_bool(value)
        else:
            fields[key] = _scalar(value)
    for key in LIST_FIELDS:
        fields.setdefault(key, [])
    fields.setdefault("consent_checkbox", False)
    return fields, errors


# ============================================================================
# Primitive schemas
# ============================================================================

class OnboardingPayload(BaseModel):
    """Typed onboarding form payload after primitive checks."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    business_name: str = Field(min_length=2, max_length=100)
    instagram_handle: str = Field(min_length=1, max_length=50)
    other_platforms: Optional[str] = None
    business_type: str = Field(min_length=1, max_length=100)
    business_type_other: Optional[str] = None
    product_categories: List[str] = Field(min_length=1)
    product_categories_other: Optional[str] = None
    customer_questions: List[str] = Field(min_length=1)
    customer_questions_other: Optional[str] = None
    delivery_pickup: DeliveryPickup
    delivery_options: List[str] = Field(default_factory=list)
    delivery_options_other: Optional[str] = None
    pickup_options: List[str] = Field(default_factory=list)
    pickup_options_other: Optional[str] = None
    delivery_notes: Optional[str] = None
    menu_description: Optional[str] = None
    plan: PricingTier
    credential_sharing: CredentialSharing
    credentials_direct: Optional[str] = None
    has_faqs: HasFaqs
    faq_content: Optional[str] = None
    email: EmailStr
    consent_checkbox: bool = False


class LegacyFormPayload(BaseModel):
    """Typed payload for the older single-file onboarding form."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
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


FIELD_MESSAGES = {
    "business_name": "Business name must be between 2 and 100 characters",
    "instagram_handle": "Instagram handle is required (max 50 characters)",
    "business_type": "Business type is required",
    "product_categories": "Please select at least one product category",
    "customer_questions": "Please select at least one common question type",
    "delivery_pickup": "Please choose delivery, pickup, both or neither",
    "plan": "Please choose a plan: starter, pro or pro_plus",
    "credential_sharing": "Please choose how you will share credentials",
    "has_faqs": "Please tell us whether you have FAQs",
    "email": "Please enter a valid email address",
    "name": "Name must be between 2 and 100 characters",
    "login_sharing_preference": "Please choose how you will share your logins",
}


def _primitive_errors(model: type, fields: Dict[str, Any]) -> Tuple[Optional[BaseModel], List[Dict[str, str]]]:
    try:
        return model.model_validate(fields), []
    except ValidationError as e:
        errors = []
        for err in e.errors():
            loc = [str(part) for part in err.get("loc", ())]
            path = ".".join(loc) or "__root__"
            message = FIELD_MESSAGES.get(loc[0] if loc else "", err.get("msg", "Invalid value"))
            errors.append({"path": path, "message": message})
        return None, errors


# ============================================================================
# Cross-field rules
# ============================================================================

@dataclass(frozen=True)
class CrossFieldRule:
    """A named conditional requirement.

    ``check`` receives the normalized field mapping and returns True when the
    rule is satisfied. A failing rule yields one error at ``path``.
    """
    name: str
    path: str
    message: str
    check: Callable[[Mapping[str, Any]], bool]

    def evaluate(self, fields: Mapping[str, Any]) -> Optional[Dict[str, str]]:
        try:
            ok = self.check(fields)
        except (TypeError, AttributeError, ValueError):
            ok = False
        if ok:
            return None
        return {"path": self.path, "message": self.message}


def _other_requires_text(list_field: str, other_field: str) -> Callable[[Mapping[str, Any]], bool]:
    def check(fields):
        if OTHER_OPTION not in (fields.get(list_field) or []):
            return True
        return not _blank(fields.get(other_field))
    return check


def _mode_requires_options(modes: Iterable[str], list_field: str) -> Callable[[Mapping[str, Any]], bool]:
    modes = tuple(modes)

    def check(fields):
        if (fields.get("delivery_pickup") or "") not in modes:
            return True
        return bool(fields.get(list_field))
    return check


def _direct_credentials(fields):
    if fields.get("credential_sharing") != CredentialSharing.DIRECT.value:
        return True
    return not _blank(fields.get("credentials_direct"))


def _business_type_other(fields):
    if (fields.get("business_type") or "").strip().lower() != BUSINESS_TYPE_OTHER:
        return True
    return not _blank(fields.get("business_type_other"))


def _consent_given(fields):
    return fields.get("consent_checkbox") is True


ONBOARDING_RULES: List[CrossFieldRule] = [
    CrossFieldRule(
        "product_categories_other", "product_categories_other",
        "Please specify the other product category",
        _other_requires_text("product_categories", "product_categories_other"),
    ),
    CrossFieldRule(
        "customer_questions_other", "customer_questions_other",
        "Please specify the other question type",
        _other_requires_text("customer_questions", "customer_questions_other"),
    ),
    CrossFieldRule(
        "delivery_options_other", "delivery_options_other",
        "Please specify the other delivery option",
        _other_requires_text("delivery_options", "delivery_options_other"),
    ),
    CrossFieldRule(
        "pickup_options_other", "pickup_options_other",
        "Please specify the other pickup option",
        _other_requires_text("pickup_options", "pickup_options_other"),
    ),
    CrossFieldRule(
        "delivery_options_required", "delivery_options",
        "Please select at least one delivery option",
        _mode_requires_options((DeliveryPickup.DELIVERY.value, DeliveryPickup.BOTH.value), "delivery_options"),
    ),
    CrossFieldRule(
        "pickup_options_required", "pickup_options",
        "Please select at least one pickup option",
        _mode_requires_options((DeliveryPickup.PICKUP.value, DeliveryPickup.BOTH.value), "pickup_options"),
    ),
    CrossFieldRule(
        "credentials_direct_required", "credentials_direct",
        "Please provide your login credentials or choose another sharing method",
        _direct_credentials,
    ),
    CrossFieldRule(
        "business_type_other_required", "business_type_other",
        "Please specify your business type",
        _business_type_other,
    ),
    CrossFieldRule(
        "consent_required", "consent_checkbox",
        "You must agree to the terms and conditions",
        _consent_given,
    ),
]


SOCIAL_LOGIN_FIELDS = (
    "instagram_login",
    "facebook_login",
    "twitter_login",
    "linkedin_login",
    "tiktok_login",
)


def _social_login_for_plan(fields):
    if fields.get("plan") == PricingTier.STARTER.value:
        return not _blank(fields.get("instagram_login"))
    return any(not _blank(fields.get(f)) for f in SOCIAL_LOGIN_FIELDS)


LEGACY_RULES: List[CrossFieldRule] = [
    CrossFieldRule(
        "social_login_required", "instagram_login",
        "At least one social media login is required for your selected plan",
        _social_login_for_plan,
    ),
]


def evaluate_rules(rules: Iterable[CrossFieldRule], fields: Mapping[str, Any]) -> List[Dict[str, str]]:
    errors = []
    for rule in rules:
        error = rule.evaluate(fields)
        if error:
            errors.append(error)
    return errors


def _merge(*groups: Iterable[Dict[str, str]]) -> List[Dict[str, str]]:
    seen = set()
    merged = []
    for group in groups:
        for err in group:
            key = (err["path"], err["message"])
            if key not in seen:
                seen.add(key)
                merged.append(err)
    return merged


# ============================================================================
# Entry points
# ============================================================================

def validate_onboarding(
    raw: Mapping[str, Any],
    file_errors: Iterable[Dict[str, str]] = (),
) -> OnboardingPayload:
    """Validate a raw onboarding form. Raises OnboardingValidationError with all errors."""
    fields, parse_errors = normalize_onboarding_fields(raw)
    payload, primitive = _primitive_errors(OnboardingPayload, fields)
    errors = _merge(parse_errors, primitive, evaluate_rules(ONBOARDING_RULES, fields), file_errors)
    if errors:
        logger.info("Onboarding validation failed paths=%s", [e["path"] for e in errors])
        raise OnboardingValidationError(errors)
    return payload


def validate_legacy_form(
    raw: Mapping[str, Any],
    file_errors: Iterable[Dict[str, str]] = (),
) -> LegacyFormPayload:
    fields = {key: _scalar(value) for key, value in raw.items()}
    payload, primitive = _primitive_errors(LegacyFormPayload, fields)
    errors = _merge(primitive, evaluate_rules(LEGACY_RULES, fields), file_errors)
    if errors:
        logger.info("Legacy form validation failed paths=%s", [e["path"] for e in errors])
        raise OnboardingValidationError(errors)
    return payload
