"""
Validation engine: primitive checks, conditional cross-field rules, all errors reported at once.
"""
import json
import pytest

from services.onboarding_validation import (
    ONBOARDING_RULES,
    OnboardingValidationError,
    coerce_list,
    evaluate_rules,
    validate_legacy_form,
    validate_onboarding,
)


def _valid_form(**overrides):
    form = {
        "business_name": "Sunrise Bakery",
        "instagram_handle": "@sunrisebakery",
        "business_type": "bakery",
        "product_categories": json.dumps(["Desserts", "Beverages"]),
        "customer_questions": json.dumps(["Hours", "Menu items"]),
        "delivery_pickup": "neither",
        "plan": "starter",
        "credential_sharing": "call",
        "has_faqs": "no",
        "email": "owner@sunrise.example.com",
        "consent_checkbox": "true",
    }
    form.update(overrides)
    return form


def _paths(exc_info):
    return [e["path"] for e in exc_info.value.errors]


def test_valid_form_returns_typed_payload():
    payload = validate_onboarding(_valid_form())
    assert payload.business_name == "Sunrise Bakery"
    assert payload.product_categories == ["Desserts", "Beverages"]
    assert payload.plan.value == "starter"
    assert payload.consent_checkbox is True


def test_list_fields_accept_json_and_repeated_values():
    assert coerce_list('["Hours", "Parking"]') == ["Hours", "Parking"]
    assert coerce_list(["Hours", "Parking"]) == ["Hours", "Parking"]
    assert coerce_list(['["Stock"]']) == ["Stock"]
    assert coerce_list("Hours") == ["Hours"]
    assert coerce_list("") == []


def test_malformed_list_is_reported_as_field_error():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(product_categories="[not json"))
    assert "product_categories" in _paths(exc)


def test_business_type_other_requires_qualifier():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(business_type="other"))
    assert _paths(exc) == ["business_type_other"]

    payload = validate_onboarding(_valid_form(business_type="other", business_type_other="Food truck"))
    assert payload.business_type_other == "Food truck"


@pytest.mark.parametrize("list_field,other_field", [
    ("product_categories", "product_categories_other"),
    ("customer_questions", "customer_questions_other"),
])
def test_other_sentinel_requires_free_text(list_field, other_field):
    form = _valid_form(**{list_field: json.dumps(["Other"])})
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(form)
    assert other_field in _paths(exc)

    form[other_field] = "Gluten free options"
    validate_onboarding(form)


def test_other_text_not_required_without_sentinel():
    payload = validate_onboarding(_valid_form(product_categories_other=""))
    assert payload.product_categories_other is None


def test_delivery_mode_requires_delivery_options():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(delivery_pickup="delivery"))
    assert _paths(exc) == ["delivery_options"]

    validate_onboarding(_valid_form(delivery_pickup="delivery", delivery_options=json.dumps(["DoorDash"])))


def test_both_mode_requires_both_option_lists():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(delivery_pickup="both"))
    assert set(_paths(exc)) == {"delivery_options", "pickup_options"}


def test_pickup_other_option_requires_text():
    form = _valid_form(delivery_pickup="pickup", pickup_options=json.dumps(["Other"]))
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(form)
    assert _paths(exc) == ["pickup_options_other"]


def test_direct_credentials_required_when_sharing_directly():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(credential_sharing="direct"))
    assert _paths(exc) == ["credentials_direct"]

    validate_onboarding(_valid_form(credential_sharing="direct", credentials_direct="ig: user / pass"))


def test_consent_must_be_true():
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(consent_checkbox="false"))
    assert _paths(exc) == ["consent_checkbox"]


def test_all_violations_reported_together():
    form = _valid_form(
        business_name="S",
        email="not-an-email",
        plan="enterprise",
        business_type="other",
        credential_sharing="direct",
        delivery_pickup="both",
        consent_checkbox="",
    )
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(form)
    paths = set(_paths(exc))
    assert {
        "business_name", "email", "plan", "business_type_other", "credentials_direct",
        "delivery_options", "pickup_options", "consent_checkbox",
    } <= paths


def test_cross_field_rules_evaluate_independently():
    fields = {"business_type": "other", "credential_sharing": "direct", "consent_checkbox": True}
    errors = evaluate_rules(ONBOARDING_RULES, fields)
    assert {e["path"] for e in errors} == {"business_type_other", "credentials_direct"}
    names = [rule.name for rule in ONBOARDING_RULES]
    assert len(names) == len(set(names))


def test_file_errors_join_the_error_set():
    file_errors = [{"path": "menu_file", "message": "Menu file size must be less than 5MB"}]
    with pytest.raises(OnboardingValidationError) as exc:
        validate_onboarding(_valid_form(consent_checkbox="false"), file_errors)
    assert set(_paths(exc)) == {"menu_file", "consent_checkbox"}


class TestLegacyForm:

    def _form(self, **overrides):
        form = {
            "name": "Dana Reyes",
            "email": "dana@example.com",
            "plan": "starter",
            "instagram_login": "dana_ig",
            "login_sharing_preference": "secure_site",
        }
        form.update(overrides)
        return form

    def test_valid_legacy_form(self):
        payload = validate_legacy_form(self._form())
        assert payload.name == "Dana Reyes"

    def test_starter_requires_instagram_login(self):
        with pytest.raises(OnboardingValidationError) as exc:
            validate_legacy_form(self._form(instagram_login="", facebook_login="dana_fb"))
        assert _paths(exc) == ["instagram_login"]

    def test_pro_accepts_any_social_login(self):
        validate_legacy_form(self._form(plan="pro", instagram_login="", tiktok_login="dana_tt"))

    def test_pro_plus_requires_at_least_one_login(self):
        with pytest.raises(OnboardingValidationError) as exc:
            validate_legacy_form(self._form(plan="pro_plus", instagram_login=""))
        assert _paths(exc) == ["instagram_login"]

    def test_invalid_sharing_preference(self):
        with pytest.raises(OnboardingValidationError) as exc:
            validate_legacy_form(self._form(login_sharing_preference="carrier_pigeon"))
        assert "login_sharing_preference" in _paths(exc)
