"""Stripe Service - tier catalogue and hosted-checkout redirect URLs.

Checkout uses Stripe Payment Links, one per pricing tier. The submission id is
passed as ``client_reference_id`` so the checkout.session.completed webhook can
be matched back to the stored submission.
"""
import stripe
import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, List
from urllib.parse import urlencode, urlsplit, parse_qsl, urlunsplit

from models import PricingTier

logger = logging.getLogger(__name__)

# Initialize Stripe (missing key is caught by the startup env check)
stripe.api_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()


@dataclass(frozen=True)
class TierPrice:
    tier: PricingTier
    name: str
    amount: int  # cents
    currency: str
    default_link: str
    link_env: str

    @property
    def payment_link(self) -> str:
        return (os.getenv(self.link_env) or "").strip() or self.default_link

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.tier.value,
            "name": self.name,
            "amount": self.amount,
            "currency": self.currency,
            "checkout_url": self.payment_link,
        }


STRIPE_PRICES: Dict[PricingTier, TierPrice] = {
    PricingTier.STARTER: TierPrice(
        PricingTier.STARTER, "Starter", 10000, "usd",
        "https://buy.stripe.com/9AQbKU5A3dKk4is5kO", "STRIPE_PAYMENT_LINK_STARTER",
    ),
    PricingTier.PRO: TierPrice(
        PricingTier.PRO, "Pro", 15000, "usd",
        "https://buy.stripe.com/fZe6s24dV8p80NOdQQ", "STRIPE_PAYMENT_LINK_PRO",
    ),
    PricingTier.PRO_PLUS: TierPrice(
        PricingTier.PRO_PLUS, "Pro Plus", 20000, "usd",
        "https://buy.stripe.com/28EeVe9V06nY4is59l8Vi02", "STRIPE_PAYMENT_LINK_PRO_PLUS",
    ),
}


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    query.update(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def get_checkout_url(plan: str, submission_id: str) -> str:
    """Tier payment link carrying the submission id as client_reference_id."""
    tier = PricingTier(plan)
    return _with_query(STRIPE_PRICES[tier].payment_link, client_reference_id=submission_id)


def list_plans() -> List[Dict[str, Any]]:
    return [price.to_dict() for price in STRIPE_PRICES.values()]
