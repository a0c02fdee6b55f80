"""
Process-start configuration check.

Every variable the onboarding pipeline needs to talk to its collaborators
(MongoDB, Postmark, Stripe, the public file URL base) must be present before
the API accepts traffic. Missing values are reported together so a deploy can
be fixed in one pass.
"""
import os
import logging
from typing import List, Optional, Mapping

logger = logging.getLogger(__name__)

REQUIRED_ENV = (
    "MONGO_URL",
    "DB_NAME",
    "POSTMARK_SERVER_TOKEN",
    "EMAIL_SENDER",
    "ADMIN_EMAIL",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "PUBLIC_API_URL",
)


class ConfigurationError(RuntimeError):
    """Raised at startup when required environment variables are missing."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing required environment variables: " + ", ".join(self.missing)
        )


def missing_env(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Names of required variables that are unset or blank, in declaration order."""
    env = os.environ if environ is None else environ
    return [name for name in REQUIRED_ENV if not (env.get(name) or "").strip()]


def check_required_env(environ: Optional[Mapping[str, str]] = None) -> None:
    missing = missing_env(environ)
    if missing:
        logger.error("Startup aborted; missing env: %s", ", ".join(missing))
        raise ConfigurationError(missing)
    logger.info("Environment configuration verified (%d required variables)", len(REQUIRED_ENV))


def env_int(name: str, default: int) -> int:
    """Integer env knob; malformed values fall back to the default with a warning."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, raw, default)
        return default


def env_flag(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")
