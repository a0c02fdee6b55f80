"""Submission Repository - single-row persistence for onboarding submissions.

One repository per schema generation: the current enhanced form writes to
``onboarding_submissions``; the older single-file form writes to
``form_submissions``. Both expose the same SubmissionSource interface so the
payment reconciler can walk them in order without knowing which generation a
reference belongs to.

Write rules:
- ``id`` and ``created_at`` never change after create.
- File URL fields and ``stripe_session_id`` are written once; a later update
  that tries to replace an existing value is ignored.
- ``payment_status`` only moves pending -> completed, atomically.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from database import database
from models import LegacyFormSubmission, OnboardingSubmission, PaymentStatus

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("id", "created_at")
WRITE_ONCE_FIELDS = ("menu_file_url", "faq_file_url", "file_url", "stripe_session_id")


class SubmissionPersistenceError(Exception):
    """Store unavailable, write rejected, or required fields missing."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = missing or []
        super().__init__(message)


class SubmissionNotFoundError(Exception):
    pass


def _is_set(value: Any) -> bool:
    return value not in (None, "", [])


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SubmissionSource(ABC):
    """Somewhere a payment reference can be resolved to a submission."""

    name: str = "source"

    @abstractmethod
    async def resolve(self, reference: str) -> Optional[Dict[str, Any]]:
        """Find a submission by id or payment session id."""
        pass

    @abstractmethod
    async def mark_payment_completed(self, submission: Dict[str, Any], session_id: Optional[str]) -> bool:
        """Flip pending -> completed. Returns False when it was already completed."""
        pass


class SubmissionRepository(SubmissionSource):
    def __init__(
        self,
        collection_name: str,
        model: Type[BaseModel],
        required_fields: Iterable[str],
        resource_type: str,
    ):
        self.collection_name = collection_name
        self.name = collection_name
        self.model = model
        self.required_fields = tuple(required_fields)
        self.resource_type = resource_type

    def _collection(self):
        return database.get_db()[self.collection_name]

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate required fields, assign id/created_at and insert one row."""
        missing = [f for f in self.required_fields if not _is_set(data.get(f))]
        if missing:
            raise SubmissionPersistenceError(
                f"Missing required fields for {self.collection_name}: {', '.join(missing)}",
                missing=missing,
            )
        if "consent_checkbox" in self.model.model_fields and data.get("consent_checkbox") is not True:
            raise SubmissionPersistenceError("Consent must be given before a submission is stored",
                                             missing=["consent_checkbox"])

        clean = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}
        try:
            submission = self.model(**clean)
        except ValidationError as e:
            raise SubmissionPersistenceError(f"Submission rejected: {e.error_count()} invalid field(s)") from e

        doc = submission.model_dump(mode="json")
        try:
            await self._collection().insert_one(doc)
        except Exception as e:
            logger.error("Submission insert failed collection=%s error=%s", self.collection_name, e)
            raise SubmissionPersistenceError("Submission store unavailable") from e
        doc.pop("_id", None)
        logger.info("Submission created collection=%s id=%s", self.collection_name, doc["id"])
        return doc

    async def get(self, submission_id: str) -> Optional[Dict[str, Any]]:
        return await self._collection().find_one({"id": submission_id}, {"_id": 0})

    async def get_by_payment_session(self, session_id: str) -> Dict[str, Any]:
        doc = await self._collection().find_one({"stripe_session_id": session_id}, {"_id": 0})
        if not doc:
            raise SubmissionNotFoundError(f"No submission for payment session {session_id}")
        return doc

    async def update(self, submission_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update. Safe to repeat; write-once fields keep their first value."""
        current = await self.get(submission_id)
        if not current:
            raise SubmissionNotFoundError(f"Submission not found: {submission_id}")

        updates = {}
        for key, value in fields.items():
            if key in IMMUTABLE_FIELDS:
                logger.warning("Ignoring update to immutable field %s on %s", key, submission_id)
                continue
            if key in WRITE_ONCE_FIELDS and _is_set(current.get(key)):
                if current.get(key) != value:
                    logger.warning("Ignoring overwrite of %s on %s", key, submission_id)
                continue
            updates[key] = _plain(value)

        if updates:
            try:
                await self._collection().update_one({"id": submission_id}, {"$set": updates})
            except Exception as e:
                raise SubmissionPersistenceError("Submission store unavailable") from e
            current.update(updates)
        return current

    async def resolve(self, reference: str) -> Optional[Dict[str, Any]]:
        if not reference:
            return None
        return await self._collection().find_one(
            {"$or": [{"id": reference}, {"stripe_session_id": reference}]},
            {"_id": 0},
        )

    async def mark_payment_completed(self, submission: Dict[str, Any], session_id: Optional[str]) -> bool:
        updates = {
            "payment_status": PaymentStatus.COMPLETED.value,
            "payment_completed_at": datetime.now(timezone.utc).isoformat(),
        }
        if session_id and not _is_set(submission.get("stripe_session_id")):
            updates["stripe_session_id"] = session_id
        # Conditional on pending so concurrent deliveries flip the row exactly once
        result = await self._collection().update_one(
            {"id": submission["id"], "payment_status": PaymentStatus.PENDING.value},
            {"$set": updates},
        )
        if result.modified_count != 1:
            return False
        submission.update(updates)
        return True


onboarding_repository = SubmissionRepository(
    "onboarding_submissions",
    OnboardingSubmission,
    required_fields=(
        "business_name", "instagram_handle", "business_type", "product_categories",
        "customer_questions", "delivery_pickup", "plan", "credential_sharing",
        "has_faqs", "email", "consent_checkbox",
    ),
    resource_type="onboarding_submission",
)

legacy_repository = SubmissionRepository(
    "form_submissions",
    LegacyFormSubmission,
    required_fields=("name", "email", "plan", "login_sharing_preference"),
    resource_type="form_submission",
)

# Current schema first, then the legacy generation
SUBMISSION_SOURCES: List[SubmissionSource] = [onboarding_repository, legacy_repository]
