"""Onboarding submission pipeline.

validate -> upload -> persist -> notify -> checkout URL

Validation (fields and file limits) happens before anything is uploaded or
stored. Uploads are isolated per file; persistence waits for all of them and
stores whichever URLs succeeded. Notification runs only after the row exists
and never fails the request.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from models import AuditAction, DEFAULT_SOURCE
from services.email_service import EmailAttachment
from services.notification_dispatcher import NotificationDispatcher, notification_dispatcher
from services.onboarding_validation import validate_legacy_form, validate_onboarding
from services.stripe_service import get_checkout_url
from services.submission_repository import SubmissionRepository, legacy_repository, onboarding_repository
from services.upload_orchestrator import (
    IncomingFile,
    LEGACY_FILE_CATEGORY,
    OnboardingUploads,
    UploadOrchestrator,
    UploadResult,
    check_file,
    upload_orchestrator,
)
from services.url_verifier import verify_urls
from utils.audit import create_audit_log
from utils.env_config import env_flag

logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    submission: Dict[str, Any]
    checkout_url: str
    uploads: Optional[OnboardingUploads] = None
    legacy_upload: Optional[UploadResult] = None

    @property
    def submission_id(self) -> str:
        return self.submission["id"]


def get_submission_source() -> str:
    return (os.getenv("SUBMISSION_SOURCE") or "").strip() or DEFAULT_SOURCE


class OnboardingPipeline:
    def __init__(
        self,
        repository: Optional[SubmissionRepository] = None,
        legacy: Optional[SubmissionRepository] = None,
        uploader: Optional[UploadOrchestrator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        verify_uploads: Optional[bool] = None,
    ):
        self.repository = repository or onboarding_repository
        self.legacy = legacy or legacy_repository
        self.uploader = uploader or upload_orchestrator
        self.dispatcher = dispatcher or notification_dispatcher
        self.verify_uploads = env_flag("VERIFY_UPLOAD_URLS", True) if verify_uploads is None else verify_uploads

    async def submit(
        self,
        fields: Mapping[str, Any],
        menu_file: Optional[IncomingFile] = None,
        faq_file: Optional[IncomingFile] = None,
        additional_docs: Sequence[IncomingFile] = (),
        ip_address: Optional[str] = None,
    ) -> SubmissionOutcome:
        """Run one enhanced onboarding submission.

        Raises OnboardingValidationError (nothing uploaded or stored) or
        SubmissionPersistenceError (uploads may exist; no row, no email).
        """
        file_errors = self.uploader.check_constraints(menu_file, faq_file, additional_docs)
        payload = validate_onboarding(fields, file_errors)

        uploads = await self.uploader.upload_onboarding_files(menu_file, faq_file, additional_docs)

        data = payload.model_dump()
        data.update(
            menu_file_url=uploads.menu_file_url,
            faq_file_url=uploads.faq_file_url,
            additional_docs_urls=uploads.additional_docs_urls,
            source=get_submission_source(),
        )
        submission = await self.repository.create(data)

        await create_audit_log(
            action=AuditAction.SUBMISSION_CREATED,
            actor_role="PUBLIC",
            resource_type=self.repository.resource_type,
            resource_id=submission["id"],
            metadata={"plan": submission["plan"], "uploads": uploads.to_dict()},
            ip_address=ip_address,
        )

        attachments = await self._reachable_attachments(self._onboarding_attachments(uploads))
        await self.dispatcher.notify_submission_received(submission, attachments)

        return SubmissionOutcome(
            submission=submission,
            checkout_url=get_checkout_url(submission["plan"], submission["id"]),
            uploads=uploads,
        )

    async def submit_legacy(
        self,
        fields: Mapping[str, Any],
        file: Optional[IncomingFile] = None,
        ip_address: Optional[str] = None,
    ) -> SubmissionOutcome:
        """Older single-file form; persisted to the legacy collection."""
        file_errors = check_file(LEGACY_FILE_CATEGORY, file) if file else []
        payload = validate_legacy_form(fields, file_errors)

        upload = await self.uploader.upload_legacy_file(file)
        data = payload.model_dump()
        data.update(file_url=upload.url if upload.success else None, source=get_submission_source())
        submission = await self.legacy.create(data)

        await create_audit_log(
            action=AuditAction.LEGACY_SUBMISSION_CREATED,
            actor_role="PUBLIC",
            resource_type=self.legacy.resource_type,
            resource_id=submission["id"],
            metadata={"plan": submission["plan"], "upload": upload.to_dict()},
            ip_address=ip_address,
        )

        attachments = []
        if upload.success:
            attachments = await self._reachable_attachments([EmailAttachment(upload.filename or "upload", upload.url)])
        await self.dispatcher.notify_submission_received(submission, attachments)

        return SubmissionOutcome(
            submission=submission,
            checkout_url=get_checkout_url(submission["plan"], submission["id"]),
            legacy_upload=upload,
        )

    @staticmethod
    def _onboarding_attachments(uploads: OnboardingUploads) -> List[EmailAttachment]:
        attachments = []
        if uploads.menu.success:
            attachments.append(EmailAttachment(f"menu-{uploads.menu.filename or 'file'}", uploads.menu.url))
        if uploads.faq.success:
            attachments.append(EmailAttachment(f"faq-{uploads.faq.filename or 'file'}", uploads.faq.url))
        for i, doc in enumerate(uploads.additional_docs, start=1):
            if doc.success:
                attachments.append(EmailAttachment(f"document-{i}-{doc.filename or 'file'}", doc.url))
        return attachments

    async def _reachable_attachments(self, attachments: List[EmailAttachment]) -> List[EmailAttachment]:
        """Drop attachments whose URL does not answer; the stored record keeps them."""
        if not attachments or not self.verify_uploads:
            return attachments
        reachable = await verify_urls(a.url for a in attachments)
        kept = [a for a in attachments if reachable.get(a.url)]
        if len(kept) < len(attachments):
            logger.warning("Excluded %d unreachable attachment(s) from admin email", len(attachments) - len(kept))
        return kept


onboarding_pipeline = OnboardingPipeline()
