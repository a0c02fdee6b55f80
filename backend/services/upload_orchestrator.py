"""File Upload Orchestrator - onboarding menu, FAQ and additional-document uploads.

Each file is checked against its category's size and type limits before any
storage call, then uploaded under a generated collision-resistant path. Every
file is tracked on its own: a failed upload is recorded in its UploadResult and
never aborts the others, and the submission is persisted with whatever URLs
succeeded.
"""
import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from models import AuditAction
from services.storage_adapter import (
    DOCUMENTS_BUCKET,
    FAQS_BUCKET,
    MENUS_BUCKET,
    StorageAdapter,
    generate_object_path,
    storage_adapter,
)
from utils.audit import create_audit_log
from utils.env_config import env_int

logger = logging.getLogger(__name__)

MB = 1024 * 1024
MAX_ADDITIONAL_DOCS = 10
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 30

IMAGE_MIMES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}
MENU_MIMES = IMAGE_MIMES | {"application/pdf"}
DOCUMENT_MIMES = MENU_MIMES | {
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # DOCX
}
GENERIC_MIMES = {"", "application/octet-stream", "binary/octet-stream"}


class UploadError(Exception):
    """A single file failed to upload. Recorded per file; never aborts a submission."""
    pass


class UploadStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_ATTEMPTED = "NOT_ATTEMPTED"


@dataclass
class UploadResult:
    status: UploadStatus
    url: Optional[str] = None
    error: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def not_attempted(cls) -> "UploadResult":
        return cls(status=UploadStatus.NOT_ATTEMPTED)

    @classmethod
    def succeeded(cls, url: str, filename: Optional[str] = None) -> "UploadResult":
        return cls(status=UploadStatus.SUCCESS, url=url, filename=filename)

    @classmethod
    def failed(cls, error: str, filename: Optional[str] = None) -> "UploadResult":
        return cls(status=UploadStatus.FAILED, error=error, filename=filename)

    @property
    def attempted(self) -> bool:
        return self.status != UploadStatus.NOT_ATTEMPTED

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"attempted": self.attempted, "success": self.success}
        if self.url:
            out["url"] = self.url
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class IncomingFile:
    """A file part read from the multipart request."""
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def effective_type(self) -> str:
        ctype = (self.content_type or "").split(";")[0].strip().lower()
        if ctype in GENERIC_MIMES:
            guessed, _ = mimetypes.guess_type(self.filename or "")
            return (guessed or ctype).lower()
        return ctype


@dataclass(frozen=True)
class FileCategory:
    field: str
    bucket: str
    folder: str
    max_bytes: int
    allowed_mimes: frozenset
    label: str
    type_message: str


MENU_CATEGORY = FileCategory(
    "menu_file", MENUS_BUCKET, "menus", 5 * MB, frozenset(MENU_MIMES),
    "Menu file", "Menu files must be JPG, PNG, GIF or PDF format",
)
FAQ_CATEGORY = FileCategory(
    "faq_file", FAQS_BUCKET, "faqs", 5 * MB, frozenset(DOCUMENT_MIMES),
    "FAQ file", "File type not supported. Please upload images, PDFs, or documents.",
)
ADDITIONAL_DOC_CATEGORY = FileCategory(
    "additional_docs", DOCUMENTS_BUCKET, "documents", 5 * MB, frozenset(DOCUMENT_MIMES),
    "File", "File type not supported. Please upload images, PDFs, or documents.",
)
LEGACY_FILE_CATEGORY = FileCategory(
    "file", DOCUMENTS_BUCKET, "documents", 10 * MB, frozenset(DOCUMENT_MIMES),
    "File", "File type not supported. Please upload images, PDFs, or documents.",
)


def check_file(category: FileCategory, file: IncomingFile, path: Optional[str] = None) -> List[Dict[str, str]]:
    """Size/type errors for one file against its category limits."""
    path = path or category.field
    errors = []
    if file.size > category.max_bytes:
        errors.append({
            "path": path,
            "message": f"{category.label} size must be less than {category.max_bytes // MB}MB",
        })
    if file.effective_type not in category.allowed_mimes:
        errors.append({"path": path, "message": category.type_message})
    return errors


@dataclass
class OnboardingUploads:
    menu: UploadResult = field(default_factory=UploadResult.not_attempted)
    faq: UploadResult = field(default_factory=UploadResult.not_attempted)
    additional_docs: List[UploadResult] = field(default_factory=list)

    @property
    def menu_file_url(self) -> Optional[str]:
        return self.menu.url if self.menu.success else None

    @property
    def faq_file_url(self) -> Optional[str]:
        return self.faq.url if self.faq.success else None

    @property
    def additional_docs_urls(self) -> List[str]:
        return [r.url for r in self.additional_docs if r.success]

    @property
    def failures(self) -> List[UploadResult]:
        results = [self.menu, self.faq, *self.additional_docs]
        return [r for r in results if r.status == UploadStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        if self.additional_docs:
            docs = {
                "attempted": True,
                "success": all(r.success for r in self.additional_docs),
                "uploaded": len(self.additional_docs_urls),
                "total": len(self.additional_docs),
                "urls": self.additional_docs_urls,
            }
        else:
            docs = {"attempted": False, "success": False}
        return {
            "menu_file": self.menu.to_dict(),
            "faq_file": self.faq.to_dict(),
            "additional_docs": docs,
        }


class UploadOrchestrator:
    """Uploads onboarding files concurrently with per-file isolation."""

    def __init__(self, storage: Optional[StorageAdapter] = None, timeout_seconds: Optional[int] = None):
        self.storage = storage or storage_adapter
        self.timeout_seconds = timeout_seconds or env_int("UPLOAD_TIMEOUT_SECONDS", DEFAULT_UPLOAD_TIMEOUT_SECONDS)

    def check_constraints(
        self,
        menu_file: Optional[IncomingFile] = None,
        faq_file: Optional[IncomingFile] = None,
        additional_docs: Sequence[IncomingFile] = (),
    ) -> List[Dict[str, str]]:
        """All size/type/count violations, as field errors. Runs before any storage call."""
        errors = []
        if menu_file:
            errors.extend(check_file(MENU_CATEGORY, menu_file))
        if faq_file:
            errors.extend(check_file(FAQ_CATEGORY, faq_file))
        if len(additional_docs) > MAX_ADDITIONAL_DOCS:
            errors.append({
                "path": "additional_docs",
                "message": f"You can upload at most {MAX_ADDITIONAL_DOCS} additional documents",
            })
        for i, doc in enumerate(additional_docs):
            errors.extend(check_file(ADDITIONAL_DOC_CATEGORY, doc, f"additional_docs[{i}]"))
        return errors

    async def upload_one(self, category: FileCategory, file: Optional[IncomingFile]) -> UploadResult:
        """Upload a single file. Never raises; failures come back as FAILED results."""
        if file is None:
            return UploadResult.not_attempted()
        path = generate_object_path(category.folder, file.filename)
        try:
            stored_path = await asyncio.wait_for(
                self.storage.upload(file.content, category.bucket, path, file.effective_type),
                timeout=self.timeout_seconds,
            )
            if not stored_path:
                raise UploadError(f"Storage returned no path for {file.filename}")
            url = self.storage.get_public_url(category.bucket, stored_path)
        except asyncio.TimeoutError:
            return await self._record_failure(category, file, f"Upload timed out after {self.timeout_seconds}s")
        except Exception as e:
            return await self._record_failure(category, file, str(e) or type(e).__name__)
        logger.info("Uploaded %s -> %s/%s", category.field, category.bucket, stored_path)
        return UploadResult.succeeded(url, file.filename)

    async def _record_failure(self, category: FileCategory, file: IncomingFile, error: str) -> UploadResult:
        logger.error("Upload failed field=%s filename=%s error=%s", category.field, file.filename, error)
        await create_audit_log(
            action=AuditAction.UPLOAD_FAILED,
            resource_type="upload",
            metadata={"field": category.field, "bucket": category.bucket, "filename": file.filename, "error": error},
        )
        return UploadResult.failed(error, file.filename)

    async def upload_onboarding_files(
        self,
        menu_file: Optional[IncomingFile] = None,
        faq_file: Optional[IncomingFile] = None,
        additional_docs: Sequence[IncomingFile] = (),
    ) -> OnboardingUploads:
        """Attempt every category independently; join before returning."""
        results = await asyncio.gather(
            self.upload_one(MENU_CATEGORY, menu_file),
            self.upload_one(FAQ_CATEGORY, faq_file),
            *(self.upload_one(ADDITIONAL_DOC_CATEGORY, doc) for doc in additional_docs[:MAX_ADDITIONAL_DOCS]),
        )
        uploads = OnboardingUploads(menu=results[0], faq=results[1], additional_docs=list(results[2:]))
        if uploads.failures:
            logger.warning("Onboarding uploads finished with %d failure(s)", len(uploads.failures))
        return uploads

    async def upload_legacy_file(self, file: Optional[IncomingFile]) -> UploadResult:
        return await self.upload_one(LEGACY_FILE_CATEGORY, file)


upload_orchestrator = UploadOrchestrator()
