"""Onboarding Routes - public form submission endpoints.

Endpoints:
- POST /api/onboarding/submit - Enhanced onboarding form (multipart, menu/FAQ/additional docs)
- POST /api/submit-form - Legacy single-file onboarding form (multipart)
- GET /api/plans - Pricing tiers with checkout links

Response contract (both submit endpoints):
- 200 {success: true, message, submissionId, checkoutUrl, uploads}
- 400 {success: false, message, error: [{path, message}]}
- 500 {success: false, message}
- 405 {success: false, message} for any other method
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile as StarletteUploadFile

from services.onboarding_pipeline import onboarding_pipeline
from services.onboarding_validation import OnboardingValidationError
from services.stripe_service import list_plans
from services.upload_orchestrator import IncomingFile

logger = logging.getLogger(__name__)
router = APIRouter(tags=["onboarding"])

ADDITIONAL_DOC_FIELD = re.compile(r"^additional_docs(?:_(\d+))?$")
OTHER_METHODS = ["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _client_ip(request: Request) -> Optional[str]:
    ip_address = request.headers.get("X-Forwarded-For", request.client.host if request.client else None)
    if ip_address and "," in ip_address:
        ip_address = ip_address.split(",")[0].strip()
    return ip_address


def _error_payload(message: str, errors: Optional[List[Dict[str, str]]] = None) -> dict:
    payload = {"success": False, "message": message}
    if errors is not None:
        payload["error"] = errors
    return payload


async def read_multipart(request: Request) -> Tuple[Dict[str, Any], Dict[str, List[IncomingFile]]]:
    """Split a multipart body into text fields and file parts.

    Repeated text fields come back as lists; empty file inputs (no filename)
    are dropped.
    """
    form = await request.form()
    fields: Dict[str, Any] = {}
    files: Dict[str, List[IncomingFile]] = {}
    for key in dict.fromkeys(form.keys()):
        texts = []
        for value in form.getlist(key):
            if isinstance(value, StarletteUploadFile):
                if not value.filename:
                    continue
                content = await value.read()
                files.setdefault(key, []).append(
                    IncomingFile(filename=value.filename, content_type=value.content_type or "", content=content)
                )
            else:
                texts.append(value)
        if texts:
            fields[key] = texts[0] if len(texts) == 1 else texts
    return fields, files


def _additional_docs(files: Dict[str, List[IncomingFile]]) -> List[IncomingFile]:
    ordered = []
    for key, parts in files.items():
        match = ADDITIONAL_DOC_FIELD.match(key)
        if match:
            index = int(match.group(1)) if match.group(1) is not None else -1
            ordered.extend((index, n, part) for n, part in enumerate(parts))
    return [part for _, _, part in sorted(ordered, key=lambda item: (item[0], item[1]))]


def _first(files: Dict[str, List[IncomingFile]], key: str) -> Optional[IncomingFile]:
    parts = files.get(key) or []
    return parts[0] if parts else None


@router.post("/api/onboarding/submit")
async def submit_onboarding(request: Request):
    """Submit the enhanced onboarding form and return the checkout redirect."""
    try:
        try:
            fields, files = await read_multipart(request)
        except Exception as e:
            logger.warning("Unreadable onboarding form body: %s", e)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=_error_payload("Invalid form data", [{"path": "__body__", "message": "Expected multipart form data"}]),
            )

        outcome = await onboarding_pipeline.submit(
            fields,
            menu_file=_first(files, "menu_file"),
            faq_file=_first(files, "faq_file"),
            additional_docs=_additional_docs(files),
            ip_address=_client_ip(request),
        )
        return {
            "success": True,
            "message": "Onboarding form submitted successfully",
            "submissionId": outcome.submission_id,
            "checkoutUrl": outcome.checkout_url,
            "uploads": outcome.uploads.to_dict(),
        }

    except OnboardingValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_payload("Invalid form data", e.errors),
        )
    except Exception as e:
        logger.exception(f"Onboarding submission error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_payload("Internal server error"),
        )


@router.post("/api/submit-form")
async def submit_legacy_form(request: Request):
    """Legacy onboarding form: contact details, social logins and one optional file."""
    try:
        try:
            fields, files = await read_multipart(request)
        except Exception as e:
            logger.warning("Unreadable legacy form body: %s", e)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=_error_payload("Invalid form data", [{"path": "__body__", "message": "Expected multipart form data"}]),
            )

        outcome = await onboarding_pipeline.submit_legacy(
            fields,
            file=_first(files, "file"),
            ip_address=_client_ip(request),
        )
        return {
            "success": True,
            "message": "Form submitted successfully",
            "submissionId": outcome.submission_id,
            "checkoutUrl": outcome.checkout_url,
            "uploads": {"file": outcome.legacy_upload.to_dict()},
        }

    except OnboardingValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_payload("Invalid form data", e.errors),
        )
    except Exception as e:
        logger.exception(f"Legacy form submission error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_payload("Internal server error"),
        )


@router.api_route("/api/onboarding/submit", methods=OTHER_METHODS, include_in_schema=False)
@router.api_route("/api/submit-form", methods=OTHER_METHODS, include_in_schema=False)
async def submit_method_not_allowed():
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content=_error_payload("Method not allowed"),
    )


@router.get("/api/plans")
async def get_plans():
    """Pricing tiers (amounts in cents) and their hosted-checkout links."""
    return {"plans": list_plans()}
