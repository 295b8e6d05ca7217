from collections import Counter
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr

from ..config import settings
from ..constants import SUBSCRIPTION_STATUSES
from ..core.version import get_version_info
from ..services import email as email_service
from ..services.documents import DocumentStore
from ..services.tenants import list_tenants
from .dependencies import get_store, require_super_admin

router = APIRouter()


class TestEmailRequest(BaseModel):
    recipient: EmailStr
    subject: Optional[str] = "HOA Violation Tracker test email"
    body: Optional[str] = "<p>This is a test email from HOA Violation Tracker.</p>"


class TestEmailResponse(BaseModel):
    backend: str
    success: bool
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]


@router.get("/version")
def read_version() -> Dict[str, str]:
    return get_version_info()


@router.get("/runtime", dependencies=[Depends(require_super_admin)])
def get_runtime_diagnostics(store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    """Onboarding and delivery settings plus tenant counts by subscription status."""
    tenants_by_status = Counter(tenant.get("subscription_status") for tenant in list_tenants(store))
    return {
        "email_backend": settings.email_backend,
        "file_storage_backend": settings.file_storage_backend,
        "trial_period_days": settings.trial_period_days,
        "slug_max_attempts": settings.slug_max_attempts,
        "onboarding_compensate_failures": settings.onboarding_compensate_failures,
        "log_format": settings.log_format,
        "tenants": {status: tenants_by_status.get(status, 0) for status in SUBSCRIPTION_STATUSES},
    }


@router.post("/test-email", response_model=TestEmailResponse, dependencies=[Depends(require_super_admin)])
def send_test_email(payload: TestEmailRequest) -> TestEmailResponse:
    try:
        result = email_service.send_email(payload.subject or "", payload.body or "", [payload.recipient])
    except Exception as exc:
        raise HTTPException(status_code=502, detail=f"Email backend failed: {exc}") from exc
    return TestEmailResponse(
        backend=result.backend,
        success=result.error is None,
        status_code=result.status_code,
        request_id=result.request_id,
        error=result.error,
    )
