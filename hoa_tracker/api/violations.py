import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Response, UploadFile, status

from ..constants import ALLOWED_PHOTO_TYPES, MAX_PHOTOS_PER_VIOLATION
from ..schemas.schemas import EmailDispatchRead, ResidentNotice, ViolationRead, ViolationUpdate
from ..services import violations as violation_service
from ..services.documents import DocumentNotFound, DocumentStore
from ..services.storage import StorageService
from ..services.tenants import accepts_reports, get_tenant
from ..services.users import SessionContext
from .dependencies import get_storage, get_store, require_tenant_admin

logger = logging.getLogger(__name__)

router = APIRouter()


def _violation_or_404(store: DocumentStore, slug: str, violation_id: str):
    try:
        return violation_service.get_violation(store, slug, violation_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Violation not found") from None


@router.post("/{slug}/violations", response_model=ViolationRead, status_code=status.HTTP_201_CREATED)
async def report_violation(
    slug: str,
    background: BackgroundTasks,
    violation_type: str = Form(..., alias="type"),
    address: str = Form(...),
    description: str = Form(...),
    reporter_email: Optional[str] = Form(None),
    reporter_phone: Optional[str] = Form(None),
    photos: List[UploadFile] = File(default=[]),
    store: DocumentStore = Depends(get_store),
    storage: StorageService = Depends(get_storage),
) -> dict:
    try:
        tenant = get_tenant(store, slug)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="HOA not found") from None
    if not accepts_reports(tenant):
        raise HTTPException(status_code=403, detail="This HOA is not currently accepting violation reports.")
    if len(photos) > MAX_PHOTOS_PER_VIOLATION:
        raise HTTPException(status_code=400, detail=f"Attach at most {MAX_PHOTOS_PER_VIOLATION} photos.")

    uploads = []
    for photo in photos:
        if photo.content_type not in ALLOWED_PHOTO_TYPES:
            raise HTTPException(status_code=400, detail="Photos must be PNG, JPEG, GIF, WebP or HEIC images.")
        contents = await photo.read()
        if not contents:
            raise HTTPException(status_code=400, detail="Photo is empty")
        uploads.append((photo.filename or "photo", contents, photo.content_type))

    photo_urls: List[str] = [
        storage.save_violation_photo(slug, filename, contents, content_type).public_url
        for filename, contents, content_type in uploads
    ]

    try:
        violation = violation_service.submit_violation(
            store,
            slug,
            violation_type=violation_type,
            address=address,
            description=description,
            photos=photo_urls,
            reporter_email=reporter_email,
            reporter_phone=reporter_phone,
        )
    except (ValueError, violation_service.TenantNotAcceptingReports) as exc:
        for url in photo_urls:
            storage.delete_file(url)
        status_code = 400 if isinstance(exc, ValueError) else 403
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc

    background.add_task(violation_service.notify_admins, tenant, violation)
    return violation.to_dict()


@router.get("/{slug}/violations", response_model=List[ViolationRead])
def list_violations(
    slug: str,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_tenant_admin),
) -> List[dict]:
    try:
        violations = violation_service.list_violations(store, slug, status_filter)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [violation.to_dict() for violation in violations]


@router.patch("/{slug}/violations/{violation_id}", response_model=ViolationRead)
def update_violation(
    slug: str,
    violation_id: str,
    payload: ViolationUpdate,
    store: DocumentStore = Depends(get_store),
    session: SessionContext = Depends(require_tenant_admin),
) -> dict:
    _violation_or_404(store, slug, violation_id)
    try:
        violation = violation_service.update_violation(
            store, slug, violation_id, status=payload.status, admin_notes=payload.admin_notes
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Violation %s updated by %s", violation_id, session.principal_id)
    return violation.to_dict()


@router.delete("/{slug}/violations/{violation_id}", status_code=204)
def delete_violation(
    slug: str,
    violation_id: str,
    store: DocumentStore = Depends(get_store),
    storage: StorageService = Depends(get_storage),
    _: SessionContext = Depends(require_tenant_admin),
) -> Response:
    violation = _violation_or_404(store, slug, violation_id)
    violation_service.delete_violation(store, slug, violation_id)
    for url in violation.get("photos") or []:
        try:
            storage.delete_file(url)
        except Exception:
            logger.exception("Could not delete photo %s of violation %s", url, violation_id)
    return Response(status_code=204)


@router.post("/{slug}/violations/{violation_id}/notify-resident", response_model=EmailDispatchRead)
def notify_resident(
    slug: str,
    violation_id: str,
    payload: ResidentNotice,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_tenant_admin),
) -> EmailDispatchRead:
    _violation_or_404(store, slug, violation_id)
    try:
        result = violation_service.notify_resident(
            store,
            slug,
            violation_id,
            recipient_email=payload.recipient_email,
            subject=payload.subject,
            message=payload.message,
        )
    except Exception as exc:
        logger.exception("Resident notice for violation %s failed", violation_id)
        raise HTTPException(status_code=502, detail="Failed to send email to resident") from exc
    if result.error:
        return EmailDispatchRead(success=False, backend=result.backend, message=result.error)
    return EmailDispatchRead(success=True, backend=result.backend, message="Email sent successfully to resident")
