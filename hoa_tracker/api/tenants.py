import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..constants import SUBSCRIPTION_STATUSES
from ..schemas.schemas import (
    EmailDispatchRead,
    SubscriptionEmailRequest,
    TenantCreate,
    TenantPublic,
    TenantRead,
    TenantSettingsUpdate,
    TenantStatusUpdate,
)
from ..services import tenants as tenant_service
from ..services.documents import Document, DocumentNotFound, DocumentStore
from ..services.email import render_subscription_email, send_email
from ..services.slugs import SlugResolutionFailed
from ..services.users import SessionContext
from .dependencies import get_store, require_super_admin, require_tenant_admin

logger = logging.getLogger(__name__)

router = APIRouter()


def _tenant_payload(tenant: Document) -> dict:
    payload = tenant.to_dict()
    payload["accepting_reports"] = tenant_service.accepts_reports(tenant)
    return payload


def _load_tenant(store: DocumentStore, slug: str) -> Document:
    try:
        return tenant_service.get_tenant(store, slug)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="HOA not found") from None


@router.get("", response_model=List[TenantRead])
def list_hoas(
    subscription_status: Optional[str] = Query(default=None, alias="status"),
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> List[dict]:
    if subscription_status and subscription_status not in SUBSCRIPTION_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid subscription status")
    return [_tenant_payload(tenant) for tenant in tenant_service.list_tenants(store, subscription_status)]


@router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
def create_hoa(
    payload: TenantCreate,
    store: DocumentStore = Depends(get_store),
    actor: SessionContext = Depends(require_super_admin),
) -> dict:
    try:
        tenant = tenant_service.create_tenant(store, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SlugResolutionFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    logger.info("Super admin %s created HOA %s", actor.principal_id, tenant.key)
    return _tenant_payload(tenant)


@router.get("/{slug}", response_model=TenantPublic)
def read_public_hoa(slug: str, store: DocumentStore = Depends(get_store)) -> dict:
    return _tenant_payload(_load_tenant(store, slug))


@router.get("/{slug}/settings", response_model=TenantRead)
def read_hoa_settings(
    slug: str,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_tenant_admin),
) -> dict:
    return _tenant_payload(_load_tenant(store, slug))


@router.patch("/{slug}/settings", response_model=TenantRead)
def update_hoa_settings(
    slug: str,
    payload: TenantSettingsUpdate,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_tenant_admin),
) -> dict:
    _load_tenant(store, slug)
    try:
        tenant = tenant_service.update_tenant_settings(store, slug, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _tenant_payload(tenant)


@router.patch("/{slug}/status", response_model=TenantRead)
def update_hoa_status(
    slug: str,
    payload: TenantStatusUpdate,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> dict:
    _load_tenant(store, slug)
    tenant = tenant_service.set_subscription_status(
        store, slug, payload.subscription_status, payload.subscription_id
    )
    return _tenant_payload(tenant)


@router.delete("/{slug}", status_code=204)
def delete_hoa(
    slug: str,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> Response:
    _load_tenant(store, slug)
    tenant_service.delete_tenant(store, slug)
    return Response(status_code=204)


@router.post("/{slug}/subscription-email", response_model=EmailDispatchRead)
def send_subscription_email(
    slug: str,
    payload: SubscriptionEmailRequest,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> EmailDispatchRead:
    tenant = _load_tenant(store, slug)
    subject, body = render_subscription_email(payload.type, tenant.get("name", ""), slug)
    try:
        result = send_email(subject, body, [tenant.get("admin_email")])
    except Exception as exc:
        raise HTTPException(status_code=502, detail="Failed to send subscription email") from exc
    if result.error:
        return EmailDispatchRead(success=False, backend=result.backend, message=result.error)
    return EmailDispatchRead(success=True, backend=result.backend, message="Email sent successfully")
