import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from ..config import settings
from ..core.rate_limit import RateLimitRule, rate_limit_dependency
from ..schemas.schemas import OnboardingRequest, OnboardingResponse, SlugAvailability
from ..services.documents import DocumentStore, DocumentStoreError
from ..services.email import admin_dashboard_url, render_subscription_email, send_email
from ..services.identity import AuthService
from ..services.onboarding import provision_tenant
from ..services.slugs import SlugResolutionFailed, find_free_slug, generate_slug
from .dependencies import get_auth_service, get_store

logger = logging.getLogger(__name__)

router = APIRouter()

onboarding_rate_limit = rate_limit_dependency(
    RateLimitRule("onboarding", settings.onboarding_rate_limit, settings.rate_limit_window_seconds)
)


def send_welcome_email(hoa_name: str, hoa_slug: str, admin_email: str) -> None:
    try:
        subject, body = render_subscription_email("welcome", hoa_name, hoa_slug)
        send_email(subject, body, [admin_email])
    except Exception:
        logger.exception("Welcome email for HOA %s could not be sent.", hoa_slug)


@router.post(
    "",
    response_model=OnboardingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(onboarding_rate_limit)],
)
def onboard_hoa(
    payload: OnboardingRequest,
    background: BackgroundTasks,
    store: DocumentStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
) -> OnboardingResponse:
    result = provision_tenant(store, auth, payload)
    background.add_task(send_welcome_email, payload.hoa_name.strip(), result.tenant_slug, payload.admin_email)
    return OnboardingResponse(
        tenant_slug=result.tenant_slug,
        principal_id=result.principal_id,
        admin_url=admin_dashboard_url(result.tenant_slug),
    )


@router.get("/slug-availability", response_model=SlugAvailability)
def slug_availability(
    name: str = Query(..., min_length=1),
    store: DocumentStore = Depends(get_store),
) -> SlugAvailability:
    """Preview the address a new HOA would get. Not a reservation."""
    base_slug = generate_slug(name)
    if not base_slug:
        return SlugAvailability(name=name, base_slug="", slug="", available=False)
    try:
        slug, _ = find_free_slug(store, base_slug)
    except (SlugResolutionFailed, DocumentStoreError):
        return SlugAvailability(name=name, base_slug=base_slug, slug="", available=False)
    return SlugAvailability(name=name, base_slug=base_slug, slug=slug, available=slug == base_slug)
