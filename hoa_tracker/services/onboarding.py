"""Self-service HOA onboarding.

``provision_tenant`` runs the workflow one step at a time against the document
store and auth service::

    START -> SLUG_RESOLVED -> IDENTITY_PROVISIONED -> TENANT_WRITTEN -> ADMIN_WRITTEN

Any step can fail, which ends the run in ``FAILED`` and raises an
``OnboardingError`` carrying the failed stage and a user-facing category.
The identity and document writes are not atomic: unless
``settings.onboarding_compensate_failures`` is enabled, artifacts created
before the failing step are left in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..config import settings
from ..constants import HOAS_COLLECTION
from ..core.errors import ErrorCategory, OnboardingError
from ..models.models import utcnow
from ..schemas.schemas import OnboardingRequest
from .documents import DocumentStore, DocumentStoreError
from .email import mask_email
from .identity import (
    AuthService,
    EmailAlreadyInUse,
    IdentityError,
    InvalidEmail,
    WeakSecret,
)
from .slugs import SlugResolutionFailed, find_free_slug, generate_slug
from .tenants import build_tenant_record, write_tenant_claiming_slug
from .users import build_admin_record, write_admin_user

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "hoa_name",
    "hoa_address",
    "hoa_city",
    "hoa_state",
    "hoa_zip",
    "hoa_phone",
    "admin_first_name",
    "admin_last_name",
    "admin_email",
    "admin_password",
)


class OnboardingStage(str, Enum):
    VALIDATION = "validation"
    SLUG_RESOLUTION = "slug_resolution"
    IDENTITY = "identity"
    TENANT_WRITE = "tenant_write"
    ADMIN_WRITE = "admin_write"


class OnboardingState(str, Enum):
    START = "start"
    SLUG_RESOLVED = "slug_resolved"
    IDENTITY_PROVISIONED = "identity_provisioned"
    TENANT_WRITTEN = "tenant_written"
    ADMIN_WRITTEN = "admin_written"
    FAILED = "failed"


IDENTITY_ERRORS = {
    EmailAlreadyInUse: ErrorCategory.EMAIL_ALREADY_IN_USE,
    WeakSecret: ErrorCategory.WEAK_SECRET,
    InvalidEmail: ErrorCategory.INVALID_EMAIL,
}


@dataclass
class OnboardingResult:
    tenant_slug: str
    principal_id: str


@dataclass
class OnboardingRun:
    state: OnboardingState = OnboardingState.START
    tenant_slug: Optional[str] = None
    principal_id: Optional[str] = None
    compensations: List[Tuple[str, Callable[[], None]]] = field(default_factory=list)

    def advance(self, state: OnboardingState) -> None:
        logger.info("Onboarding %s -> %s", self.state.value, state.value)
        self.state = state


def _missing_fields(form: OnboardingRequest) -> List[str]:
    return [name for name in REQUIRED_FIELDS if not (getattr(form, name, None) or "").strip()]


def _compensate(run: OnboardingRun) -> None:
    for description, action in reversed(run.compensations):
        try:
            action()
            logger.info("Compensated onboarding step: %s", description)
        except Exception:
            logger.exception("Compensation failed: %s", description)


def _fail(run: OnboardingRun, category: ErrorCategory, stage: OnboardingStage, exc: Optional[BaseException] = None) -> OnboardingError:
    run.advance(OnboardingState.FAILED)
    if category == ErrorCategory.UNKNOWN:
        logger.exception("Onboarding failed unexpectedly at %s", stage.value)
    elif exc is not None:
        logger.warning("Onboarding failed at %s (%s): %s", stage.value, category.value, exc)
    if settings.onboarding_compensate_failures and run.compensations:
        _compensate(run)
    return OnboardingError(category, stage.value)


def provision_tenant(store: DocumentStore, auth: AuthService, form: OnboardingRequest) -> OnboardingResult:
    run = OnboardingRun()

    missing = _missing_fields(form)
    if missing:
        run.advance(OnboardingState.FAILED)
        raise OnboardingError(
            ErrorCategory.INVALID_INPUT,
            OnboardingStage.VALIDATION.value,
            f"Missing required fields: {', '.join(missing)}.",
        )
    base_slug = generate_slug(form.hoa_name)
    if not base_slug:
        run.advance(OnboardingState.FAILED)
        raise OnboardingError(
            ErrorCategory.INVALID_INPUT,
            OnboardingStage.VALIDATION.value,
            "HOA name must contain at least one letter or digit.",
        )

    try:
        slug, index = find_free_slug(store, base_slug)
    except SlugResolutionFailed as exc:
        raise _fail(run, ErrorCategory.SLUG_RESOLUTION_FAILED, OnboardingStage.SLUG_RESOLUTION, exc) from exc
    except Exception as exc:
        raise _fail(run, ErrorCategory.UNKNOWN, OnboardingStage.SLUG_RESOLUTION, exc) from exc
    run.tenant_slug = slug
    run.advance(OnboardingState.SLUG_RESOLVED)

    try:
        principal_id = auth.create_principal(form.admin_email, form.admin_password)
    except IdentityError as exc:
        category = IDENTITY_ERRORS.get(type(exc), ErrorCategory.UNKNOWN)
        raise _fail(run, category, OnboardingStage.IDENTITY, exc) from exc
    except Exception as exc:
        raise _fail(run, ErrorCategory.UNKNOWN, OnboardingStage.IDENTITY, exc) from exc
    run.principal_id = principal_id
    run.compensations.append(("delete principal", lambda: auth.delete_principal(principal_id)))
    run.advance(OnboardingState.IDENTITY_PROVISIONED)
    logger.info("Provisioned admin identity for %s", mask_email(form.admin_email))

    now = utcnow()

    def record_for(candidate: str) -> dict:
        return build_tenant_record(
            name=form.hoa_name.strip(),
            slug=candidate,
            address=form.hoa_address,
            city=form.hoa_city,
            state=form.hoa_state,
            zip_code=form.hoa_zip,
            phone=form.hoa_phone,
            admin_email=form.admin_email,
            admin_uid=principal_id,
            additional_emails=form.additional_emails,
            violation_types=form.violation_types,
            primary_color=form.primary_color,
            logo_url=form.logo_url,
            now=now,
        )

    try:
        tenant = write_tenant_claiming_slug(store, base_slug, slug, index, record_for)
    except SlugResolutionFailed as exc:
        raise _fail(run, ErrorCategory.SLUG_RESOLUTION_FAILED, OnboardingStage.TENANT_WRITE, exc) from exc
    except DocumentStoreError as exc:
        raise _fail(run, ErrorCategory.WRITE_FAILED, OnboardingStage.TENANT_WRITE, exc) from exc
    except Exception as exc:
        raise _fail(run, ErrorCategory.UNKNOWN, OnboardingStage.TENANT_WRITE, exc) from exc
    run.tenant_slug = tenant.key
    run.compensations.append(("delete HOA record", lambda: store.delete(HOAS_COLLECTION, tenant.key)))
    run.advance(OnboardingState.TENANT_WRITTEN)

    try:
        admin_record = build_admin_record(
            email=form.admin_email,
            first_name=form.admin_first_name,
            last_name=form.admin_last_name,
            hoa_id=tenant.key,
        )
        write_admin_user(store, principal_id, admin_record)
    except DocumentStoreError as exc:
        raise _fail(run, ErrorCategory.WRITE_FAILED, OnboardingStage.ADMIN_WRITE, exc) from exc
    except Exception as exc:
        raise _fail(run, ErrorCategory.UNKNOWN, OnboardingStage.ADMIN_WRITE, exc) from exc
    run.advance(OnboardingState.ADMIN_WRITTEN)

    logger.info("Onboarded HOA %s with admin %s", tenant.key, principal_id)
    return OnboardingResult(tenant_slug=tenant.key, principal_id=principal_id)
