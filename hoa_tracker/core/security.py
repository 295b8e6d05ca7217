import logging
from typing import Optional, Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import Settings

logger = logging.getLogger(__name__)

# Responses on these prefixes carry tokens or account details.
NO_STORE_PREFIXES = ("/auth", "/onboarding", "/users")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        enable_hsts: bool = True,
        permissions_policy: str = "microphone=(), geolocation=()",
        no_store_prefixes: Sequence[str] = NO_STORE_PREFIXES,
        csp: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.permissions_policy = permissions_policy
        self.no_store_prefixes = tuple(no_store_prefixes)
        self.csp = csp

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "same-origin")
        # Camera stays allowed so reporters can attach photos from the public form.
        headers.setdefault("Permissions-Policy", self.permissions_policy)
        if request.url.path.startswith(self.no_store_prefixes):
            headers.setdefault("Cache-Control", "no-store")
        if self.enable_hsts and request.url.scheme == "https":
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        if self.csp:
            headers.setdefault("Content-Security-Policy", self.csp)

        return response


def log_security_warnings(settings: Settings) -> None:
    if settings.jwt_secret == "dev-secret-please-change":
        logger.warning("JWT secret is using the insecure default; set JWT_SECRET in the environment.")
    if (settings.email_backend or "local").lower().strip() == "local":
        logger.warning("Email backend is set to local stub; admin notifications will not be delivered.")
    if (settings.file_storage_backend or "local").lower() == "s3" and not settings.s3_bucket:
        logger.error("FILE_STORAGE_BACKEND=s3 but S3_BUCKET is not set; photo uploads will fail.")
    if "*" in settings.cors_origins:
        logger.warning("CORS allows any origin while credentials are enabled.")
    if not settings.onboarding_compensate_failures:
        logger.info("Onboarding compensation is disabled; failed sign-ups may leave orphaned logins.")
