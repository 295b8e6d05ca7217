import logging
from io import BytesIO

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

from .api import auth, onboarding, system, tenants, users, violations
from .api.dependencies import get_storage
from .config import Base, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import RequestIdMiddleware
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .services.storage import StorageBackend, StorageService, StoredFileNotFound

logger = logging.getLogger(__name__)


def mount_uploads(app: FastAPI) -> None:
    uploads_route = "/" + settings.uploads_public_prefix.strip("/")
    if (settings.file_storage_backend or "local").lower() == StorageBackend.LOCAL.value:
        uploads_dir = settings.uploads_root_path
        uploads_dir.mkdir(parents=True, exist_ok=True)
        app.mount(uploads_route, StaticFiles(directory=str(uploads_dir)), name="uploads")
        return

    @app.get(f"{uploads_route}/{{path:path}}", include_in_schema=False)
    def proxy_uploads(path: str, storage: StorageService = Depends(get_storage)):
        try:
            file_data = storage.retrieve_file(path)
        except StoredFileNotFound:
            raise HTTPException(status_code=404, detail="File not found.") from None
        return StreamingResponse(BytesIO(file_data.content), media_type=file_data.content_type)


def create_app() -> FastAPI:
    configure_logging(settings.log_level.upper(), settings.log_format)
    app = FastAPI(title="HOA Violation Tracker")

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(onboarding.router, prefix="/onboarding", tags=["onboarding"])
    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(tenants.router, prefix="/hoas", tags=["hoas"])
    app.include_router(violations.router, prefix="/hoas", tags=["violations"])
    app.include_router(users.router, prefix="/users", tags=["users"])
    app.include_router(system.router, prefix="/system", tags=["system"])
    mount_uploads(app)

    @app.on_event("startup")
    def startup() -> None:
        # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
        Base.metadata.create_all(bind=engine)
        log_security_warnings(settings)
        logger.info("HOA Violation Tracker started (email=%s, storage=%s)", settings.email_backend, settings.file_storage_backend)

    return app


app = create_app()
