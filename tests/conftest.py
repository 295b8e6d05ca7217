import os
import sys
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read once at import time; point them at throwaway locations first.
_SCRATCH = Path(tempfile.mkdtemp(prefix="hoa-tracker-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_SCRATCH / 'app.db'}"
os.environ["UPLOADS_DIR"] = str(_SCRATCH / "uploads")
os.environ["EMAIL_OUTPUT_DIR"] = str(_SCRATCH / "emails")
os.environ["EMAIL_BACKEND"] = "local"
os.environ["BCRYPT_ROUNDS"] = "4"

from hoa_tracker.config import Base, settings  # noqa: E402
from hoa_tracker.api.dependencies import get_db, get_storage  # noqa: E402
from hoa_tracker.core.rate_limit import limiter  # noqa: E402
from hoa_tracker.main import app  # noqa: E402
# Import the full models module so every table registers with Base metadata.
from hoa_tracker.models import models as _all_models  # noqa: E402,F401
from hoa_tracker.schemas.schemas import OnboardingRequest  # noqa: E402
from hoa_tracker.services.documents import SqlDocumentStore, SubscriptionHub  # noqa: E402
from hoa_tracker.services.identity import LocalAuthService, create_access_token  # noqa: E402
from hoa_tracker.services.storage import StorageService  # noqa: E402
from hoa_tracker.services.users import build_admin_record, write_admin_user  # noqa: E402


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def email_outbox(tmp_path, monkeypatch) -> Path:
    """Local email backend writes into a per-test directory."""
    outbox = tmp_path / "emails"
    monkeypatch.setattr(settings, "email_backend", "local")
    monkeypatch.setattr(settings, "email_output_dir", str(outbox))
    return outbox


@pytest.fixture
def store(db_session: Session) -> SqlDocumentStore:
    return SqlDocumentStore(db_session, hub=SubscriptionHub())


@pytest.fixture
def auth(db_session: Session) -> LocalAuthService:
    return LocalAuthService(db_session)


@pytest.fixture
def onboarding_form() -> Callable[..., OnboardingRequest]:
    def _build(**overrides) -> OnboardingRequest:
        values = {
            "hoa_name": "Sunset Gardens",
            "hoa_address": "1 Sunset Blvd",
            "hoa_city": "Phoenix",
            "hoa_state": "AZ",
            "hoa_zip": "85001",
            "hoa_phone": "555-0100",
            "admin_first_name": "Jane",
            "admin_last_name": "Doe",
            "admin_email": "jane@example.com",
            "admin_password": "secret123",
        }
        values.update(overrides)
        return OnboardingRequest(**values)

    return _build


@pytest.fixture
def storage(tmp_path) -> StorageService:
    return StorageService(backend="local", upload_root=tmp_path / "uploads")


@pytest.fixture
def client(db_session: Session, storage: StorageService) -> Generator[TestClient, None, None]:
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    limiter.reset()
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
        test_client.close()


@pytest.fixture
def create_admin(store: SqlDocumentStore, auth: LocalAuthService) -> Callable[..., dict]:
    """Create a login plus user record and return its bearer headers."""

    def _create(
        email: str = "admin@example.com",
        role: str = "hoa_admin",
        hoa_id: str | None = None,
        password: str = "changeme",
    ) -> dict:
        principal_id = auth.create_principal(email, password)
        record = build_admin_record(email=email, first_name="Test", last_name="Admin", role=role, hoa_id=hoa_id)
        write_admin_user(store, principal_id, record)
        token = create_access_token(principal_id, email)
        return {"principal_id": principal_id, "headers": {"Authorization": f"Bearer {token}"}}

    return _create
