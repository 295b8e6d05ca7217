from functools import lru_cache
from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ..config import SessionLocal
from ..services.documents import DocumentStore, SqlDocumentStore
from ..services.identity import AuthService, InvalidCredentials, LocalAuthService
from ..services.storage import StorageService
from ..services.users import SessionContext, load_session_context

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return LocalAuthService(db)


@lru_cache
def get_storage() -> StorageService:
    return StorageService()


def get_current_session(
    token: str = Depends(oauth2_scheme),
    store: DocumentStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
) -> SessionContext:
    try:
        principal_id = auth.verify_token(token)
    except InvalidCredentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    session = load_session_context(store, principal_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No administrator record for this account.")
    return session


def require_super_admin(session: SessionContext = Depends(get_current_session)) -> SessionContext:
    if not session.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required.")
    return session


def require_tenant_admin(slug: str, session: SessionContext = Depends(get_current_session)) -> SessionContext:
    """Admins of the HOA named by the ``slug`` path parameter, or any super admin."""
    if not session.can_manage(slug):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not manage this HOA.")
    return session
