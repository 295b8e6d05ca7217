import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from ..config import settings
from ..core.rate_limit import RateLimitRule, rate_limit_dependency
from ..schemas.schemas import SessionContextRead, Token
from ..services.documents import DocumentStore
from ..services.email import mask_email
from ..services.identity import AuthService, InvalidCredentials
from ..services.users import SessionContext, load_session_context
from .dependencies import get_auth_service, get_current_session, get_store

logger = logging.getLogger(__name__)

router = APIRouter()

login_rate_limit = rate_limit_dependency(
    RateLimitRule("login", settings.login_rate_limit, settings.rate_limit_window_seconds)
)


@router.post("/login", response_model=Token, dependencies=[Depends(login_rate_limit)])
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    store: DocumentStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
) -> Token:
    try:
        auth_session = auth.sign_in(form_data.username, form_data.password)
    except InvalidCredentials:
        logger.info("Failed sign-in for %s", mask_email(form_data.username))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    context = load_session_context(store, auth_session.principal_id)
    if context is None:
        auth.sign_out(auth_session.principal_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No administrator record for this account.")
    return Token(access_token=auth_session.access_token, role=context.role, hoa_id=context.hoa_id)


@router.post("/logout", status_code=204)
def logout(
    session: SessionContext = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
) -> None:
    auth.sign_out(session.principal_id)


@router.get("/me", response_model=SessionContextRead)
def read_current_session(session: SessionContext = Depends(get_current_session)) -> SessionContext:
    return session
