"""Authentication principals: creation, sign-in, and bearer tokens."""

from __future__ import annotations

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import bcrypt
from email_validator import EmailNotValidError, validate_email
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Principal, utcnow
from .email import mask_email

logger = logging.getLogger(__name__)

BCRYPT_MAX_BYTES = 72


class IdentityError(Exception):
    pass


class EmailAlreadyInUse(IdentityError):
    pass


class WeakSecret(IdentityError):
    pass


class InvalidEmail(IdentityError):
    pass


class ProvisioningFailed(IdentityError):
    pass


class InvalidCredentials(IdentityError):
    pass


@dataclass
class AuthSession:
    principal_id: str
    email: str
    access_token: str


AuthStateListener = Callable[[Optional[AuthSession]], None]


class AuthStateNotifier:
    """Fans sign-in / sign-out events out to registered listeners."""

    def __init__(self) -> None:
        self._listeners: List[AuthStateListener] = []
        self._lock = threading.Lock()

    def add(self, listener: AuthStateListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, state: Optional[AuthSession]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:  # pragma: no cover
                logger.exception("Auth state listener %r failed", listener)


auth_state_notifier = AuthStateNotifier()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_secret(secret: str) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(settings.bcrypt_rounds)).decode("utf-8")


def verify_secret(secret: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(principal_id: str, email: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"sub": principal_id, "email": email, "type": "access", "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


class AuthService(ABC):
    @abstractmethod
    def create_principal(self, email: str, secret: str) -> str:
        """Create a login identity and return its opaque id."""

    @abstractmethod
    def delete_principal(self, principal_id: str) -> None:
        pass

    @abstractmethod
    def sign_in(self, email: str, secret: str) -> AuthSession:
        pass

    @abstractmethod
    def verify_token(self, token: str) -> str:
        """Return the principal id a bearer token was issued to."""

    def sign_out(self, principal_id: str) -> None:
        logger.info("Principal %s signed out", principal_id)
        auth_state_notifier.emit(None)

    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]:
        return auth_state_notifier.add(listener)


class LocalAuthService(AuthService):
    """Principals stored next to the documents, secrets hashed with bcrypt."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _validate(self, email: str, secret: str) -> str:
        try:
            normalized = validate_email(email or "", check_deliverability=False).normalized
        except EmailNotValidError as exc:
            raise InvalidEmail(str(exc)) from exc
        secret = secret or ""
        if len(secret) < settings.min_password_length:
            raise WeakSecret(f"Password must be at least {settings.min_password_length} characters.")
        if len(secret.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise WeakSecret(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
        return normalize_email(normalized)

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        return self.session.get(Principal, principal_id)

    def get_principal_by_email(self, email: str) -> Optional[Principal]:
        return self.session.query(Principal).filter(Principal.email == normalize_email(email)).first()

    def create_principal(self, email: str, secret: str) -> str:
        normalized = self._validate(email, secret)
        try:
            if self.get_principal_by_email(normalized):
                raise EmailAlreadyInUse("Email already registered.")
            principal = Principal(
                uid=secrets.token_hex(14),
                email=normalized,
                hashed_password=hash_secret(secret),
            )
            self.session.add(principal)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise EmailAlreadyInUse("Email already registered.") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise ProvisioningFailed("Could not create the login identity.") from exc
        logger.info("Created principal %s for %s", principal.uid, mask_email(normalized))
        return principal.uid

    def delete_principal(self, principal_id: str) -> None:
        principal = self.get_principal(principal_id)
        if principal is None:
            return
        self.session.delete(principal)
        self.session.commit()
        logger.info("Deleted principal %s", principal_id)

    def sign_in(self, email: str, secret: str) -> AuthSession:
        principal = self.get_principal_by_email(email)
        if principal is None or principal.disabled or not verify_secret(secret or "", principal.hashed_password):
            raise InvalidCredentials("Incorrect email or password.")
        principal.last_sign_in_at = utcnow()
        self.session.commit()
        auth_session = AuthSession(
            principal_id=principal.uid,
            email=principal.email,
            access_token=create_access_token(principal.uid, principal.email),
        )
        auth_state_notifier.emit(auth_session)
        return auth_session

    def verify_token(self, token: str) -> str:
        try:
            payload = decode_token(token)
        except JWTError as exc:
            raise InvalidCredentials("Could not validate credentials.") from exc
        principal_id = payload.get("sub")
        if not principal_id or payload.get("type") != "access":
            raise InvalidCredentials("Could not validate credentials.")
        principal = self.get_principal(principal_id)
        if principal is None or principal.disabled:
            raise InvalidCredentials("Could not validate credentials.")
        return principal_id
