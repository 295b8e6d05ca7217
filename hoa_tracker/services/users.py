from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..constants import HOAS_COLLECTION, ROLE_HOA_ADMIN, ROLE_SUPER_ADMIN, USER_ROLES, USERS_COLLECTION
from .documents import Document, DocumentStore
from .identity import AuthService

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """The signed-in principal bound to its user record, built per request."""

    principal_id: str
    email: str
    role: str
    hoa_id: Optional[str]
    first_name: str = ""
    last_name: str = ""

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def can_manage(self, hoa_slug: str) -> bool:
        return self.is_super_admin or (self.role == ROLE_HOA_ADMIN and self.hoa_id == hoa_slug)


def build_admin_record(
    *,
    email: str,
    first_name: str,
    last_name: str,
    role: str = ROLE_HOA_ADMIN,
    hoa_id: Optional[str] = None,
) -> Dict[str, Any]:
    if role not in USER_ROLES:
        raise ValueError(f"Invalid role: {role}")
    record: Dict[str, Any] = {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "role": role,
    }
    if role == ROLE_HOA_ADMIN:
        record["hoa_id"] = hoa_id
    return record


def write_admin_user(store: DocumentStore, principal_id: str, record: Mapping[str, Any]) -> Document:
    return store.put(USERS_COLLECTION, principal_id, record)


def load_session_context(store: DocumentStore, principal_id: str) -> Optional[SessionContext]:
    user = store.find(USERS_COLLECTION, principal_id)
    if user is None:
        return None
    return SessionContext(
        principal_id=principal_id,
        email=user.get("email", ""),
        role=user.get("role", ""),
        hoa_id=user.get("hoa_id"),
        first_name=user.get("first_name") or "",
        last_name=user.get("last_name") or "",
    )


def list_users(store: DocumentStore, hoa_id: Optional[str] = None) -> List[Document]:
    users = store.query(USERS_COLLECTION, {"hoa_id": hoa_id} if hoa_id else None)
    return sorted(users, key=lambda doc: (doc.get("email") or "").lower())


def _require_tenant(store: DocumentStore, role: str, hoa_id: Optional[str]) -> None:
    if role != ROLE_HOA_ADMIN:
        return
    if not hoa_id:
        raise ValueError("HOA admins must be assigned to an HOA.")
    if not store.exists(HOAS_COLLECTION, hoa_id):
        raise ValueError(f"HOA '{hoa_id}' does not exist.")


def create_user(
    store: DocumentStore,
    auth: AuthService,
    *,
    email: str,
    password: str,
    role: str,
    hoa_id: Optional[str] = None,
    first_name: str = "",
    last_name: str = "",
) -> Document:
    """Super-admin user creation: login identity first, then the user record."""
    record = build_admin_record(email=email, first_name=first_name, last_name=last_name, role=role, hoa_id=hoa_id)
    _require_tenant(store, role, hoa_id)
    principal_id = auth.create_principal(email, password)
    user = write_admin_user(store, principal_id, record)
    logger.info("Created %s user %s", role, principal_id)
    return user


def update_user(store: DocumentStore, principal_id: str, changes: Mapping[str, Any]) -> Document:
    current = store.get(USERS_COLLECTION, principal_id)
    updates = {key: value for key, value in changes.items() if key in ("first_name", "last_name", "role", "hoa_id")}
    role = updates.get("role", current.get("role"))
    if role not in USER_ROLES:
        raise ValueError(f"Invalid role: {role}")
    hoa_id = updates.get("hoa_id", current.get("hoa_id"))
    _require_tenant(store, role, hoa_id)
    if role == ROLE_SUPER_ADMIN:
        updates["hoa_id"] = None
    return store.update(USERS_COLLECTION, principal_id, updates)


def delete_user(store: DocumentStore, principal_id: str) -> None:
    # The login identity is kept; the principal can no longer load a session without a record.
    store.get(USERS_COLLECTION, principal_id)
    store.delete(USERS_COLLECTION, principal_id)
    logger.warning("Deleted user record %s", principal_id)
