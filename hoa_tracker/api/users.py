from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..schemas.schemas import UserCreate, UserRead, UserUpdate
from ..services import users as user_service
from ..services.documents import DocumentNotFound, DocumentStore
from ..services.identity import AuthService, EmailAlreadyInUse, IdentityError
from ..services.users import SessionContext
from .dependencies import get_auth_service, get_store, require_super_admin

router = APIRouter()


@router.get("", response_model=List[UserRead])
def list_users(
    hoa_id: Optional[str] = Query(default=None),
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> List[dict]:
    return [user.to_dict() for user in user_service.list_users(store, hoa_id)]


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    store: DocumentStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
    _: SessionContext = Depends(require_super_admin),
) -> dict:
    try:
        user = user_service.create_user(
            store,
            auth,
            email=payload.email,
            password=payload.password,
            role=payload.role,
            hoa_id=payload.hoa_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except EmailAlreadyInUse:
        raise HTTPException(status_code=409, detail="Email already registered") from None
    except (IdentityError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return user.to_dict()


@router.patch("/{principal_id}", response_model=UserRead)
def update_user(
    principal_id: str,
    payload: UserUpdate,
    store: DocumentStore = Depends(get_store),
    _: SessionContext = Depends(require_super_admin),
) -> dict:
    try:
        user = user_service.update_user(store, principal_id, payload.model_dump(exclude_unset=True))
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="User not found") from None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return user.to_dict()


@router.delete("/{principal_id}", status_code=204)
def delete_user(
    principal_id: str,
    store: DocumentStore = Depends(get_store),
    actor: SessionContext = Depends(require_super_admin),
) -> Response:
    if principal_id == actor.principal_id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    try:
        user_service.delete_user(store, principal_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="User not found") from None
    return Response(status_code=204)
