from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.api.errors import domain_error_to_http
from tradeconnect.audit.context import ClientInfo
from tradeconnect.audit.schemas import AuditLogRead
from tradeconnect.audit.service import AuditService
from tradeconnect.auth.dependencies import (
    CurrentUser,
    ensure_owner_or_admin,
    get_audit_service,
    get_client_info,
    get_current_user,
    get_role_service,
    get_user_admin_service,
    require_permissions,
)
from tradeconnect.auth.exceptions import AuthError
from tradeconnect.auth.models import User
from tradeconnect.auth.schemas import UserRead
from tradeconnect.db.dependencies import get_db_session
from tradeconnect.db.pagination import PaginationParams
from tradeconnect.rbac.enums import Permission
from tradeconnect.rbac.service import RoleService
from tradeconnect.users.schemas import (
    ProfileUpdateRequest,
    UserActivityResponse,
    UserAdminRead,
    UserCreateRequest,
    UserListResponse,
    UserRoleResponse,
    UserUpdateRequest,
)
from tradeconnect.users.service import UserAdminService, UserFilters

router = APIRouter(prefix="/api/v1/users", tags=["users"])

_read_users = require_permissions(Permission.READ_USER)
_create_users = require_permissions(Permission.CREATE_USER)
_update_users = require_permissions(Permission.UPDATE_USER)
_delete_users = require_permissions(Permission.DELETE_USER)
_manage_roles = require_permissions(Permission.MANAGE_USER_ROLES)


def _to_read(user: User) -> UserAdminRead:
    return UserAdminRead.model_validate(user, from_attributes=True)


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=255),
    role: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    _: CurrentUser = Depends(_read_users),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    users, meta = await user_service.list_users(
        session,
        filters=UserFilters(search=search, role=role, is_active=is_active),
        params=PaginationParams(page=page, limit=limit),
    )
    return UserListResponse(items=[_to_read(user) for user in users], pagination=meta)


@router.post("", response_model=UserAdminRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    current_user: CurrentUser = Depends(_create_users),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserAdminRead:
    try:
        user = await user_service.create_user(
            session,
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            roles=payload.roles,
            actor_id=current_user.id,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return _to_read(user)


@router.put("/profile", response_model=UserRead)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserRead:
    try:
        user = await user_service.update_profile(
            session,
            current_user.id,
            changes=payload.model_dump(exclude_unset=True),
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return UserRead.model_validate(user)


@router.get("/{user_id}", response_model=UserAdminRead)
async def get_user(
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
) -> UserAdminRead:
    if not current_user.has_permission(Permission.READ_USER):
        ensure_owner_or_admin(current_user, user_id)
    try:
        user = await user_service.get_user(session, user_id)
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return _to_read(user)


@router.put("/{user_id}", response_model=UserAdminRead)
async def update_user(
    user_id: uuid.UUID,
    payload: UserUpdateRequest,
    current_user: CurrentUser = Depends(_update_users),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserAdminRead:
    try:
        user = await user_service.update_user(
            session,
            user_id,
            changes=payload.model_dump(exclude_unset=True),
            actor_id=current_user.id,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return _to_read(user)


@router.delete("/{user_id}", response_model=UserAdminRead)
async def delete_user(
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(_delete_users),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserAdminRead:
    try:
        user = await user_service.deactivate_user(
            session, user_id, actor_id=current_user.id, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return _to_read(user)


@router.post("/{user_id}/unlock", response_model=UserAdminRead)
async def unlock_user(
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(_update_users),
    user_service: UserAdminService = Depends(get_user_admin_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserAdminRead:
    try:
        user = await user_service.unlock_user(
            session, user_id, actor_id=current_user.id, client=client
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return _to_read(user)


@router.post("/{user_id}/roles/{role_name}", response_model=UserRoleResponse)
async def assign_role(
    user_id: uuid.UUID,
    role_name: str,
    current_user: CurrentUser = Depends(_manage_roles),
    user_service: UserAdminService = Depends(get_user_admin_service),
    role_service: RoleService = Depends(get_role_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserRoleResponse:
    try:
        user = await user_service.get_user(session, user_id)
        changed = await role_service.assign_role(
            session,
            user=user,
            role_name=role_name,
            actor_id=current_user.id,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return UserRoleResponse(user=_to_read(user), changed=changed)


@router.delete("/{user_id}/roles/{role_name}", response_model=UserRoleResponse)
async def revoke_role(
    user_id: uuid.UUID,
    role_name: str,
    current_user: CurrentUser = Depends(_manage_roles),
    user_service: UserAdminService = Depends(get_user_admin_service),
    role_service: RoleService = Depends(get_role_service),
    session: AsyncSession = Depends(get_db_session),
    client: ClientInfo = Depends(get_client_info),
) -> UserRoleResponse:
    try:
        user = await user_service.get_user(session, user_id)
        changed = await role_service.revoke_role(
            session,
            user=user,
            role_name=role_name,
            actor_id=current_user.id,
            client=client,
        )
    except AuthError as exc:
        raise domain_error_to_http(exc) from exc
    return UserRoleResponse(user=_to_read(user), changed=changed)


@router.get("/{user_id}/audit", response_model=UserActivityResponse)
async def user_audit_trail(
    user_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    action: list[str] | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service),
    session: AsyncSession = Depends(get_db_session),
) -> UserActivityResponse:
    ensure_owner_or_admin(current_user, user_id)
    result = await audit_service.user_activity(
        session,
        user_id=user_id,
        params=PaginationParams(page=page, limit=limit),
        actions=action,
    )
    return UserActivityResponse(
        items=[AuditLogRead.model_validate(log) for log in result.items],
        pagination=result.pagination,
    )
