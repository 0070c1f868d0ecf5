"""
Organization management endpoints.

Create, update, membership lifecycle, authorization policy. Read endpoints
return the JSON documents composed by the database as is.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from orghub.core.config import settings
from orghub.core.dependencies import get_current_user_id, get_org_manager
from orghub.core.errors import NotFoundError
from orghub.schemas.organization import (
    AddMemberRequest,
    AuthorizationPolicy,
    AvailabilityResponse,
    Organization,
)
from orghub.services.organization_manager import OrganizationManager

router = APIRouter()


def _json_response(data: bytes | None) -> Response:
    if data is None:
        raise NotFoundError()
    return Response(content=data, media_type="application/json")


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def add_organization(
    data: Organization,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    """
    Create a new organization.

    - Name must be unique (lowercase alphanumeric + hyphens)
    - Creator is automatically added as its first member
    """
    await manager.add(user_id, data)
    return Response(status_code=status.HTTP_201_CREATED)


@router.get("/user", summary="List the organizations of the current user")
async def get_user_organizations(
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    return _json_response(await manager.get_by_user_json(user_id))


@router.get(
    "/check-availability/{resource_kind}",
    response_model=AvailabilityResponse,
    summary="Check whether a resource value is available",
)
async def check_availability(
    resource_kind: str,
    v: str = Query(default="", description="Value to check"),
    manager: OrganizationManager = Depends(get_org_manager),
) -> AvailabilityResponse:
    available = await manager.check_availability(resource_kind, v)
    return AvailabilityResponse(available=available)


@router.get("/{org_name}", summary="Get organization by name")
async def get_organization(
    org_name: str,
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    return _json_response(await manager.get_json(org_name))


@router.put(
    "/{org_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update organization",
)
async def update_organization(
    org_name: str,
    data: Organization,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    """Update organization details. Requires the update organization permission."""
    await manager.update(user_id, data.model_copy(update={"name": org_name}))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{org_name}/members", summary="List organization members")
async def get_members(
    org_name: str,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    return _json_response(await manager.get_members_json(user_id, org_name))


@router.post(
    "/{org_name}/members",
    status_code=status.HTTP_201_CREATED,
    summary="Invite a new member",
)
async def add_member(
    org_name: str,
    data: AddMemberRequest,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    """
    Invite a user to the organization by alias.

    - Requires the add member permission
    - Sends an invitation email with a confirmation link
    """
    base_url = data.base_url or settings.BASE_URL
    await manager.add_member(user_id, org_name, data.user_alias, base_url)
    return Response(status_code=status.HTTP_201_CREATED)


@router.put(
    "/{org_name}/accept-invitation",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Confirm membership",
)
async def confirm_membership(
    org_name: str,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    await manager.confirm_membership(user_id, org_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{org_name}/members/{user_alias}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member or leave the organization",
)
async def delete_member(
    org_name: str,
    user_alias: str,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    """
    Remove a member from the organization.

    - Members can always remove themselves
    - Removing others requires the delete member permission
    """
    await manager.delete_member(user_id, org_name, user_alias)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Authorization policy
# ---------------------------------------------------------------------------

@router.get("/{org_name}/authorization-policy", summary="Get authorization policy")
async def get_authorization_policy(
    org_name: str,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    return _json_response(await manager.get_authorization_policy_json(user_id, org_name))


@router.put(
    "/{org_name}/authorization-policy",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update authorization policy",
)
async def update_authorization_policy(
    org_name: str,
    data: AuthorizationPolicy,
    user_id: str = Depends(get_current_user_id),
    manager: OrganizationManager = Depends(get_org_manager),
) -> Response:
    await manager.update_authorization_policy(user_id, org_name, data)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
