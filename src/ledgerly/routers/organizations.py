"""Organization, membership, invitation, settings and subscription endpoints."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ledgerly.auth.dependencies import get_current_user
from ledgerly.auth.models import UserProfile
from ledgerly.database import get_db
from ledgerly.email import send_invitation_email
from ledgerly.errors import AuthorizationError, ValidationError
from ledgerly.models.requests import (
    AcceptInvitationRequest,
    ActivateSubscriptionRequest,
    DepartmentRequest,
    InviteMemberRequest,
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationUpdateRequest,
)
from ledgerly.organizations import invitations, service, subscription
from ledgerly.organizations.context import (
    OrgContext,
    parse_uuid,
    require_org_admin,
    require_org_manager,
    require_org_membership,
    require_org_owner,
)
from ledgerly.organizations.models import ROLE_OWNER
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


async def _send_invite(ctx: OrgContext, invitation) -> bool:
    return await run_in_threadpool(
        send_invitation_email,
        invitation.email,
        invitations.invitation_link(invitation.invitation_token),
        ctx.organization.name,
        inviter_name=ctx.user.name,
        role=invitation.role,
    )


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreateRequest,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    organization = service.create_organization(
        db,
        user,
        name=body.name,
        industry=body.industry,
        description=body.description,
        features=body.features,
    )
    payload = service.serialize_organization(organization)
    payload["role"] = ROLE_OWNER
    return {"success": True, "data": payload}


@router.get("/my-organizations", response_model=dict)
async def my_organizations(
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": service.list_user_organizations(db, user)}


@router.post("/accept-invite", response_model=dict)
async def accept_invite(
    body: AcceptInvitationRequest,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Join an organization using an invitation token."""
    if not body.token:
        raise ValidationError("Invitation token is required", code="MISSING_TOKEN")
    membership = invitations.accept_invitation(db, user, body.token)
    return {
        "success": True,
        "message": "Invitation accepted successfully",
        "data": service.serialize_membership(membership),
    }


@router.get("/{organization_id}", response_model=dict)
async def get_organization(ctx: OrgContext = Depends(require_org_membership)):
    payload = service.serialize_organization(ctx.organization)
    payload["role"] = ctx.role
    return {"success": True, "data": payload}


@router.put("/{organization_id}", response_model=dict)
async def update_organization(
    body: OrganizationUpdateRequest,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    organization = service.update_organization(db, ctx, body.model_dump(exclude_unset=True))
    return {"success": True, "data": service.serialize_organization(organization)}


@router.delete("/{organization_id}", response_model=dict)
async def delete_organization(
    ctx: OrgContext = Depends(require_org_owner),
    db: Session = Depends(get_db),
):
    service.delete_organization(db, ctx)
    return {"success": True, "message": "Organization deleted successfully"}


@router.post("/{organization_id}/select", response_model=dict)
async def select_organization(
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    """Mark the organization as the caller's working context."""
    db.commit()
    payload = service.serialize_organization(ctx.organization)
    payload["role"] = ctx.role
    return {"success": True, "message": "Organization selected", "data": payload}


# Members

@router.get("/{organization_id}/members", response_model=dict)
async def list_members(
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    members = service.list_members(db, ctx.organization.id)
    return {
        "success": True,
        "data": [service.serialize_membership(member) for member in members],
        "member_limit": ctx.organization.member_limit,
        "active_count": invitations.active_member_count(db, ctx.organization.id),
    }


@router.post("/{organization_id}/members/invite", response_model=dict, status_code=status.HTTP_201_CREATED)
async def invite_member(
    body: InviteMemberRequest,
    ctx: OrgContext = Depends(require_org_manager),
    db: Session = Depends(get_db),
):
    invitation = invitations.create_invitation(
        db,
        ctx.organization,
        email=body.email,
        invited_by=ctx.user,
        role=body.role,
        department=body.department,
        position=body.position,
    )
    db.commit()
    db.refresh(invitation)
    email_sent = await _send_invite(ctx, invitation)
    return {
        "success": True,
        "message": "Invitation sent successfully" if email_sent else "Invitation created but email could not be sent",
        "data": {
            **service.serialize_membership(invitation),
            "invitation_link": invitations.invitation_link(invitation.invitation_token),
            "email_sent": email_sent,
        },
    }


@router.put("/{organization_id}/members/{member_id}", response_model=dict)
async def update_member(
    member_id: str,
    body: MemberUpdateRequest,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    membership = service.update_member(db, ctx, parse_uuid(member_id, "member id"), body.model_dump(exclude_unset=True))
    return {"success": True, "data": service.serialize_membership(membership)}


@router.delete("/{organization_id}/members/{member_id}", response_model=dict)
async def remove_member(
    member_id: str,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    service.remove_member(db, ctx, parse_uuid(member_id, "member id"))
    return {"success": True, "message": "Member removed successfully"}


# Invitations

@router.get("/{organization_id}/invitations", response_model=dict)
async def pending_invitations(
    ctx: OrgContext = Depends(require_org_manager),
    db: Session = Depends(get_db),
):
    pending = invitations.get_pending_invitations(db, ctx.organization.id)
    return {
        "success": True,
        "data": {
            "invitations": [service.serialize_membership(row) for row in pending],
            "count": len(pending),
        },
    }


@router.post("/{organization_id}/invitations/cleanup", response_model=dict)
async def cleanup_invitations(
    ctx: OrgContext = Depends(require_org_manager),
    db: Session = Depends(get_db),
):
    deleted = invitations.cleanup_expired_invitations(db, organization_id=ctx.organization.id)
    return {"success": True, "data": {"deleted_count": deleted}}


@router.post("/{organization_id}/invitations/resend", response_model=dict)
async def resend_invitation(
    body: InviteMemberRequest,
    ctx: OrgContext = Depends(require_org_manager),
    db: Session = Depends(get_db),
):
    invitation, created = invitations.resend_invitation(
        db,
        ctx.organization,
        email=body.email,
        invited_by=ctx.user,
        role=body.role,
    )
    db.commit()
    db.refresh(invitation)
    email_sent = await _send_invite(ctx, invitation)
    return {
        "success": True,
        "message": "New invitation sent successfully" if created else "Invitation resent successfully",
        "data": {**service.serialize_membership(invitation), "email_sent": email_sent},
    }


@router.delete("/{organization_id}/invitations/{invitation_id}", response_model=dict)
async def cancel_invitation(
    invitation_id: str,
    ctx: OrgContext = Depends(require_org_manager),
    db: Session = Depends(get_db),
):
    invitations.cancel_invitation(db, ctx.organization.id, parse_uuid(invitation_id, "invitation id"))
    return {"success": True, "message": "Invitation cancelled successfully"}


# Settings

@router.get("/{organization_id}/settings", response_model=dict)
async def get_settings(ctx: OrgContext = Depends(require_org_membership)):
    return {"success": True, "data": service.effective_settings(ctx.organization)}


@router.put("/{organization_id}/settings", response_model=dict)
async def update_settings(
    body: dict,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": service.update_settings(db, ctx, body)}


# Subscription

@router.get("/{organization_id}/subscription", response_model=dict)
async def get_subscription(ctx: OrgContext = Depends(require_org_owner)):
    return {"success": True, "data": subscription.serialize_subscription(ctx.organization, ctx.role)}


@router.get("/{organization_id}/subscription/status", response_model=dict)
async def get_subscription_status(ctx: OrgContext = Depends(require_org_membership)):
    """Subscription state as seen by any member (owners get activation hints)."""
    return {"success": True, "data": subscription.serialize_subscription(ctx.organization, ctx.role)}


@router.post("/{organization_id}/subscription/activate", response_model=dict)
async def activate_subscription(
    body: ActivateSubscriptionRequest,
    ctx: OrgContext = Depends(require_org_owner),
    db: Session = Depends(get_db),
):
    """Owner activation; only available when self-service activation is enabled."""
    if not settings.self_service_activation:
        raise AuthorizationError(
            "Subscriptions are activated once billing confirms payment",
            code="ACTIVATION_DISABLED",
        )
    organization = subscription.activate_subscription(db, ctx, tier=body.tier)
    return {
        "success": True,
        "message": "Subscription activated",
        "data": subscription.serialize_subscription(organization, ctx.role),
    }


@router.post("/{organization_id}/subscription/cancel", response_model=dict)
async def cancel_subscription(
    ctx: OrgContext = Depends(require_org_owner),
    db: Session = Depends(get_db),
):
    organization = subscription.cancel_subscription(db, ctx)
    return {
        "success": True,
        "message": "Subscription will be cancelled at the end of the billing period",
        "data": subscription.serialize_subscription(organization, ctx.role),
    }


@router.post("/{organization_id}/subscription/resume", response_model=dict)
async def resume_subscription(
    ctx: OrgContext = Depends(require_org_owner),
    db: Session = Depends(get_db),
):
    organization = subscription.resume_subscription(db, ctx)
    return {
        "success": True,
        "message": "Subscription resumed",
        "data": subscription.serialize_subscription(organization, ctx.role),
    }


# Departments

@router.get("/{organization_id}/departments", response_model=dict)
async def list_departments(
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    departments = service.list_departments(db, ctx.organization.id)
    return {"success": True, "data": [service.serialize_department(d) for d in departments]}


@router.post("/{organization_id}/departments", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_department(
    body: DepartmentRequest,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    department = service.create_department(
        db,
        ctx,
        name=body.name,
        description=body.description,
        manager_id=body.manager_id,
        parent_department_id=body.parent_department_id,
    )
    return {"success": True, "data": service.serialize_department(department)}


@router.put("/{organization_id}/departments/{department_id}", response_model=dict)
async def update_department(
    department_id: str,
    body: DepartmentRequest,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    department = service.update_department(
        db, ctx, parse_uuid(department_id, "department id"), body.model_dump(exclude_unset=True)
    )
    return {"success": True, "data": service.serialize_department(department)}


@router.delete("/{organization_id}/departments/{department_id}", response_model=dict)
async def deactivate_department(
    department_id: str,
    ctx: OrgContext = Depends(require_org_admin),
    db: Session = Depends(get_db),
):
    service.update_department(db, ctx, parse_uuid(department_id, "department id"), {"status": "INACTIVE"})
    return {"success": True, "message": "Department deactivated"}
