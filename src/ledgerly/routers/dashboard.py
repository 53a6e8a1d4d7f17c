"""Organization dashboard: headline counts, team overview and activity feed."""

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ledgerly.auth.models import UserProfile
from ledgerly.database import get_db
from ledgerly.metadata import Contract, Invoice
from ledgerly.organizations.context import OrgContext, require_org_membership
from ledgerly.organizations.models import MEMBER_ACTIVE, ROLES, OrganizationActivity, OrganizationMembership
from ledgerly.organizations.service import list_departments, serialize_department


router = APIRouter(prefix="/api/v1/organizations", tags=["dashboard"])

TEAM_ACTIVITY_WINDOW = timedelta(days=30)
RECENT_ACTIVITY_LIMIT = 10


def _serialize_activity_row(activity: OrganizationActivity, user: UserProfile = None) -> dict:
    return {
        "id": str(activity.id),
        "type": activity.type,
        "entity_type": activity.entity_type,
        "entity_id": str(activity.entity_id) if activity.entity_id else None,
        "description": activity.description,
        "metadata": activity.extra or {},
        "created_at": activity.created_at.isoformat() if activity.created_at else None,
        "user": {"id": str(user.id), "name": user.name, "email": user.email} if user else None,
    }


def _activity_query(db: Session, organization_id):
    return db.query(OrganizationActivity, UserProfile).outerjoin(
        UserProfile, UserProfile.id == OrganizationActivity.user_id
    ).filter(
        OrganizationActivity.organization_id == organization_id,
    ).order_by(OrganizationActivity.created_at.desc())


@router.get("/{organization_id}/dashboard", response_model=dict)
async def dashboard_overview(
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    org_id = ctx.organization.id
    recent = _activity_query(db, org_id).limit(RECENT_ACTIVITY_LIMIT).all()
    return {
        "success": True,
        "data": {
            "total_invoices": db.query(Invoice).filter(Invoice.organization_id == org_id).count(),
            "pending_invoices": db.query(Invoice).filter(
                Invoice.organization_id == org_id,
                Invoice.status == "SENT",
            ).count(),
            "total_contracts": db.query(Contract).filter(Contract.organization_id == org_id).count(),
            "active_contracts": db.query(Contract).filter(
                Contract.organization_id == org_id,
                Contract.status == "ACTIVE",
            ).count(),
            "total_members": db.query(OrganizationMembership).filter(
                OrganizationMembership.organization_id == org_id,
                OrganizationMembership.status == MEMBER_ACTIVE,
            ).count(),
            "recent_activities": [_serialize_activity_row(a, u) for a, u in recent],
            "departments": [serialize_department(d) for d in list_departments(db, org_id)],
        },
    }


@router.get("/{organization_id}/dashboard/team", response_model=dict)
async def team_overview(
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    """Active members, ordered by role seniority, with 30-day activity counts."""
    org_id = ctx.organization.id
    members = db.query(OrganizationMembership, UserProfile).join(
        UserProfile, UserProfile.id == OrganizationMembership.user_id
    ).filter(
        OrganizationMembership.organization_id == org_id,
        OrganizationMembership.status == MEMBER_ACTIVE,
    ).all()

    since = datetime.utcnow() - TEAM_ACTIVITY_WINDOW
    counts = dict(
        db.query(OrganizationActivity.user_id, func.count(OrganizationActivity.id)).filter(
            OrganizationActivity.organization_id == org_id,
            OrganizationActivity.created_at >= since,
        ).group_by(OrganizationActivity.user_id).all()
    )

    members.sort(key=lambda row: (ROLES.index(row[0].role), row[1].name.lower()))
    team = [
        {
            "membership_id": str(membership.id),
            "user_id": str(user.id),
            "name": user.name,
            "email": user.email,
            "role": membership.role,
            "department": membership.department,
            "position": membership.position,
            "last_accessed": membership.last_accessed.isoformat() if membership.last_accessed else None,
            "activity_count": int(counts.get(user.id, 0)),
        }
        for membership, user in members
    ]
    return {"success": True, "data": {"members": team, "total": len(team)}}


@router.get("/{organization_id}/dashboard/activities", response_model=dict)
async def activity_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: OrgContext = Depends(require_org_membership),
    db: Session = Depends(get_db),
):
    query = _activity_query(db, ctx.organization.id)
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "data": {
            "activities": [_serialize_activity_row(a, u) for a, u in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        },
    }
