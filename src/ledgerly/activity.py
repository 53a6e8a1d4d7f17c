"""Organization activity log."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ledgerly.organizations.models import OrganizationActivity


logger = logging.getLogger(__name__)

EVENT_ORG_CREATED = "ORGANIZATION_CREATED"
EVENT_ORG_UPDATED = "ORGANIZATION_UPDATED"
EVENT_ORG_DELETED = "ORGANIZATION_DELETED"
EVENT_MEMBER_INVITED = "MEMBER_INVITED"
EVENT_MEMBER_JOINED = "MEMBER_JOINED"
EVENT_MEMBER_UPDATED = "MEMBER_UPDATED"
EVENT_MEMBER_REMOVED = "MEMBER_REMOVED"
EVENT_SETTINGS_UPDATED = "SETTINGS_UPDATED"
EVENT_SUBSCRIPTION_CHANGED = "SUBSCRIPTION_CHANGED"
EVENT_INVOICE_CREATED = "INVOICE_CREATED"
EVENT_INVOICE_SENT = "INVOICE_SENT"
EVENT_CONTRACT_CREATED = "CONTRACT_CREATED"
EVENT_CONTRACT_RENEWED = "CONTRACT_RENEWED"
EVENT_EXPENSE_CREATED = "EXPENSE_CREATED"
EVENT_EXPENSE_REVIEWED = "EXPENSE_REVIEWED"
EVENT_CLIENT_CREATED = "CLIENT_CREATED"
EVENT_DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
EVENT_DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
EVENT_DOCUMENT_ARCHIVED = "DOCUMENT_ARCHIVED"


def record_activity(
    db: Session,
    *,
    organization_id,
    event_type: str,
    user_id=None,
    entity_type: Optional[str] = None,
    entity_id=None,
    description: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[OrganizationActivity]:
    """Append an activity row for an organization; no-op for individual accounts."""
    if organization_id is None:
        return None
    activity = OrganizationActivity(
        organization_id=organization_id,
        user_id=user_id,
        type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        extra=details or {},
    )
    db.add(activity)
    logger.debug("Activity %s recorded for organization %s", event_type, organization_id)
    return activity
