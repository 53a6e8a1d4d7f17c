"""Contract status transitions, renewal and expiry handling."""

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ledgerly import activity
from ledgerly.errors import ValidationError
from ledgerly.metadata import Contract, default_renewal_terms
from ledgerly.notifications import notify_owner_or_org
from ledgerly.settings import settings


logger = logging.getLogger(__name__)

DRAFT = "DRAFT"
PENDING_SIGNATURE = "PENDING_SIGNATURE"
SIGNED = "SIGNED"
ACTIVE = "ACTIVE"
EXPIRED = "EXPIRED"
CANCELLED = "CANCELLED"

STATUS_TRANSITIONS: Dict[str, tuple] = {
    DRAFT: (PENDING_SIGNATURE, ACTIVE, CANCELLED),
    PENDING_SIGNATURE: (SIGNED, CANCELLED),
    SIGNED: (ACTIVE, CANCELLED),
    ACTIVE: (EXPIRED, CANCELLED),
    EXPIRED: (ACTIVE,),
    CANCELLED: (),
}

_CENTS = Decimal("0.01")


def can_transition(current: str, target: str) -> bool:
    return target in STATUS_TRANSITIONS.get(current, ())


def change_status(contract: Contract, target: str) -> Contract:
    """Move ``contract`` to ``target`` or raise ValidationError."""
    target = str(target or "").strip().upper()
    if target not in STATUS_TRANSITIONS:
        raise ValidationError(f"Invalid contract status: {target or '(empty)'}")
    if not can_transition(contract.status, target):
        raise ValidationError(
            f"Invalid status transition from {contract.status} to {target}",
            code="INVALID_STATUS_TRANSITION",
        )
    contract.status = target
    return contract


def renewal_terms(contract: Contract) -> Dict[str, Any]:
    return {**default_renewal_terms(), **(contract.renewal_terms or {})}


def next_renewal_date(contract: Contract) -> Optional[date]:
    return contract.end_date if contract.auto_renew else None


def apply_renewal_settings(contract: Contract, *, auto_renew: Optional[bool] = None,
                           terms: Optional[Dict[str, Any]] = None) -> Contract:
    """Merge renewal terms and recompute ``next_renewal_date``."""
    if auto_renew is not None:
        contract.auto_renew = bool(auto_renew)
    if terms:
        merged = renewal_terms(contract)
        merged.update(terms)
        _validate_terms(merged)
        contract.renewal_terms = merged
        flag_modified(contract, "renewal_terms")
    contract.next_renewal_date = next_renewal_date(contract)
    return contract


def _validate_terms(terms: Dict[str, Any]) -> None:
    try:
        duration = int(terms.get("duration"))
    except (TypeError, ValueError):
        raise ValidationError("Renewal duration must be a number of days")
    if duration <= 0:
        raise ValidationError("Renewal duration must be positive")
    try:
        Decimal(str(terms.get("priceAdjustment", 0)))
    except ArithmeticError:
        raise ValidationError("Price adjustment must be a number")
    days = terms.get("notificationDays") or []
    if not isinstance(days, list) or not all(isinstance(day, int) for day in days):
        raise ValidationError("notificationDays must be a list of integers")


def renew_contract(db: Session, contract: Contract, *, user_id=None, today: Optional[date] = None) -> Dict[str, Any]:
    """Create the successor contract and expire the current one.

    Returns:
        dict with ``contract`` (the new row) and a human ``message``
    """
    if contract.status == CANCELLED:
        raise ValidationError("Cancelled contracts cannot be renewed")

    today = today or date.today()
    terms = renewal_terms(contract)
    duration = int(terms.get("duration") or 365)
    adjustment = Decimal(str(terms.get("priceAdjustment") or 0))
    new_value = (Decimal(contract.value or 0) * (Decimal(1) + adjustment / Decimal(100))).quantize(_CENTS, ROUND_HALF_UP)
    end = today + timedelta(days=duration)

    renewed = Contract(
        user_id=contract.user_id,
        client_id=contract.client_id,
        organization_id=contract.organization_id,
        account_type=contract.account_type,
        title=contract.title,
        description=contract.description,
        start_date=today,
        end_date=end,
        status=ACTIVE,
        value=new_value,
        currency=contract.currency,
        payment_terms=contract.payment_terms,
        contract_type=contract.contract_type,
        billing_frequency=contract.billing_frequency,
        auto_renew=contract.auto_renew,
        renewal_terms=terms,
        last_renewal_date=today,
        next_renewal_date=end if contract.auto_renew else None,
        renewal_history=list(contract.renewal_history or []) + [{
            "previousContractId": str(contract.id),
            "renewedAt": datetime.utcnow().isoformat(),
            "previousValue": str(contract.value),
            "newValue": str(new_value),
            "priceAdjustment": float(adjustment),
        }],
        notifications_sent=[],
        approval_status="PENDING",
        extra=dict(contract.extra or {}),
    )
    db.add(renewed)

    contract.status = EXPIRED
    contract.next_renewal_date = None
    db.flush()

    activity.record_activity(
        db,
        organization_id=contract.organization_id,
        event_type=activity.EVENT_CONTRACT_RENEWED,
        user_id=user_id,
        entity_type="contract",
        entity_id=renewed.id,
        description=f"Contract {contract.title} renewed",
        details={"previous_contract_id": str(contract.id)},
    )

    message = "Contract renewed successfully"
    if adjustment > 0:
        message += f". Price adjusted by {adjustment.normalize():f}%"
    logger.info("Contract %s renewed as %s (value %s -> %s)", contract.id, renewed.id, contract.value, new_value)
    return {"contract": renewed, "message": message}


def days_until(end_date: date, now: datetime) -> int:
    """Days from ``now`` until midnight starting ``end_date``, rounded up."""
    remaining = datetime.combine(end_date, datetime.min.time()) - now
    return math.ceil(remaining.total_seconds() / 86400)


def check_expiring_contracts(db: Session, now: Optional[datetime] = None) -> Dict[str, List[str]]:
    """Send expiry reminders and process contracts that reached their end date.

    For ACTIVE contracts ending within the expiry window:

    * a reminder is sent once for each configured notification day
    * at or past the end date, auto-renewing contracts are renewed and the
      rest are marked EXPIRED

    Returns:
        dict of contract id lists: ``notified``, ``renewed``, ``expired``
    """
    now = now or datetime.utcnow()
    horizon = (now + timedelta(days=settings.contract_expiry_window_days)).date()
    contracts = db.query(Contract).filter(
        Contract.status == ACTIVE,
        Contract.end_date.isnot(None),
        Contract.end_date <= horizon,
    ).all()

    result = {"notified": [], "renewed": [], "expired": []}
    for contract in contracts:
        days_to_expiry = days_until(contract.end_date, now)
        terms = renewal_terms(contract)
        sent = list(contract.notifications_sent or [])

        if days_to_expiry in (terms.get("notificationDays") or []) and days_to_expiry not in sent:
            notify_owner_or_org(
                db,
                user_id=contract.user_id,
                organization_id=contract.organization_id,
                notification_type="CONTRACT_EXPIRING",
                data={"contractTitle": contract.title, "daysToExpiry": days_to_expiry},
                entity_type="contract",
                entity_id=contract.id,
            )
            sent.append(days_to_expiry)
            contract.notifications_sent = sent
            flag_modified(contract, "notifications_sent")
            result["notified"].append(str(contract.id))

        if days_to_expiry <= 0:
            if contract.auto_renew:
                renewed = renew_contract(db, contract, today=now.date())
                result["renewed"].append(str(renewed["contract"].id))
            else:
                contract.status = EXPIRED
                contract.next_renewal_date = None
                result["expired"].append(str(contract.id))

    db.commit()
    logger.info(
        "Contract expiry check: %s notified, %s renewed, %s expired",
        len(result["notified"]),
        len(result["renewed"]),
        len(result["expired"]),
    )
    return result
