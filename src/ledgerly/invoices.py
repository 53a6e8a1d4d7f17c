"""Invoice lifecycle jobs."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ledgerly.metadata import Invoice
from ledgerly.notifications import notify_owner_or_org


logger = logging.getLogger(__name__)


def mark_overdue_invoices(db: Session, now: Optional[datetime] = None) -> List[str]:
    """Flip SENT invoices past their due date to OVERDUE and notify the owner.

    Returns:
        ids of the invoices that changed status
    """
    today = (now or datetime.utcnow()).date()
    overdue = db.query(Invoice).filter(
        Invoice.status == "SENT",
        Invoice.due_date < today,
    ).all()

    changed = []
    for invoice in overdue:
        invoice.status = "OVERDUE"
        notify_owner_or_org(
            db,
            user_id=invoice.user_id,
            organization_id=invoice.organization_id,
            notification_type="INVOICE_OVERDUE",
            data={
                "invoiceNumber": invoice.invoice_number,
                "clientName": invoice.client.name if invoice.client else "",
            },
            entity_type="invoice",
            entity_id=invoice.id,
        )
        changed.append(str(invoice.id))

    db.commit()
    logger.info("Marked %s invoices overdue", len(changed))
    return changed
