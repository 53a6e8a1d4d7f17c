"""Import every mapped module so the declarative registry is complete."""

from ledgerly.metadata import (  # noqa: F401
    Base,
    Client,
    Contract,
    Document,
    Expense,
    Invoice,
    InvoiceItem,
    Notification,
)
from ledgerly.auth.models import UserPreference, UserProfile  # noqa: F401
from ledgerly.organizations.models import (  # noqa: F401
    Department,
    Organization,
    OrganizationActivity,
    OrganizationMembership,
)
