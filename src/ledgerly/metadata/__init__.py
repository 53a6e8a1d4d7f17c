"""Business record storage: clients, invoices, contracts, expenses, documents and notifications."""

from datetime import date, datetime, timedelta
import time
import uuid

from sqlalchemy import Column, String, Integer, BigInteger, Numeric, Date, DateTime, Boolean, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import JSONB, ARRAY, UUID
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.ext.compiler import compiles

@compiles(JSONB, "sqlite")
def compile_jsonb_for_sqlite(element, compiler, **kw):
    return compiler.visit_JSON(element, **kw)

@compiles(ARRAY, "sqlite")
def compile_array_for_sqlite(element, compiler, **kw):
    return compiler.visit_JSON(element, **kw)


Base = declarative_base()

ACCOUNT_INDIVIDUAL = "individual"
ACCOUNT_BUSINESS = "business"
ACCOUNT_TYPES = (ACCOUNT_INDIVIDUAL, ACCOUNT_BUSINESS)

INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED")

CONTRACT_STATUSES = ("DRAFT", "PENDING_SIGNATURE", "SIGNED", "ACTIVE", "EXPIRED", "CANCELLED")
CONTRACT_TYPES = (
    "service_agreement",
    "employment",
    "nda",
    "sales",
    "lease",
    "partnership",
    "consulting",
    "licensing",
    "other",
)
BILLING_FREQUENCIES = ("one_time", "weekly", "monthly", "quarterly", "annually")
APPROVAL_STATUSES = ("PENDING", "APPROVED", "REJECTED")

EXPENSE_STATUSES = ("pending", "approved", "rejected")

DOCUMENT_TYPES = ("INVOICE", "CONTRACT", "TEMPLATE", "ATTACHMENT", "OTHER")
DOCUMENT_STATUSES = ("DRAFT", "PENDING_REVIEW", "APPROVED", "REJECTED", "ARCHIVED")

NOTIFICATION_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
NOTIFICATION_CHANNELS = ("IN_APP", "EMAIL", "SMS", "PUSH")


def default_invoice_number() -> str:
    return f"INV-{int(time.time() * 1000)}"


def default_due_date() -> date:
    return date.today() + timedelta(days=30)


def default_renewal_terms() -> dict:
    return {"duration": 365, "priceAdjustment": 0, "notificationDays": [30, 15, 7]}


class Client(Base):
    """A customer billed by a user or an organization."""

    __tablename__ = "clients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    address = Column(String(255))
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100))
    zip_code = Column(String(20))
    company_name = Column(String(255))
    tax_id = Column(String(100))
    website = Column(String(255))
    industry = Column(String(100))
    payment_terms = Column(String(100))
    notes = Column(Text)
    type = Column(String(20), nullable=False, default="individual")
    status = Column(String(20), nullable=False, default="active")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoices = relationship("Invoice", back_populates="client", passive_deletes=True)
    contracts = relationship("Contract", back_populates="client", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("type IN ('individual', 'business')", name="ck_clients_type"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_clients_status"),
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name})>"


class Invoice(Base):
    """Invoice issued to a client.

    Attributes:
        account_type: Account type of the issuer at creation time
        invoice_number: Human-facing number, ``INV-<epoch ms>`` by default
        public_view_token: Random token for the unauthenticated share link
        email_sent_at: When the invoice was last emailed
        email_sent_to: Recipient of the last email
    """

    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    account_type = Column(String(20), nullable=False, default=ACCOUNT_INDIVIDUAL)

    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    invoice_number = Column(String(100), nullable=False, default=default_invoice_number)
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False, default=default_due_date)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    sub_total = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text)
    terms_and_conditions = Column(Text)
    purchase_order_number = Column(String(100))
    project_code = Column(String(100))
    payment_terms = Column(String(100))
    pdf_url = Column(String)
    template_id = Column(String(100))
    payment_information = Column(JSONB, default=dict)

    public_view_token = Column(String(128), unique=True, nullable=True)
    email_sent_at = Column(DateTime, nullable=True)
    email_sent_to = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED')",
            name="ck_invoices_status",
        ),
        Index("idx_invoices_org_status", "organization_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Invoice(number={self.invoice_number}, status={self.status}, total={self.total_amount})>"


class InvoiceItem(Base):
    """Line item on an invoice."""

    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")

    @property
    def amount(self):
        return (self.quantity or 0) * (self.unit_price or 0)


class Contract(Base):
    """Contract with a client, including auto-renewal bookkeeping.

    Attributes:
        renewal_terms: ``{"duration": days, "priceAdjustment": percent, "notificationDays": [...]}``
        renewal_history: Entries appended each time the contract is renewed
        notifications_sent: Day offsets for which expiry reminders went out
        approval_status: PENDING, APPROVED or REJECTED
    """

    __tablename__ = "contracts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    account_type = Column(String(20), nullable=False, default=ACCOUNT_INDIVIDUAL)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    status = Column(String(30), nullable=False, default="DRAFT", index=True)
    value = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    payment_terms = Column(String(255))
    contract_type = Column(String(50), nullable=False, default="service_agreement")
    billing_frequency = Column(String(20), nullable=False, default="one_time")

    auto_renew = Column(Boolean, nullable=False, default=False)
    renewal_terms = Column(JSONB, default=default_renewal_terms)
    last_renewal_date = Column(Date, nullable=True)
    next_renewal_date = Column(Date, nullable=True)
    renewal_history = Column(JSONB, default=list)
    notifications_sent = Column(JSONB, default=list)

    approval_status = Column(String(20), nullable=False, default="PENDING")
    approved_by = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    public_view_token = Column(String(128), unique=True, nullable=True)
    email_sent_at = Column(DateTime, nullable=True)
    email_sent_to = Column(String(255), nullable=True)
    extra = Column("metadata", JSONB, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="contracts")

    __table_args__ = (
        Index("idx_contracts_status_end_date", "status", "end_date"),
    )

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, title={self.title}, status={self.status})>"


class Expense(Base):
    """Expense recorded by a user, optionally inside an organization."""

    __tablename__ = "expenses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    account_type = Column(String(20), nullable=False, default=ACCOUNT_INDIVIDUAL)

    amount = Column(Numeric(10, 2), nullable=False)
    date = Column(Date, nullable=False)
    category = Column(String(100), nullable=False)
    description = Column(Text)
    notes = Column(Text)
    receipt_url = Column(String)
    status = Column(String(20), nullable=False, default="pending")
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_expenses_status"),
    )

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, amount={self.amount}, category={self.category})>"


class Document(Base):
    """Versioned file stored in object storage.

    A new upload against an existing document creates a new row whose
    ``parent_id`` points at the original and whose ``version`` is one higher.
    """

    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="OTHER")
    status = Column(String(20), nullable=False, default="DRAFT")
    version = Column(Integer, nullable=False, default=1)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True)
    file_url = Column(String, nullable=False)
    file_type = Column(String(100))
    file_size = Column(BigInteger)
    extra = Column("metadata", JSONB, default=dict)
    tags = Column(JSONB, default=list)
    is_template = Column(Boolean, nullable=False, default=False)
    template_category = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name={self.name}, version={self.version})>"


class Notification(Base):
    """In-app notification addressed to one user."""

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default="MEDIUM")
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    entity_type = Column(String(50))
    entity_id = Column(UUID(as_uuid=True), nullable=True)
    action_url = Column(String)
    action_text = Column(String(100))
    channels = Column(JSONB, default=lambda: ["IN_APP"])
    sent_channels = Column(JSONB, default=list)
    extra = Column("metadata", JSONB, default=dict)
    expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(user={self.user_id}, type={self.type}, read={self.is_read})>"
