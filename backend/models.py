from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, BigInteger, JSON, Enum as SQLEnum, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from database import Base


class UserRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SUPPORT = "SUPPORT"
    ENGINEER = "ENGINEER"
    CASHIER = "CASHIER"


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class CustomerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


class SubscriptionStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


class AccessType(str, enum.Enum):
    PPPOE = "PPPOE"
    HOTSPOT = "HOTSPOT"
    GPON = "GPON"
    STATIC_IP = "STATIC_IP"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class InvoiceItemType(str, enum.Enum):
    RECURRING = "RECURRING"
    ONE_TIME = "ONE_TIME"
    TAX = "TAX"
    DISCOUNT = "DISCOUNT"
    ADJUSTMENT = "ADJUSTMENT"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    GATEWAY = "GATEWAY"
    CHEQUE = "CHEQUE"
    CREDIT = "CREDIT"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class TicketCategory(str, enum.Enum):
    TECHNICAL = "TECHNICAL"
    BILLING = "BILLING"
    COMPLAINT = "COMPLAINT"
    REQUEST = "REQUEST"
    OTHER = "OTHER"


class TicketPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class MessageAuthorType(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"


class BillingRunStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BillingRunOutcome(str, enum.Enum):
    INVOICED = "INVOICED"
    FAILED = "FAILED"


class Tenant(Base):
    """ISP operator account - root of all data scoping"""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), unique=True, nullable=False, index=True)  # demo-isp
    branding = Column(JSON, nullable=True)  # {"primaryColor": "#3B82F6", "logo": null}

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Tenant {self.name} ({self.slug})>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.CASHIER, nullable=False)
    status = Column(SQLEnum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    # Password reset fields
    reset_token = Column(String(255), nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_tenant_user_email'),
    )

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Customer(Base):
    """Subscriber of an ISP tenant"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    cnic = Column(String(20), nullable=True)  # National identity number
    phone = Column(String(20), nullable=False)
    email = Column(String(100), nullable=True)
    address = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)
    documents = Column(JSON, nullable=True)
    status = Column(SQLEnum(CustomerStatus), default=CustomerStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscriptions = relationship("Subscription", back_populates="customer")
    tickets = relationship("Ticket", back_populates="customer")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'phone', name='uq_tenant_customer_phone'),
        Index('idx_customers_tenant_status', 'tenant_id', 'status'),
        Index('idx_customers_tenant_name', 'tenant_id', 'name'),
    )

    def __repr__(self):
        return f"<Customer {self.name} (Tenant: {self.tenant_id})>"


class Plan(Base):
    """Internet service plan - deactivated, never hard-deleted"""
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    speed_mbps = Column(Integer, nullable=True)
    quota_gb = Column(Integer, nullable=True)
    price = Column(Float, nullable=False)
    duration_days = Column(Integer, nullable=False, default=30)
    tax_rate = Column(Float, nullable=False, default=0.0)  # Percentage
    fup = Column(JSON, nullable=True)  # Fair-use policy, opaque to billing
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscriptions = relationship("Subscription", back_populates="plan")

    __table_args__ = (
        Index('idx_plans_tenant_active', 'tenant_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Plan {self.name} {self.price}>"


class Subscription(Base):
    """A customer's enrollment in a plan. ends_at is the next billing due date."""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete='CASCADE'), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete='RESTRICT'), nullable=False, index=True)
    username = Column(String(100), nullable=True)  # PPPoE / hotspot login
    mac = Column(String(32), nullable=True)
    access_type = Column(SQLEnum(AccessType), default=AccessType.PPPOE, nullable=False)
    status = Column(SQLEnum(SubscriptionStatus), default=SubscriptionStatus.PENDING, nullable=False)
    auto_renew = Column(Boolean, default=True, nullable=False)
    started_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="subscriptions", lazy="selectin")
    plan = relationship("Plan", back_populates="subscriptions", lazy="selectin")
    invoices = relationship("Invoice", back_populates="subscription")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'username', name='uq_tenant_subscription_username'),
        Index('idx_subscriptions_tenant_status', 'tenant_id', 'status'),
        Index('idx_subscriptions_tenant_customer', 'tenant_id', 'customer_id'),
        Index('idx_subscriptions_due', 'tenant_id', 'status', 'auto_renew', 'ends_at'),
    )

    def __repr__(self):
        return f"<Subscription {self.id} {self.status} ends {self.ends_at}>"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete='SET NULL'), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete='SET NULL'), nullable=True, index=True)
    number = Column(String(64), nullable=False)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    subtotal = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)
    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False)
    due_date = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    pdf_url = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscription = relationship("Subscription", back_populates="invoices")
    customer = relationship("Customer")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan", lazy="selectin")
    payments = relationship("Payment", back_populates="invoice")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'number', name='uq_tenant_invoice_number'),
        UniqueConstraint('tenant_id', 'subscription_id', 'period_start', 'period_end', name='uq_invoice_subscription_period'),
        Index('idx_invoices_tenant_status', 'tenant_id', 'status'),
        Index('idx_invoices_tenant_due_date', 'tenant_id', 'due_date'),
    )

    def __repr__(self):
        return f"<Invoice {self.number} {self.total} {self.status}>"


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete='CASCADE'), nullable=False, index=True)
    type = Column(SQLEnum(InvoiceItemType), nullable=False)
    label = Column(String(255), nullable=False)
    quantity = Column(Float, nullable=False, default=1.0)
    unit_price = Column(Float, nullable=False)
    amount = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self):
        return f"<InvoiceItem {self.type} {self.amount}>"


class InvoiceSequence(Base):
    """Per tenant invoice counter, keyed by the number with {SEQ} unfilled"""
    __tablename__ = "invoice_sequences"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False)
    key = Column(String(150), nullable=False)  # INV-DEMO-ISP-202402-{SEQ}
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'key', name='uq_invoice_sequence'),
    )


class Payment(Base):
    """Payment or refund (negative amount) - history is never deleted"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete='SET NULL'), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete='SET NULL'), nullable=True, index=True)
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    reference = Column(String(100), nullable=True)
    amount = Column(Float, nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    notes = Column(Text, nullable=True)
    receipt_url = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")
    customer = relationship("Customer")

    __table_args__ = (
        Index('idx_payments_tenant_status', 'tenant_id', 'status'),
        Index('idx_payments_tenant_received', 'tenant_id', 'received_at'),
    )

    def __repr__(self):
        return f"<Payment {self.id} Amount:{self.amount} {self.status}>"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete='SET NULL'), nullable=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete='SET NULL'), nullable=True)
    assigned_user_id = Column(Integer, ForeignKey("users.id", ondelete='SET NULL'), nullable=True)
    subject = Column(String(200), nullable=False)
    category = Column(SQLEnum(TicketCategory), default=TicketCategory.TECHNICAL, nullable=False)
    priority = Column(SQLEnum(TicketPriority), default=TicketPriority.MEDIUM, nullable=False)
    status = Column(SQLEnum(TicketStatus), default=TicketStatus.OPEN, nullable=False)
    sla_due_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="tickets")
    subscription = relationship("Subscription")
    messages = relationship("TicketMessage", back_populates="ticket", cascade="all, delete-orphan", order_by="TicketMessage.id")

    __table_args__ = (
        Index('idx_tickets_tenant_status', 'tenant_id', 'status'),
        Index('idx_tickets_tenant_priority', 'tenant_id', 'priority'),
    )

    def __repr__(self):
        return f"<Ticket {self.id} {self.subject} {self.status}>"


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete='CASCADE'), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete='SET NULL'), nullable=True)
    author_type = Column(SQLEnum(MessageAuthorType), nullable=False)
    body = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    ticket = relationship("Ticket", back_populates="messages")
    author = relationship("User", lazy="selectin")


class UsageCounter(Base):
    """Monthly traffic counters per subscription"""
    __tablename__ = "usage_counters"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete='CASCADE'), nullable=False, index=True)
    period = Column(String(7), nullable=False)  # YYYY-MM
    up_bytes = Column(BigInteger, nullable=False, default=0)
    down_bytes = Column(BigInteger, nullable=False, default=0)
    total_bytes = Column(BigInteger, nullable=False, default=0)
    sessions = Column(Integer, nullable=False, default=0)
    last_updated_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'subscription_id', 'period', name='uq_usage_counter_period'),
    )


class Setting(Base):
    """Per-tenant JSON document keyed by name (invoice_settings, tax_settings, ...)"""
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    key = Column(String(50), nullable=False)
    value = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'key', name='uq_tenant_setting_key'),
    )


class BillingRun(Base):
    """Persisted log of one billing run"""
    __tablename__ = "billing_runs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete='CASCADE'), nullable=False, index=True)
    billing_date = Column(DateTime, nullable=False)
    dry_run = Column(Boolean, default=False, nullable=False)
    triggered_by = Column(String(50), nullable=False, default="api")  # 'api', 'scheduler', user email
    status = Column(SQLEnum(BillingRunStatus), default=BillingRunStatus.RUNNING, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    processed = Column(Integer, default=0, nullable=False)
    successful = Column(Integer, default=0, nullable=False)
    failed = Column(Integer, default=0, nullable=False)
    total_amount = Column(Float, default=0.0, nullable=False)

    items = relationship("BillingRunItem", back_populates="run", cascade="all, delete-orphan", order_by="BillingRunItem.id")

    __table_args__ = (
        Index('idx_billing_runs_tenant_started', 'tenant_id', 'started_at'),
    )

    def __repr__(self):
        return f"<BillingRun {self.id} {self.status} {self.successful}/{self.processed}>"


class BillingRunItem(Base):
    """Per-subscription outcome of a billing run"""
    __tablename__ = "billing_run_items"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(Integer, ForeignKey("billing_runs.id", ondelete='CASCADE'), nullable=False, index=True)
    subscription_id = Column(Integer, nullable=False)
    invoice_id = Column(Integer, nullable=True)
    outcome = Column(SQLEnum(BillingRunOutcome), nullable=False)
    amount = Column(Float, nullable=True)
    error = Column(Text, nullable=True)

    run = relationship("BillingRun", back_populates="items")
