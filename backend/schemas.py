from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime
from models import (
    UserRole, UserStatus, CustomerStatus, SubscriptionStatus, AccessType,
    InvoiceStatus, InvoiceItemType, PaymentMethod, PaymentStatus,
    TicketCategory, TicketPriority, TicketStatus, MessageAuthorType,
    BillingRunStatus, BillingRunOutcome
)


class CamelModel(BaseModel):
    """Base for payloads exchanged with camelCase keys (JSON documents, billing results)"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ==================== JSON DOCUMENTS ====================

class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class FairUsePolicy(CamelModel):
    """Plan rule reducing speed after a data threshold. Not interpreted by billing."""
    enabled: bool = False
    threshold: Optional[float] = Field(None, gt=0)  # GB
    reduced_speed: Optional[float] = Field(None, gt=0)  # Mbps


class CustomerDocument(CamelModel):
    """Entry of Customer.documents; path is relative to UPLOAD_DIR"""
    name: str
    path: str
    type: Optional[str] = None
    size: int = Field(..., ge=0)
    uploaded_at: datetime


class CompanyInfo(CamelModel):
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class Branding(CamelModel):
    primary_color: str = "#3B82F6"
    logo: Optional[str] = None
    company_info: Optional[CompanyInfo] = None


class InvoiceSettings(CamelModel):
    prefix: str = Field("INV", min_length=1, max_length=20)
    number_format: str = "{PREFIX}-{TENANT}-{YEAR}{MONTH}-{SEQ}"
    due_days: int = Field(15, ge=0, le=365)

    @field_validator("number_format")
    @classmethod
    def number_format_has_sequence(cls, v: str) -> str:
        if "{SEQ}" not in v:
            raise ValueError("numberFormat must contain {SEQ}")
        return v


class TaxSettings(CamelModel):
    default_rate: float = Field(0.18, ge=0)
    inclusive: bool = False


class EmailSettings(CamelModel):
    enabled: bool = False
    host: str = ""
    port: int = Field(587, gt=0, le=65535)
    user: str = ""
    password: str = Field("", alias="pass")
    from_address: str = Field("", alias="from")


class SmsSettings(CamelModel):
    enabled: bool = False
    provider: str = "mock"
    sender_id: Optional[str] = None


# Known per-tenant setting documents, keyed by Setting.key
SETTING_MODELS = {
    "invoice_settings": InvoiceSettings,
    "tax_settings": TaxSettings,
    "email_settings": EmailSettings,
    "sms_settings": SmsSettings,
    "branding": Branding,
}


# ==================== COMMON ====================

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# ==================== TENANT / AUTH ====================

class TenantResponse(BaseModel):
    id: int
    name: str
    slug: str
    branding: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: int
    tenant_id: int
    name: str
    email: str
    role: UserRole
    status: UserStatus
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RegisterRequest(BaseModel):
    """Creates a tenant together with its OWNER account"""
    tenant_name: str = Field(..., min_length=2, max_length=100)
    tenant_slug: str = Field(..., min_length=2, max_length=50, pattern=r"^[a-z0-9-]+$")
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    tenant_slug: Optional[str] = None  # Required only when the email exists in several tenants


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
    tenant: TenantResponse


class ForgotPasswordRequest(BaseModel):
    """Request schema for forgot password"""
    email: EmailStr = Field(..., description="Email address of the account")
    tenant_slug: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    """Request schema for resetting password"""
    token: str = Field(..., min_length=1, description="Password reset token from email")
    new_password: str = Field(..., min_length=8, description="New password (minimum 8 characters)")


# ==================== USERS ====================

class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.SUPPORT


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    password: Optional[str] = Field(None, min_length=8)


# ==================== CUSTOMERS ====================

class CustomerBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    cnic: Optional[str] = None
    phone: str = Field(..., min_length=10, max_length=15)
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    tags: List[str] = []


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    cnic: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=10, max_length=15)
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    tags: Optional[List[str]] = None
    status: Optional[CustomerStatus] = None


class CustomerSummary(BaseModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class CustomerResponse(BaseModel):
    id: int
    name: str
    cnic: Optional[str] = None
    phone: str
    email: Optional[str] = None
    address: Optional[Address] = None
    tags: List[str] = []
    documents: List[CustomerDocument] = []
    status: CustomerStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("tags", "documents", mode="before")
    @classmethod
    def list_default(cls, v):
        return v or []


# ==================== PLANS ====================

class PlanCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    speed_mbps: Optional[int] = Field(None, gt=0)
    quota_gb: Optional[int] = Field(None, gt=0)
    price: float = Field(..., gt=0)
    duration_days: int = Field(30, gt=0)
    tax_rate: float = Field(0, ge=0, le=100)
    fup: Optional[FairUsePolicy] = None


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    speed_mbps: Optional[int] = Field(None, gt=0)
    quota_gb: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, gt=0)
    duration_days: Optional[int] = Field(None, gt=0)
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    fup: Optional[FairUsePolicy] = None
    is_active: Optional[bool] = None


class PlanResponse(BaseModel):
    id: int
    name: str
    speed_mbps: Optional[int] = None
    quota_gb: Optional[int] = None
    price: float
    duration_days: int
    tax_rate: float
    fup: Optional[FairUsePolicy] = None
    is_active: bool
    created_at: datetime
    subscription_count: Optional[int] = None

    class Config:
        from_attributes = True


# ==================== SUBSCRIPTIONS ====================

class SubscriptionCreate(BaseModel):
    customer_id: int
    plan_id: int
    username: Optional[str] = Field(None, min_length=3, max_length=100)
    mac: Optional[str] = None
    access_type: AccessType = AccessType.PPPOE
    auto_renew: bool = True
    start_date: Optional[datetime] = None


class SubscriptionUpdate(BaseModel):
    plan_id: Optional[int] = None
    username: Optional[str] = Field(None, min_length=3, max_length=100)
    mac: Optional[str] = None
    access_type: Optional[AccessType] = None
    auto_renew: Optional[bool] = None


class SubscriptionStatusUpdate(BaseModel):
    status: SubscriptionStatus


class PlanSummary(BaseModel):
    id: int
    name: str
    price: float
    tax_rate: float
    duration_days: int
    speed_mbps: Optional[int] = None

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: int
    customer_id: int
    plan_id: int
    username: Optional[str] = None
    mac: Optional[str] = None
    access_type: AccessType
    status: SubscriptionStatus
    auto_renew: bool
    started_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_at: datetime
    plan: Optional[PlanSummary] = None
    customer: Optional[CustomerSummary] = None

    class Config:
        from_attributes = True


# ==================== BILLING ====================

class BillingRunRequest(CamelModel):
    billing_date: Optional[datetime] = None
    subscription_ids: Optional[List[int]] = None
    dry_run: bool = False


class BilledInvoice(CamelModel):
    """Invoice produced (or simulated, on a dry run) for one subscription"""
    id: Optional[int] = None
    number: Optional[str] = None
    subscription_id: int
    customer_id: Optional[int] = None
    period_start: datetime
    period_end: datetime
    subtotal: float
    tax_amount: float
    total: float
    due_date: datetime
    status: Optional[InvoiceStatus] = None


class BillingResult(CamelModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    total_amount: float = 0.0
    invoices: List[BilledInvoice] = []
    errors: List[str] = []
    run_id: Optional[int] = None


class BillingPreviewItem(CamelModel):
    subscription_id: int
    customer_name: str
    plan_name: str
    subtotal: float
    tax_amount: float
    total: float
    due_date: datetime


class BillingPreviewSummary(CamelModel):
    total_subscriptions: int
    total_amount: float
    estimated_revenue: float
    estimated_tax: float


class BillingPreview(CamelModel):
    preview: List[BillingPreviewItem]
    summary: BillingPreviewSummary


class BillingStatus(CamelModel):
    pending_subscriptions: int
    last_billing_run: Optional[datetime] = None
    last_run_id: Optional[int] = None
    status: Literal["PENDING", "UP_TO_DATE"]


class BillingRunItemResponse(CamelModel):
    id: int
    subscription_id: int
    invoice_id: Optional[int] = None
    outcome: BillingRunOutcome
    amount: Optional[float] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class BillingRunResponse(CamelModel):
    id: int
    billing_date: datetime
    dry_run: bool
    triggered_by: str
    status: BillingRunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int
    successful: int
    failed: int
    total_amount: float

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class BillingRunDetail(BillingRunResponse):
    items: List[BillingRunItemResponse] = []


# ==================== INVOICES ====================

class InvoiceItemResponse(BaseModel):
    id: int
    type: InvoiceItemType
    label: str
    quantity: float
    unit_price: float
    amount: float

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    number: str
    subscription_id: Optional[int] = None
    customer_id: Optional[int] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    subtotal: float
    tax_amount: float
    total: float
    status: InvoiceStatus
    due_date: datetime
    paid_at: Optional[datetime] = None
    pdf_url: Optional[str] = None
    created_at: datetime
    customer: Optional[CustomerSummary] = None
    items: List[InvoiceItemResponse] = []

    class Config:
        from_attributes = True


class PaymentSummary(BaseModel):
    id: int
    amount: float
    method: PaymentMethod
    status: PaymentStatus
    reference: Optional[str] = None
    received_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetailResponse(InvoiceResponse):
    payments: List[PaymentSummary] = []
    subscription: Optional[SubscriptionResponse] = None


class InvoiceSendRequest(BaseModel):
    method: Literal["email", "sms", "whatsapp"]
    recipient: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


# ==================== PAYMENTS ====================

class PaymentCreate(BaseModel):
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None
    method: PaymentMethod
    amount: float = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    received_at: Optional[datetime] = None


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None
    method: PaymentMethod
    reference: Optional[str] = None
    amount: float
    status: PaymentStatus
    received_at: datetime
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime
    customer: Optional[CustomerSummary] = None

    class Config:
        from_attributes = True


# ==================== TICKETS ====================

class TicketCreate(BaseModel):
    customer_id: Optional[int] = None
    subscription_id: Optional[int] = None
    subject: str = Field(..., min_length=3, max_length=200)
    category: TicketCategory = TicketCategory.TECHNICAL
    priority: TicketPriority = TicketPriority.MEDIUM
    message: str = Field(..., min_length=1)


class TicketReply(BaseModel):
    body: str = Field(..., min_length=1)
    attachments: Optional[List[str]] = None


class TicketAssign(BaseModel):
    user_id: int


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketMessageResponse(BaseModel):
    id: int
    author_id: Optional[int] = None
    author_type: MessageAuthorType
    body: str
    attachments: Optional[List[str]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TicketResponse(BaseModel):
    id: int
    customer_id: Optional[int] = None
    subscription_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    subject: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    sla_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TicketDetailResponse(TicketResponse):
    customer: Optional[CustomerSummary] = None
    messages: List[TicketMessageResponse] = []


# ==================== PORTAL ====================

class PortalAuthRequest(BaseModel):
    phone: str = Field(..., min_length=5)
    cnic: Optional[str] = None
    tenant_slug: Optional[str] = None


class PortalInvoiceResponse(BaseModel):
    id: int
    number: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    total: float
    status: InvoiceStatus
    due_date: datetime
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PortalTicketCreate(BaseModel):
    subject: str = Field(..., min_length=3, max_length=200)
    category: TicketCategory = TicketCategory.TECHNICAL
    priority: TicketPriority = TicketPriority.MEDIUM
    message: str = Field(..., min_length=1)


# ==================== USAGE ====================

class UsageRecord(BaseModel):
    subscription_id: Optional[int] = None
    username: Optional[str] = None
    period: str = Field(..., pattern=r"^\d{4}-\d{2}$")  # YYYY-MM
    up_bytes: int = Field(0, ge=0)
    down_bytes: int = Field(0, ge=0)
    sessions: int = Field(0, ge=0)


class UsageImportRequest(BaseModel):
    records: List[UsageRecord] = Field(..., min_length=1)


class UsageCounterResponse(BaseModel):
    id: int
    subscription_id: int
    period: str
    up_bytes: int
    down_bytes: int
    total_bytes: int
    sessions: int
    last_updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== SETTINGS ====================

class SettingUpdate(BaseModel):
    value: dict


# ==================== CUSTOMER VIEWS ====================

class CustomerListItem(CustomerResponse):
    subscription_count: int = 0
    ticket_count: int = 0


class CustomerDetailResponse(CustomerResponse):
    subscriptions: List[SubscriptionResponse] = []
    open_tickets: List[TicketResponse] = []
